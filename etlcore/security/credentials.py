"""Credential vault and OAuth2 token freshness.

The vault maps credential ids to credential models. The credential
manager resolves ids against it and, for OAuth2 credentials with a token
endpoint, refreshes expired access tokens in place. Refreshes of the same
credential id are serialised through a per-id lock so concurrent runs
sharing a vault never race on the exchange.

Secret values in vault files may be stored encrypted with Fernet
(``enc:`` prefix). Set ETL_VAULT_KEY with a valid Fernet key. Generate with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import MutableMapping
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Mapping

import httpx
from cryptography.fernet import Fernet, InvalidToken

from ..config import VAULT_KEY_ENV
from ..connectors.api.auth.oauth2 import (
    client_credentials_token,
    refresh_access_token,
)
from ..connectors.models import Credential, OAuth2Credential, parse_credential
from ..errors import AuthorizationRequired, CredentialsNotFound

logger = logging.getLogger(__name__)


class Vault(MutableMapping):
    """Credential store keyed by credential id.

    Raw mappings are validated into credential models on assignment.
    """

    def __init__(self, credentials: Mapping[str, Credential | dict[str, Any]] | None = None) -> None:
        self._credentials: dict[str, Credential] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        for credential_id, credential in (credentials or {}).items():
            self[credential_id] = credential

    def __getitem__(self, credential_id: str) -> Credential:
        return self._credentials[credential_id]

    def __setitem__(self, credential_id: str, credential: Credential | dict[str, Any]) -> None:
        if isinstance(credential, dict):
            credential = parse_credential({"id": credential_id, **credential})
        self._credentials[credential_id] = credential

    def __delitem__(self, credential_id: str) -> None:
        del self._credentials[credential_id]
        self._locks.pop(credential_id, None)

    def __iter__(self) -> Iterator[str]:
        return iter(self._credentials)

    def __len__(self) -> int:
        return len(self._credentials)

    def lock_for(self, credential_id: str) -> asyncio.Lock:
        """Get the lock guarding refreshes of one credential."""
        lock = self._locks.get(credential_id)
        if lock is None:
            lock = self._locks[credential_id] = asyncio.Lock()
        return lock


class CredentialManager:
    """Resolves credentials and keeps OAuth2 access tokens fresh."""

    def __init__(
        self,
        vault: Vault | Mapping[str, Credential | dict[str, Any]],
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the credential manager.

        Args:
            vault: Credential store (plain mappings are wrapped in a Vault)
            http_client: Client used for token exchanges (temporary per call if None)
            clock: Returns the current aware datetime; defaults to UTC now
        """
        self.vault = vault if isinstance(vault, Vault) else Vault(vault)
        self._http_client = http_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def resolve(self, credential_id: str) -> Credential:
        """Get a credential, refreshing its OAuth2 access token if needed.

        Args:
            credential_id: Vault id

        Returns:
            The vault entry (mutated in place after a refresh)

        Raises:
            CredentialsNotFound: If the id is not in the vault
            AuthorizationRequired: If an OAuth2 credential has no usable token
            OAuth2Error: If the token exchange fails
        """
        credential = self.vault.get(credential_id)
        if credential is None:
            raise CredentialsNotFound(
                f"Credentials not found for id: {credential_id}", credential_id
            )

        if not isinstance(credential, OAuth2Credential) or not credential.credentials.token_url:
            return credential

        if self._has_valid_token(credential):
            return credential

        async with self.vault.lock_for(credential_id):
            # Another run may have refreshed while we waited
            if self._has_valid_token(credential):
                return credential
            await self._refresh(credential_id, credential)

        return credential

    def _has_valid_token(self, credential: OAuth2Credential) -> bool:
        return bool(credential.credentials.access_token) and not credential.is_expired(
            self._clock()
        )

    async def _refresh(self, credential_id: str, credential: OAuth2Credential) -> None:
        secrets = credential.credentials
        token_url = secrets.token_url or ""

        if secrets.refresh_token:
            logger.info(f"Refreshing OAuth2 access token for {credential_id}")
            token_data = await refresh_access_token(
                token_url,
                secrets.refresh_token,
                client_id=secrets.client_id,
                client_secret=secrets.client_secret,
                client=self._http_client,
                credential_id=credential_id,
            )
        elif secrets.client_id and secrets.client_secret:
            logger.info(f"Requesting client_credentials token for {credential_id}")
            token_data = await client_credentials_token(
                token_url,
                secrets.client_id,
                secrets.client_secret,
                scope=" ".join(credential.scopes) or None,
                client=self._http_client,
                credential_id=credential_id,
            )
        elif not secrets.access_token:
            raise AuthorizationRequired(
                f"OAuth2 credentials for {credential_id} lack a valid access_token "
                "or refresh_token. Initial authorization required.",
                credential_id,
            )
        else:
            # Expired token with nothing to refresh it with; let the upstream decide
            logger.warning(f"OAuth2 token for {credential_id} may be stale and cannot be refreshed")
            return

        self._apply_token(credential, token_data)

    def _apply_token(self, credential: OAuth2Credential, token_data: dict[str, Any]) -> None:
        secrets = credential.credentials
        secrets.access_token = token_data["access_token"]
        if token_data.get("refresh_token"):
            secrets.refresh_token = token_data["refresh_token"]

        expires_in = token_data.get("expires_in")
        credential.expires_at = (
            self._clock() + timedelta(seconds=float(expires_in)) if expires_in else None
        )


class SecretCipher:
    """Fernet encryption for secret values stored in vault files.

    Encrypted values carry the ``enc:`` prefix; other values pass through
    unchanged so vault files may mix plain and encrypted secrets.
    """

    PREFIX = "enc:"

    def __init__(self, encryption_key: str | None = None) -> None:
        """Initialize the cipher.

        Args:
            encryption_key: Fernet key (defaults to the ETL_VAULT_KEY env var)
        """
        self._key = encryption_key or os.getenv(VAULT_KEY_ENV)
        self._fernet: Fernet | None = None

        if self._key:
            try:
                self._fernet = Fernet(self._key.encode())
            except ValueError as e:
                logger.error(f"Invalid vault encryption key: {e}")
                self._fernet = None

    @property
    def encryption_enabled(self) -> bool:
        """Check if encryption is properly configured."""
        return self._fernet is not None

    def encrypt(self, value: str) -> str:
        """Encrypt a string value.

        Raises:
            ValueError: If encryption is not configured
        """
        if not self._fernet:
            raise ValueError(f"Encryption not configured. Set {VAULT_KEY_ENV} env var.")
        return self.PREFIX + self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, value: str) -> str:
        """Decrypt an ``enc:`` value; plain values are returned unchanged.

        Raises:
            ValueError: If decryption fails or is not configured
        """
        if not value.startswith(self.PREFIX):
            return value
        if not self._fernet:
            raise ValueError(f"Encrypted secret found but {VAULT_KEY_ENV} is not set")
        try:
            return self._fernet.decrypt(value[len(self.PREFIX) :].encode()).decode()
        except InvalidToken as e:
            raise ValueError("Invalid encrypted value or wrong key") from e

    def decrypt_secrets(self, data: Any) -> Any:
        """Recursively decrypt every ``enc:`` string in a mapping or list."""
        if isinstance(data, str):
            return self.decrypt(data)
        if isinstance(data, dict):
            return {key: self.decrypt_secrets(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self.decrypt_secrets(item) for item in data]
        return data
