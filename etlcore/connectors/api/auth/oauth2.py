"""OAuth2 token exchange for API credentials.

Supports:
- Refresh Token flow
- Client Credentials flow (machine-to-machine)

The Authorization Code flow needs an interactive callback and is left to
the caller; credentials without a usable token fail with
``AuthorizationRequired`` in the credential manager.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ....config import OAUTH_TIMEOUT_SECONDS
from ....errors import OAuth2Error

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


async def request_token(
    token_url: str,
    data: dict[str, str],
    client: httpx.AsyncClient | None = None,
    credential_id: str | None = None,
) -> dict[str, Any]:
    """POST a grant to a token endpoint.

    Args:
        token_url: Token endpoint URL
        data: Form fields, including ``grant_type``
        client: Optional shared client (a temporary one is created otherwise)
        credential_id: Vault id, for error context

    Returns:
        Token response with access_token, expires_in, etc.

    Raises:
        OAuth2Error: If the request fails or the response is not a token
    """
    # Drop empty values so optional client secrets are not sent as ""
    form = {key: value for key, value in data.items() if value}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=OAUTH_TIMEOUT_SECONDS) as temp_client:
                response = await temp_client.post(token_url, data=form, headers=FORM_HEADERS)
        else:
            response = await client.post(token_url, data=form, headers=FORM_HEADERS)
    except httpx.ConnectError as e:
        raise OAuth2Error(
            f"Failed to connect to token endpoint: {e}", credential_id=credential_id
        ) from e
    except httpx.TimeoutException as e:
        raise OAuth2Error(
            f"Token request timed out: {e}", credential_id=credential_id
        ) from e
    except httpx.HTTPError as e:
        raise OAuth2Error(
            f"Token request failed: {e}", credential_id=credential_id
        ) from e

    if response.status_code == 200:
        try:
            token_data = response.json()
        except ValueError as e:
            raise OAuth2Error(
                f"Token endpoint returned invalid JSON: {response.text[:200]}",
                credential_id=credential_id,
            ) from e

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise OAuth2Error(
                "Token response did not contain an access_token",
                credential_id=credential_id,
            )

        logger.info(
            f"OAuth2 token obtained ({data.get('grant_type')}), "
            f"expires in {token_data.get('expires_in', 'unknown')}s"
        )
        return token_data

    # Handle error response
    try:
        error_data = response.json()
        error_code = error_data.get("error", "unknown")
        error_desc = error_data.get("error_description", f"Status {response.status_code}")
    except (ValueError, AttributeError):
        raise OAuth2Error(
            f"Token request failed: {response.status_code} - {response.text[:200]}",
            credential_id=credential_id,
        )
    raise OAuth2Error(f"{error_code}: {error_desc}", error_code, credential_id)


async def refresh_access_token(
    token_url: str,
    refresh_token: str,
    client_id: str | None = None,
    client_secret: str | None = None,
    client: httpx.AsyncClient | None = None,
    credential_id: str | None = None,
) -> dict[str, Any]:
    """Exchange a refresh token for a new access token."""
    return await request_token(
        token_url,
        {
            "grant_type": "refresh_token",
            "client_id": client_id or "",
            "client_secret": client_secret or "",
            "refresh_token": refresh_token,
        },
        client=client,
        credential_id=credential_id,
    )


async def client_credentials_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    scope: str | None = None,
    client: httpx.AsyncClient | None = None,
    credential_id: str | None = None,
) -> dict[str, Any]:
    """Obtain a machine-to-machine token with the client credentials grant."""
    return await request_token(
        token_url,
        {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": scope or "",
        },
        client=client,
        credential_id=credential_id,
    )
