"""Exception hierarchy for the pipeline engine.

Configuration and credential errors always reach the caller. Upstream
errors raised by adapters are subject to the pipeline's retry policy.
"""

from __future__ import annotations


class ETLError(Exception):
    """Base exception for pipeline errors."""

    pass


class ConfigurationError(ETLError):
    """Missing adapter, endpoint, capability, or required config field."""

    def __init__(self, message: str, connector_id: str | None = None) -> None:
        super().__init__(message)
        self.connector_id = connector_id


class CredentialError(ETLError):
    """Base exception for credential resolution failures."""

    def __init__(self, message: str, credential_id: str | None = None) -> None:
        super().__init__(message)
        self.credential_id = credential_id


class CredentialsNotFound(CredentialError):
    """The credential id is not present in the vault."""

    pass


class AuthorizationRequired(CredentialError):
    """OAuth2 credential has no usable token and needs interactive authorization."""

    pass


class OAuth2Error(CredentialError):
    """Raised when an OAuth2 token exchange fails."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        credential_id: str | None = None,
    ) -> None:
        super().__init__(message, credential_id)
        self.error_code = error_code


class UpstreamOperationError(ETLError):
    """Wraps an error raised by an adapter during download or upload."""

    def __init__(self, message: str, stage: str, connector_id: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.connector_id = connector_id


class TimeoutExceeded(ETLError):
    """The extraction loop ran past the connector timeout."""

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"Download timeout exceeded ({timeout_ms:g}ms)")
        self.timeout_ms = timeout_ms


class HaltedByCaller(ETLError):
    """The pre-send hook asked the pipeline to stop before loading."""

    pass


def is_fatal(error: BaseException) -> bool:
    """Check whether an error must reach the caller regardless of policy."""
    return isinstance(error, (ConfigurationError, CredentialError))
