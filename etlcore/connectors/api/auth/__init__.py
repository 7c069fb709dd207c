"""Authentication helpers for API adapters."""

from .oauth2 import (
    client_credentials_token,
    refresh_access_token,
    request_token,
)

__all__ = [
    "client_credentials_token",
    "refresh_access_token",
    "request_token",
]
