"""Security module for credential management.

Provides the credential vault, OAuth2 token freshness and encryption for
secrets stored in vault files.
"""

from .credentials import (
    CredentialManager,
    SecretCipher,
    Vault,
)

__all__ = [
    "CredentialManager",
    "SecretCipher",
    "Vault",
]
