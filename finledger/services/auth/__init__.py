"""Authentication services."""

from finledger.services.auth.credentials import (
    BcryptCredentialStore,
    CredentialStore,
    PasswordHash,
)
from finledger.services.auth.service import (
    AuthService,
    RegistrationError,
    UsernameTakenError,
)

__all__ = [
    "AuthService",
    "BcryptCredentialStore",
    "CredentialStore",
    "PasswordHash",
    "RegistrationError",
    "UsernameTakenError",
]
