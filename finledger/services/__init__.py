"""Services package."""

from finledger.services.auth import (
    AuthService,
    BcryptCredentialStore,
    CredentialStore,
    RegistrationError,
)
from finledger.services.currency import (
    CurrencyConverter,
    InvalidOperationError,
    UnsupportedCurrencyError,
)
from finledger.services.storage import (
    AccountStore,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStore,
    UserStore,
)

__all__ = [
    # Auth services
    "AuthService",
    "BcryptCredentialStore",
    "CredentialStore",
    "RegistrationError",
    # Currency services
    "CurrencyConverter",
    "InvalidOperationError",
    "UnsupportedCurrencyError",
    # Storage services
    "AccountStore",
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "TransactionStore",
    "UserStore",
]
