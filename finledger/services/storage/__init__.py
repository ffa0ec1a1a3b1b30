"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory backends serve tests and quick scripts; the SQLAlchemy backend
is the persistent one.
"""

from finledger.services.storage.interface import (
    AccountStore,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    StoredCredentials,
    TransactionStore,
    UserStore,
)
from finledger.services.storage.memory import (
    InMemoryAccountStore,
    InMemoryAuditStorage,
    InMemoryTransactionStore,
    InMemoryUserStore,
)
from finledger.services.storage.sql import (
    SqlAccountStore,
    SqlAuditStorage,
    SqlDatabase,
    SqlTransactionStore,
    SqlUserStore,
)

__all__ = [
    # Interfaces
    "AccountStore",
    "AuditStorageInterface",
    "StoredCredentials",
    "TransactionStore",
    "UserStore",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountStore",
    "InMemoryAuditStorage",
    "InMemoryTransactionStore",
    "InMemoryUserStore",
    # SQLAlchemy implementation
    "SqlAccountStore",
    "SqlAuditStorage",
    "SqlDatabase",
    "SqlTransactionStore",
    "SqlUserStore",
]
