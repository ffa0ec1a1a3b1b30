"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger against SQLite, or any SQLAlchemy database, in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - plain CRUD over users, accounts
and transactions. Nothing here knows about balances or metrics.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

from finledger.models.audit import AuditEvent
from finledger.models.ledger import Account, Transaction, User


class StoredCredentials(NamedTuple):
    """Password material kept beside a user row."""
    user_id: int
    password_hash: str
    salt: str


class AccountStore(ABC):
    """
    Abstract interface for account storage operations.
    """

    @abstractmethod
    def insert(self, account: Account) -> int:
        """
        Save a new account.

        Returns:
            The assigned account id
        """
        pass

    @abstractmethod
    def find_by_id(self, account_id: int) -> Optional[Account]:
        """Return the account if found, None otherwise."""
        pass

    @abstractmethod
    def find_by_user(self, user_id: int) -> list[Account]:
        """Return every account owned by a user."""
        pass

    @abstractmethod
    def find_all(self) -> list[Account]:
        """Return every account in storage, regardless of owner."""
        pass

    @abstractmethod
    def update_balance(self, account_id: int, new_balance: Decimal) -> None:
        """
        Overwrite an account's balance amount.

        Raises:
            NotFoundError: If the account doesn't exist
            StorageError: If the write fails
        """
        pass


class TransactionStore(ABC):
    """
    Abstract interface for transaction storage operations.

    All list operations return transactions ordered by date, newest first.
    """

    @abstractmethod
    def insert(self, transaction: Transaction) -> int:
        """
        Save a new transaction.

        Returns:
            The assigned transaction id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def find_by_account(self, account_id: int) -> list[Transaction]:
        """Return all transactions on one account."""
        pass

    @abstractmethod
    def find_by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Transaction]:
        """
        Return transactions dated within [start, end].

        Args:
            start: First day (inclusive)
            end: Last day (inclusive)
            user_id: Restrict to one user's transactions when given
        """
        pass


class UserStore(ABC):
    """
    Abstract interface for user storage.

    Credentials are stored beside the user but never loaded onto User.
    """

    @abstractmethod
    def insert(self, user: User, password_hash: str, salt: str) -> int:
        """
        Save a new user with its credentials.

        Raises:
            DuplicateError: If the username is taken
        """
        pass

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    def find_by_id(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def exists(self, username: str) -> bool:
        pass

    @abstractmethod
    def get_credentials(self, username: str) -> Optional[StoredCredentials]:
        """Return stored hash and salt for a username, if the user exists."""
        pass

    @abstractmethod
    def update_credentials(self, user_id: int, password_hash: str, salt: str) -> None:
        """
        Replace a user's password material.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one statement import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'account', 'currency')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
