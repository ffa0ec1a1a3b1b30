"""
In-memory storage backends.

Used by the test suite and as the default wiring when no database URL
is configured. Ids are assigned sequentially from 1, like an
autoincrement column.
"""

import threading
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finledger.models.audit import AuditEvent
from finledger.models.ledger import Account, Transaction, User
from finledger.services.storage.interface import (
    AccountStore,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    StoredCredentials,
    TransactionStore,
    UserStore,
)


def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda t: (t.date, t.id or 0), reverse=True)


class InMemoryAccountStore(AccountStore):
    """Accounts kept in a dict keyed by id."""

    def __init__(self):
        self._accounts: dict[int, Account] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, account: Account) -> int:
        with self._lock:
            account_id = self._next_id
            self._next_id += 1
            self._accounts[account_id] = account.model_copy(update={"id": account_id})
            return account_id

    def find_by_id(self, account_id: int) -> Optional[Account]:
        return self._accounts.get(account_id)

    def find_by_user(self, user_id: int) -> list[Account]:
        return [a for a in self._accounts.values() if a.user_id == user_id]

    def find_all(self) -> list[Account]:
        return list(self._accounts.values())

    def update_balance(self, account_id: int, new_balance: Decimal) -> None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFoundError(f"Account {account_id} not found")
            self._accounts[account_id] = account.with_balance(new_balance)


class InMemoryTransactionStore(TransactionStore):
    """Transactions kept in insertion order."""

    def __init__(self):
        self._transactions: list[Transaction] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, transaction: Transaction) -> int:
        with self._lock:
            transaction_id = self._next_id
            self._next_id += 1
            self._transactions.append(transaction.with_id(transaction_id))
            return transaction_id

    def find_by_account(self, account_id: int) -> list[Transaction]:
        return _newest_first(
            [t for t in self._transactions if t.account_id == account_id]
        )

    def find_by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Transaction]:
        matches = [
            t for t in self._transactions
            if start <= t.date <= end
            and (user_id is None or t.user_id == user_id)
        ]
        return _newest_first(matches)


class InMemoryUserStore(UserStore):
    """Users and their credentials, keyed by id."""

    def __init__(self):
        self._users: dict[int, User] = {}
        self._credentials: dict[int, tuple[str, str]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, user: User, password_hash: str, salt: str) -> int:
        with self._lock:
            if self.exists(user.username):
                raise DuplicateError(f"Username already exists: {user.username}")
            user_id = self._next_id
            self._next_id += 1
            self._users[user_id] = user.model_copy(update={"id": user_id})
            self._credentials[user_id] = (password_hash, salt)
            return user_id

    def find_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def exists(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def get_credentials(self, username: str) -> Optional[StoredCredentials]:
        user = self.find_by_username(username)
        if user is None:
            return None
        password_hash, salt = self._credentials[user.id]
        return StoredCredentials(user.id, password_hash, salt)

    def update_credentials(self, user_id: int, password_hash: str, salt: str) -> None:
        with self._lock:
            if user_id not in self._users:
                raise NotFoundError(f"User {user_id} not found")
            self._credentials[user_id] = (password_hash, salt)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == str(entity_id)
        ]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
