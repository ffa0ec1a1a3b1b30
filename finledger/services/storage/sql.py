"""
SQLAlchemy Storage Implementation

Relational backend for users, accounts, transactions and the audit log.
Defaults to a local SQLite file (see DatabaseSettings.url).

Schema:
- users:        id, username (unique), password_hash, salt, email,
                created_date, base_currency
- accounts:     id, user_id -> users.id, name, type, balance, currency
- transactions: id, user_id -> users.id, account_id -> accounts.id,
                description, amount, type, category, date, notes
- audit_events: append-only audit trail

DESIGN DECISION: Money columns are Numeric(15, 2) and every amount is
quantized to cents (ROUND_HALF_UP) before it is written.

Retry policy: writes that hit an OperationalError (e.g. "database is
locked") are retried with exponential backoff. Everything else is
wrapped in StorageError and raised immediately.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finledger.models.ledger import (
    Account,
    AccountType,
    Money,
    Transaction,
    TransactionType,
    User,
)
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


logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def _to_cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


# Retry decorator for writes contending on the database
_retry_on_operational_error = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


# =============================================================================
# ORM TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    salt: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# =============================================================================
# ENGINE / SESSIONS
# =============================================================================

class SqlDatabase:
    """
    Owns the engine and session factory for one database URL.

    Usage:
        db = SqlDatabase("sqlite+pysqlite:///data/finance.db")
        db.create_all()
        with db.session_scope() as s:
            s.execute(...)
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        parsed = make_url(url)
        self._is_sqlite = parsed.get_backend_name() == "sqlite"

        if self._is_sqlite and parsed.database not in (None, "", ":memory:"):
            # SQLite creates the file but not its directory
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._engine: Engine = create_engine(url, echo=echo, pool_pre_ping=True)
        except SQLAlchemyError as e:
            raise ConnectionError(f"Failed to create database engine: {e}") from e

        if self._is_sqlite:
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)

        self._session_maker = sessionmaker(
            bind=self._engine, expire_on_commit=False, class_=Session
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        """Create any missing tables."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            raise ConnectionError(f"Failed to initialize schema: {e}") from e
        logger.info("database_schema_ready", backend=self._engine.dialect.name)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


# =============================================================================
# ROW <-> MODEL
# =============================================================================

def _account_from_row(row: AccountRow) -> Account:
    return Account(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        type=AccountType(row.type),
        balance=Money(amount=Decimal(row.balance), currency=row.currency),
    )


def _transaction_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        account_id=row.account_id,
        description=row.description,
        amount=Decimal(row.amount),
        type=TransactionType(row.type),
        category=row.category,
        date=row.date,
        notes=row.notes,
    )


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        base_currency=row.base_currency,
        created_at=row.created_date,
    )


def _event_from_row(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        event_id=UUID(row.event_id),
        timestamp=row.timestamp,
        event_type=AuditEventType(row.event_type),
        severity=AuditSeverity(row.severity),
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        user_id=row.user_id,
        correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
        description=row.description,
        details=json.loads(row.details or "{}"),
        error_message=row.error_message,
    )


# =============================================================================
# STORES
# =============================================================================

class SqlAccountStore(AccountStore):
    """Accounts table access."""

    def __init__(self, db: SqlDatabase):
        self._db = db

    def insert(self, account: Account) -> int:
        try:
            return self._insert(account)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert account: {e}") from e

    @_retry_on_operational_error
    def _insert(self, account: Account) -> int:
        with self._db.session_scope() as session:
            row = AccountRow(
                user_id=account.user_id,
                name=account.name,
                type=account.type.value,
                balance=_to_cents(account.balance.amount),
                currency=account.currency,
            )
            session.add(row)
            session.flush()
            return row.id

    def find_by_id(self, account_id: int) -> Optional[Account]:
        try:
            with self._db.session_scope() as session:
                row = session.get(AccountRow, account_id)
                return _account_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load account {account_id}: {e}") from e

    def find_by_user(self, user_id: int) -> list[Account]:
        return self._select(
            select(AccountRow).where(AccountRow.user_id == user_id).order_by(AccountRow.id)
        )

    def find_all(self) -> list[Account]:
        return self._select(select(AccountRow).order_by(AccountRow.id))

    def _select(self, stmt) -> list[Account]:
        try:
            with self._db.session_scope() as session:
                return [_account_from_row(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list accounts: {e}") from e

    def update_balance(self, account_id: int, new_balance: Decimal) -> None:
        try:
            self._update_balance(account_id, new_balance)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update balance of account {account_id}: {e}") from e

    @_retry_on_operational_error
    def _update_balance(self, account_id: int, new_balance: Decimal) -> None:
        with self._db.session_scope() as session:
            row = session.get(AccountRow, account_id)
            if row is None:
                raise NotFoundError(f"Account {account_id} not found")
            row.balance = _to_cents(new_balance)


class SqlTransactionStore(TransactionStore):
    """Transactions table access. Lists are newest first."""

    def __init__(self, db: SqlDatabase):
        self._db = db

    def insert(self, transaction: Transaction) -> int:
        try:
            return self._insert(transaction)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert transaction: {e}") from e

    @_retry_on_operational_error
    def _insert(self, transaction: Transaction) -> int:
        with self._db.session_scope() as session:
            row = TransactionRow(
                user_id=transaction.user_id,
                account_id=transaction.account_id,
                description=transaction.description,
                amount=_to_cents(transaction.amount),
                type=transaction.type.value,
                category=transaction.category,
                date=transaction.date,
                notes=transaction.notes,
            )
            session.add(row)
            session.flush()
            return row.id

    def find_by_account(self, account_id: int) -> list[Transaction]:
        return self._select(
            select(TransactionRow).where(TransactionRow.account_id == account_id)
        )

    def find_by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = select(TransactionRow).where(
            TransactionRow.date >= start,
            TransactionRow.date <= end,
        )
        if user_id is not None:
            stmt = stmt.where(TransactionRow.user_id == user_id)
        return self._select(stmt)

    def _select(self, stmt) -> list[Transaction]:
        stmt = stmt.order_by(TransactionRow.date.desc(), TransactionRow.id.desc())
        try:
            with self._db.session_scope() as session:
                return [_transaction_from_row(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}") from e


class SqlUserStore(UserStore):
    """Users table access, including password material."""

    def __init__(self, db: SqlDatabase):
        self._db = db

    def insert(self, user: User, password_hash: str, salt: str) -> int:
        try:
            return self._insert(user, password_hash, salt)
        except IntegrityError as e:
            raise DuplicateError(f"Username already exists: {user.username}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert user: {e}") from e

    @_retry_on_operational_error
    def _insert(self, user: User, password_hash: str, salt: str) -> int:
        with self._db.session_scope() as session:
            row = UserRow(
                username=user.username,
                password_hash=password_hash,
                salt=salt,
                email=user.email,
                created_date=user.created_at,
                base_currency=user.base_currency,
            )
            session.add(row)
            session.flush()
            return row.id

    def _find_row(self, session: Session, username: str) -> Optional[UserRow]:
        return session.scalars(
            select(UserRow).where(UserRow.username == username)
        ).first()

    def find_by_username(self, username: str) -> Optional[User]:
        try:
            with self._db.session_scope() as session:
                row = self._find_row(session, username)
                return _user_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load user {username}: {e}") from e

    def find_by_id(self, user_id: int) -> Optional[User]:
        try:
            with self._db.session_scope() as session:
                row = session.get(UserRow, user_id)
                return _user_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load user {user_id}: {e}") from e

    def exists(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def get_credentials(self, username: str) -> Optional[StoredCredentials]:
        try:
            with self._db.session_scope() as session:
                row = self._find_row(session, username)
                if row is None:
                    return None
                return StoredCredentials(row.id, row.password_hash, row.salt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load credentials: {e}") from e

    def update_credentials(self, user_id: int, password_hash: str, salt: str) -> None:
        try:
            self._update_credentials(user_id, password_hash, salt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update credentials: {e}") from e

    @_retry_on_operational_error
    def _update_credentials(self, user_id: int, password_hash: str, salt: str) -> None:
        with self._db.session_scope() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                raise NotFoundError(f"User {user_id} not found")
            row.password_hash = password_hash
            row.salt = salt


class SqlAuditStorage(AuditStorageInterface):
    """Append-only audit_events table."""

    def __init__(self, db: SqlDatabase):
        self._db = db

    @_retry_on_operational_error
    def append_event(self, event: AuditEvent) -> bool:
        with self._db.session_scope() as session:
            session.add(AuditEventRow(
                event_id=str(event.event_id),
                timestamp=event.timestamp,
                event_type=event.event_type.value,
                severity=event.severity.value,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                user_id=event.user_id,
                correlation_id=str(event.correlation_id) if event.correlation_id else None,
                description=event.description,
                details=json.dumps(event.details, default=str),
                error_message=event.error_message,
            ))
        return True

    def _select(self, stmt) -> list[AuditEvent]:
        with self._db.session_scope() as session:
            return [_event_from_row(r) for r in session.scalars(stmt)]

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == str(correlation_id))
            .order_by(AuditEventRow.id)
        )

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == str(entity_id),
            )
            .order_by(AuditEventRow.id)
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow).order_by(AuditEventRow.id.desc()).limit(limit)
        )
