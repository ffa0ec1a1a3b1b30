"""Shared fixtures: in-memory ledger wiring, SQLite database, transaction factory."""

from datetime import date
from decimal import Decimal

import pytest

from finledger.audit import AuditLogger
from finledger.config import AppSettings
from finledger.models.ledger import (
    Account,
    AccountType,
    Money,
    Transaction,
    TransactionType,
)
from finledger.orchestrator import LedgerService
from finledger.services.currency import CurrencyConverter
from finledger.services.storage import (
    InMemoryAccountStore,
    InMemoryAuditStorage,
    InMemoryTransactionStore,
    SqlDatabase,
)
from finledger.validation import TransactionValidator


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def converter():
    return CurrencyConverter()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def account_store():
    return InMemoryAccountStore()


@pytest.fixture
def transaction_store():
    return InMemoryTransactionStore()


@pytest.fixture
def ledger(account_store, transaction_store, converter, audit_logger, app_settings):
    return LedgerService(
        account_store=account_store,
        transaction_store=transaction_store,
        converter=converter,
        validator=TransactionValidator(app_settings),
        audit_logger=audit_logger,
    )


@pytest.fixture
def open_account(ledger):
    """Open an account: open_account(user_id, "1000", "USD", name=...)."""
    def _open(user_id, amount, currency, name="Checking", type=AccountType.CHECKING):
        return ledger.open_account(Account(
            user_id=user_id,
            name=name,
            type=type,
            balance=Money(amount=Decimal(amount), currency=currency),
        ))
    return _open


@pytest.fixture
def make_tx():
    """Build a Transaction with sensible defaults."""
    def _make(
        amount,
        type=TransactionType.EXPENSE,
        category="Food & Dining",
        user_id=1,
        account_id=1,
        on=None,
        description="Test transaction",
    ):
        return Transaction(
            user_id=user_id,
            account_id=account_id,
            description=description,
            amount=Decimal(amount),
            type=type,
            category=category,
            date=on or date.today(),
        )
    return _make


@pytest.fixture
def sql_db(tmp_path):
    db = SqlDatabase(f"sqlite+pysqlite:///{tmp_path / 'finance.db'}")
    db.create_all()
    yield db
    db.dispose()
