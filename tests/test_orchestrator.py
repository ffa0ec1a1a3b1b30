"""Tests for LedgerService and the component factory."""

import random
import threading
from datetime import date
from decimal import Decimal

import pytest

from finledger.analytics import RecommendationSelector
from finledger.models.audit import AuditEventType
from finledger.models.ledger import Account, AccountType, Money, TransactionType
from finledger.orchestrator import (
    AccountNotFoundError,
    ConfigurationError,
    LedgerInconsistencyError,
    LedgerService,
    create_ledger_components,
    month_bounds,
)
from finledger.services.currency import InvalidOperationError, UnsupportedCurrencyError
from finledger.services.storage import (
    InMemoryAccountStore,
    InMemoryAuditStorage,
    InMemoryTransactionStore,
    NotFoundError,
    StorageError,
)
from finledger.validation import ValidationError

INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE


class FailingTransactionStore(InMemoryTransactionStore):
    """Every insert fails."""

    def insert(self, transaction):
        raise StorageError("disk full")


class RestoreFailsAccountStore(InMemoryAccountStore):
    """The first balance write succeeds, every later one fails."""

    def __init__(self):
        super().__init__()
        self.writes = 0

    def update_balance(self, account_id, new_balance):
        self.writes += 1
        if self.writes > 1:
            raise StorageError("connection lost")
        super().update_balance(account_id, new_balance)


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestApplyTransaction:
    """Tests for applying transactions to balances."""

    def test_end_to_end_balance(self, ledger, open_account, make_tx):
        """Test 1000 USD + 500 income - 200 expense = 1300."""
        account = open_account(1, "1000", "USD")

        ledger.apply_transaction(1, make_tx("500", type=INCOME, category="Salary",
                                            account_id=account.id))
        assert ledger.get_account(1, account.id).balance.amount == Decimal("1500")

        ledger.apply_transaction(1, make_tx("200", account_id=account.id))
        assert ledger.get_account(1, account.id).balance.amount == Decimal("1300")

        assert ledger.net_worth(1, "USD") == Money(amount=Decimal("1300"), currency="USD")

    def test_returns_stored_transaction(self, ledger, open_account, make_tx):
        """Test that the returned transaction carries its id."""
        account = open_account(1, "10", "USD")
        stored = ledger.apply_transaction(1, make_tx("5", account_id=account.id))
        assert stored.id is not None
        assert ledger.account_transactions(1, account.id) == [stored]

    def test_missing_account(self, ledger, make_tx):
        """Test that an unknown account is rejected."""
        with pytest.raises(AccountNotFoundError) as exc_info:
            ledger.apply_transaction(1, make_tx("5", account_id=99))
        assert exc_info.value.account_id == 99
        assert isinstance(exc_info.value, NotFoundError)

    def test_other_users_account(self, ledger, open_account, make_tx):
        """Test that a user cannot post to someone else's account."""
        account = open_account(2, "100", "USD")
        with pytest.raises(AccountNotFoundError):
            ledger.apply_transaction(1, make_tx("5", user_id=1, account_id=account.id))
        assert ledger.get_account(2, account.id).balance.amount == Decimal("100")

    def test_transaction_user_must_match_caller(self, ledger, open_account, make_tx):
        """Test that the caller's user id and the transaction's agree."""
        account = open_account(1, "100", "USD")
        with pytest.raises(AccountNotFoundError):
            ledger.apply_transaction(2, make_tx("5", user_id=1, account_id=account.id))

    def test_invalid_transaction_leaves_balance(self, ledger, open_account, make_tx):
        """Test that validation failures never touch the balance."""
        account = open_account(1, "100", "USD")
        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_transaction(1, make_tx("5", category="   ", account_id=account.id))
        assert exc_info.value.result.has_errors
        assert ledger.get_account(1, account.id).balance.amount == Decimal("100")

    def test_insert_failure_restores_balance(
        self, account_store, converter, audit_logger, audit_storage, make_tx
    ):
        """Test the compensating write after a failed insert."""
        ledger = LedgerService(
            account_store=account_store,
            transaction_store=FailingTransactionStore(),
            converter=converter,
            audit_logger=audit_logger,
        )
        account = ledger.open_account(_account(1, "1000", "USD"))

        with pytest.raises(StorageError, match="disk full"):
            ledger.apply_transaction(1, make_tx("200", account_id=account.id))

        assert ledger.get_account(1, account.id).balance.amount == Decimal("1000")
        types = event_types(audit_storage)
        assert AuditEventType.BALANCE_COMPENSATED in types
        assert AuditEventType.TRANSACTION_FAILED in types
        assert AuditEventType.TRANSACTION_APPLIED not in types

    def test_failed_restore_raises_inconsistency(
        self, converter, audit_logger, audit_storage, make_tx
    ):
        """Test that a failed compensation is surfaced loudly."""
        ledger = LedgerService(
            account_store=RestoreFailsAccountStore(),
            transaction_store=FailingTransactionStore(),
            converter=converter,
            audit_logger=audit_logger,
        )
        account = ledger.open_account(_account(1, "1000", "USD"))

        with pytest.raises(LedgerInconsistencyError) as exc_info:
            ledger.apply_transaction(1, make_tx("200", account_id=account.id))

        assert exc_info.value.account_id == account.id
        assert exc_info.value.expected_balance == Decimal("1000")
        assert AuditEventType.COMPENSATION_FAILED in event_types(audit_storage)

    def test_audit_trail(self, ledger, open_account, make_tx, audit_storage):
        """Test that opening and posting are audited."""
        account = open_account(1, "10", "USD")
        stored = ledger.apply_transaction(1, make_tx("5", account_id=account.id))

        applied = audit_storage.get_events_by_entity("transaction", str(stored.id))
        assert len(applied) == 1
        assert applied[0].details["old_balance"] == "10"
        assert applied[0].details["new_balance"] == "5"
        assert event_types(audit_storage)[0] == AuditEventType.ACCOUNT_OPENED

    def test_concurrent_writes_are_serialized(self, ledger, open_account, make_tx):
        """Test that parallel posts to one account lose no updates."""
        account = open_account(1, "0", "USD")
        tx = make_tx("1", type=INCOME, category="Gift", account_id=account.id)

        threads = [
            threading.Thread(target=ledger.apply_transaction, args=(1, tx))
            for _ in range(25)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ledger.get_account(1, account.id).balance.amount == Decimal("25")
        assert len(ledger.account_transactions(1, account.id)) == 25


class TestNetWorth:
    """Tests for multi-currency net worth."""

    def test_two_currencies(self, ledger, open_account):
        """Test 1000 USD + 7770 HKD = 2000 USD."""
        open_account(1, "1000", "USD")
        open_account(1, "7770", "HKD", name="HK Savings", type=AccountType.SAVINGS)

        total = ledger.net_worth(1, "USD")
        assert total.currency == "USD"
        assert total.amount == Decimal("2000.00")

    def test_no_accounts(self, ledger):
        """Test that a user without accounts is worth zero."""
        assert ledger.net_worth(1, "EUR") == Money(amount=Decimal("0"), currency="EUR")

    def test_scoped_to_user(self, ledger, open_account):
        """Test that other users' accounts are not counted."""
        open_account(1, "100", "USD")
        open_account(2, "999999", "USD")
        assert ledger.net_worth(1, "USD").amount == Decimal("100")

    def test_unsupported_target(self, ledger, open_account):
        """Test conversion into an unknown currency."""
        open_account(1, "100", "USD")
        with pytest.raises(UnsupportedCurrencyError, match="GBP"):
            ledger.net_worth(1, "GBP")

    def test_rate_update_is_used(self, ledger, open_account, audit_storage):
        """Test that net worth follows an updated rate and the update is audited."""
        open_account(1, "100", "EUR")
        ledger.update_exchange_rate("EUR", Decimal("10"))

        assert ledger.net_worth(1, "HKD").amount == Decimal("1000.00")
        events = audit_storage.get_events_by_entity("currency", "EUR")
        assert events[0].details == {"old_rate": "9.01", "new_rate": "10"}

    def test_base_rate_update_rejected(self, ledger):
        """Test the base currency guard through the service."""
        with pytest.raises(InvalidOperationError):
            ledger.update_exchange_rate("HKD", Decimal("2"))
        with pytest.raises(InvalidOperationError):
            ledger.update_exchange_rate("hkd", Decimal("2"))

    def test_lowercase_rate_update(self, ledger, open_account, audit_storage):
        """Test that a lowercase code updates and audits the canonical currency."""
        open_account(1, "100", "EUR")
        assert ledger.update_exchange_rate("eur", Decimal("10")) == Decimal("9.01")

        assert ledger.net_worth(1, "HKD").amount == Decimal("1000.00")
        assert len(audit_storage.get_events_by_entity("currency", "EUR")) == 1


class TestPeriodQueries:
    """Tests for monthly metrics, breakdown and recommendation."""

    @pytest.fixture
    def populated(self, ledger, open_account, make_tx):
        checking = open_account(1, "0", "USD")
        cash = open_account(1, "0", "USD", name="Wallet", type=AccountType.CASH)
        other = open_account(2, "0", "USD")

        posts = [
            (1, make_tx("5000", type=INCOME, category="Salary",
                        account_id=checking.id, on=date(2024, 3, 1))),
            (1, make_tx("1500", category="Food & Dining",
                        account_id=checking.id, on=date(2024, 3, 15))),
            (1, make_tx("500", category="Utilities",
                        account_id=cash.id, on=date(2024, 3, 31))),
            # Outside March
            (1, make_tx("999", category="Utilities",
                        account_id=checking.id, on=date(2024, 4, 1))),
            (1, make_tx("999", category="Utilities",
                        account_id=checking.id, on=date(2024, 2, 29))),
            # Another user in March
            (2, make_tx("777", category="Entertainment", user_id=2,
                        account_id=other.id, on=date(2024, 3, 10))),
        ]
        for user_id, tx in posts:
            ledger.apply_transaction(user_id, tx)
        return checking, cash, other

    def test_monthly_metrics(self, ledger, populated):
        """Test metrics use only the user's transactions in that month."""
        metrics = ledger.monthly_metrics(1, 2024, 3)
        assert metrics.total_income == Decimal("5000")
        assert metrics.total_expenses == Decimal("2000")
        assert metrics.net_cash_flow == Decimal("3000")
        assert metrics.savings_rate == Decimal("60.0000")
        assert metrics.expense_to_income_ratio == Decimal("40.0000")

    def test_empty_month(self, ledger, populated):
        """Test a month without transactions."""
        metrics = ledger.monthly_metrics(1, 2023, 12)
        assert metrics.total_income == 0
        assert metrics.savings_rate == 0

    def test_category_breakdown(self, ledger, populated):
        """Test the month's expense shares for one user."""
        breakdown = ledger.category_breakdown(1, 2024, 3)
        assert breakdown.total_expenses == Decimal("2000")
        assert breakdown.category_percentages == {
            "Utilities": Decimal("25.0000"),
            "Food & Dining": Decimal("75.0000"),
        }

    def test_category_breakdown_for_account(self, ledger, populated):
        """Test restricting the breakdown to one account."""
        checking, cash, _ = populated
        breakdown = ledger.category_breakdown(1, 2024, 3, account_id=cash.id)
        assert breakdown.category_percentages == {"Utilities": Decimal("100.0000")}

    def test_category_breakdown_foreign_account(self, ledger, populated):
        """Test that another user's account cannot be queried."""
        _, _, other = populated
        with pytest.raises(AccountNotFoundError):
            ledger.category_breakdown(1, 2024, 3, account_id=other.id)

    def test_recommendation(self, populated, account_store, transaction_store, converter):
        """Test the recommendation comes from the month's metrics."""
        selector = RecommendationSelector(rng=random.Random(3))
        ledger = LedgerService(
            account_store=account_store,
            transaction_store=transaction_store,
            converter=converter,
            recommendation_selector=selector,
        )
        metrics = ledger.monthly_metrics(1, 2024, 3)
        assert ledger.recommendation(1, 2024, 3) in selector.generate(metrics)

    def test_account_transactions_newest_first(self, ledger, populated):
        """Test ordering of an account's history."""
        checking, _, _ = populated
        dates = [t.date for t in ledger.account_transactions(1, checking.id)]
        assert dates == sorted(dates, reverse=True)
        assert len(dates) == 4

    def test_invalid_month(self, ledger):
        """Test month validation."""
        with pytest.raises(ValueError):
            ledger.monthly_metrics(1, 2024, 13)

    def test_month_bounds(self):
        """Test inclusive first and last day, including leap years."""
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(2023, 2) == (date(2023, 2, 1), date(2023, 2, 28))
        assert month_bounds(2024, 12) == (date(2024, 12, 1), date(2024, 12, 31))


class TestAccounts:
    """Tests for account management on the service."""

    def test_accounts_for_user(self, ledger, open_account):
        """Test listing only the user's accounts."""
        a = open_account(1, "1", "USD")
        open_account(2, "1", "USD")
        assert [x.id for x in ledger.accounts_for_user(1)] == [a.id]

    def test_open_account_assigns_id(self, ledger, open_account):
        """Test that opened accounts come back with ids."""
        first = open_account(1, "1", "USD")
        second = open_account(1, "1", "HKD")
        assert first.id != second.id
        assert ledger.get_account(1, second.id).currency == "HKD"


class TestCreateLedgerComponents:
    """Tests for the factory."""

    def test_in_memory(self, make_tx):
        """Test wiring without a database."""
        ledger, auth, database = create_ledger_components(use_database=False)
        assert database is None

        user = auth.register("alice", "secret123", currency_code="USD")
        account = ledger.open_account(_account(user.id, "1000", "USD"))
        ledger.apply_transaction(user.id, make_tx("1", user_id=user.id, account_id=account.id))
        assert ledger.net_worth(user.id, "USD").amount == Decimal("999")

    def test_unusable_database_falls_back_to_memory(self, monkeypatch):
        """Test the in-memory fallback and its audited error."""
        audit_storage = InMemoryAuditStorage()
        monkeypatch.setattr("finledger.orchestrator.InMemoryAuditStorage", lambda: audit_storage)

        ledger, auth, database = create_ledger_components(database_url="nosuchdialect://ledger")

        assert database is None
        [event] = audit_storage.events
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.description == "System error: ConnectionError"
        assert event.details == {"fallback": "memory"}

    def test_invalid_settings_rejected(self, monkeypatch):
        """Test that a bad settings group stops component creation."""
        monkeypatch.setenv("FINLEDGER_CURRENCY_SEED_RATES", '{"USD": "-1"}')
        with pytest.raises(ConfigurationError, match="Invalid settings: currency"):
            create_ledger_components(use_database=False)

    def test_sqlite(self, tmp_path, make_tx):
        """Test wiring against a SQLite file."""
        url = f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}"
        ledger, auth, database = create_ledger_components(database_url=url)
        try:
            assert database is not None
            user = auth.register("bob", "secret123")
            account = ledger.open_account(_account(user.id, "1000", "USD"))
            ledger.apply_transaction(
                user.id, make_tx("250.50", user_id=user.id, account_id=account.id)
            )
            assert ledger.get_account(user.id, account.id).balance.amount == Decimal("749.50")
        finally:
            if database is not None:
                database.dispose()


def _account(user_id, amount, currency):
    return Account(
        user_id=user_id,
        name="Main",
        type=AccountType.CHECKING,
        balance=Money(amount=Decimal(amount), currency=currency),
    )
