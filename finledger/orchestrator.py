"""
Ledger Orchestrator

This module ties the aggregation core to persistence and defines the
end-to-end flows for:
1. Applying a transaction to an account balance
2. Net worth across a user's accounts (multi-currency)
3. Monthly metrics, expense breakdown and recommendations

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every call names its user explicitly; there is no session state
- Every aggregation is scoped to that user
- Writes to one account are serialized
- A failed transaction insert never leaves a changed balance behind

Balance and transaction live in two separate writes. When the insert
fails after the balance write, the old balance is written back
(compensating action) and the insert error is re-raised. Only when
that restore also fails does LedgerInconsistencyError surface.
"""

import calendar
import threading
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from finledger.analytics import (
    CategoryBreakdownCalculator,
    MetricsCalculator,
    RecommendationSelector,
)
from finledger.audit import AuditLogger, configure_logging
from finledger.config import get_settings, validate_all_settings
from finledger.models.ledger import (
    Account,
    ExpenseCategoryBreakdown,
    FinancialMetrics,
    Money,
    Transaction,
)
from finledger.services.auth import AuthService
from finledger.services.currency import CurrencyConverter
from finledger.services.storage import (
    AccountStore,
    InMemoryAccountStore,
    InMemoryAuditStorage,
    InMemoryTransactionStore,
    InMemoryUserStore,
    NotFoundError,
    SqlAccountStore,
    SqlAuditStorage,
    SqlDatabase,
    SqlTransactionStore,
    SqlUserStore,
    StorageError,
    TransactionStore,
)
from finledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)


class AccountNotFoundError(NotFoundError):
    """The account does not exist or belongs to another user."""

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class LedgerInconsistencyError(StorageError):
    """A balance could not be restored after a failed transaction insert."""

    def __init__(self, account_id: int, expected_balance: Decimal):
        self.account_id = account_id
        self.expected_balance = expected_balance
        super().__init__(
            f"Account {account_id} balance could not be restored to "
            f"{expected_balance}; balance and transaction log have diverged"
        )


class ConfigurationError(ValueError):
    """One or more settings groups failed validation."""
    pass


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month, both inclusive."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class LedgerService:
    """
    Composes the aggregation core with account and transaction storage.

    Usage:
        ledger = LedgerService(accounts, transactions)
        ledger.apply_transaction(user_id, tx)
        ledger.net_worth(user_id, "USD")
    """

    def __init__(
        self,
        account_store: AccountStore,
        transaction_store: TransactionStore,
        converter: Optional[CurrencyConverter] = None,
        validator: Optional[TransactionValidator] = None,
        metrics_calculator: Optional[MetricsCalculator] = None,
        breakdown_calculator: Optional[CategoryBreakdownCalculator] = None,
        recommendation_selector: Optional[RecommendationSelector] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._accounts = account_store
        self._transactions = transaction_store
        self._converter = converter or CurrencyConverter()
        self._validator = validator or TransactionValidator()
        self._metrics = metrics_calculator or MetricsCalculator()
        self._breakdown = breakdown_calculator or CategoryBreakdownCalculator()
        self._recommendations = recommendation_selector or RecommendationSelector()
        self._audit = audit_logger or AuditLogger()

        self._account_locks: dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def converter(self) -> CurrencyConverter:
        return self._converter

    def _lock_for(self, account_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._account_locks[account_id] = lock
            return lock

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def open_account(self, account: Account) -> Account:
        """Persist a new account and return it with its id."""
        account_id = self._accounts.insert(account)
        self._audit.log_account_opened(
            account_id=account_id,
            user_id=account.user_id,
            name=account.name,
            currency=account.currency,
        )
        return account.model_copy(update={"id": account_id})

    def get_account(self, user_id: int, account_id: int) -> Account:
        """
        Raises:
            AccountNotFoundError: missing, or owned by another user
        """
        account = self._accounts.find_by_id(account_id)
        if account is None or account.user_id != user_id:
            raise AccountNotFoundError(account_id)
        return account

    def accounts_for_user(self, user_id: int) -> list[Account]:
        return self._accounts.find_by_user(user_id)

    def account_transactions(self, user_id: int, account_id: int) -> list[Transaction]:
        """All transactions on one of the user's accounts, newest first."""
        self.get_account(user_id, account_id)
        return self._transactions.find_by_account(account_id)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def apply_transaction(
        self,
        user_id: int,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Apply a transaction to its account balance and record it.

        Returns:
            The stored transaction, carrying its id

        Raises:
            ValidationError: transaction failed boundary validation
            AccountNotFoundError: account missing or not the user's
            StorageError: a write failed (balance left unchanged)
            LedgerInconsistencyError: insert failed and the balance
                could not be restored
        """
        if transaction.user_id != user_id:
            raise AccountNotFoundError(transaction.account_id)

        self._validator.ensure_valid(transaction)

        with self._lock_for(transaction.account_id):
            account = self.get_account(user_id, transaction.account_id)
            old_balance = account.balance.amount
            new_balance = old_balance + transaction.signed_amount

            try:
                self._accounts.update_balance(account.id, new_balance)
            except StorageError as e:
                self._audit.log_transaction_failed(
                    account_id=account.id,
                    user_id=user_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise

            try:
                transaction_id = self._transactions.insert(transaction)
            except Exception as e:
                self._restore_balance(account, old_balance, e)
                self._audit.log_transaction_failed(
                    account_id=account.id,
                    user_id=user_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise

        self._audit.log_transaction_applied(
            transaction_id=transaction_id,
            account_id=account.id,
            user_id=user_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        return transaction.with_id(transaction_id)

    def _restore_balance(
        self,
        account: Account,
        old_balance: Decimal,
        cause: Exception,
    ) -> None:
        try:
            self._accounts.update_balance(account.id, old_balance)
        except Exception as e:
            logger.critical(
                "balance_restore_failed",
                account_id=account.id,
                expected_balance=str(old_balance),
                error=str(e),
            )
            self._audit.log_compensation_failed(
                account_id=account.id,
                user_id=account.user_id,
                expected_balance=old_balance,
                error_message=str(e),
            )
            raise LedgerInconsistencyError(account.id, old_balance) from e

        logger.warning(
            "balance_restored",
            account_id=account.id,
            balance=str(old_balance),
            cause=str(cause),
        )
        self._audit.log_balance_compensated(
            account_id=account.id,
            user_id=account.user_id,
            restored_balance=old_balance,
            error_message=str(cause),
        )

    # =========================================================================
    # AGGREGATION
    # =========================================================================

    def net_worth(self, user_id: int, target_currency: str) -> Money:
        """
        Sum of the user's balances converted into target_currency.

        Raises:
            UnsupportedCurrencyError: an account or the target currency is
                not in the rate table
        """
        total = Money.zero(target_currency)
        for account in self._accounts.find_by_user(user_id):
            converted = self._converter.convert(
                account.balance.amount, account.currency, total.currency
            )
            total = total + Money(amount=converted, currency=total.currency)
        return total

    def _period_transactions(self, user_id: int, year: int, month: int) -> list[Transaction]:
        start, end = month_bounds(year, month)
        return self._transactions.find_by_date_range(start, end, user_id=user_id)

    def monthly_metrics(self, user_id: int, year: int, month: int) -> FinancialMetrics:
        return self._metrics.compute(self._period_transactions(user_id, year, month))

    def category_breakdown(
        self,
        user_id: int,
        year: int,
        month: int,
        account_id: Optional[int] = None,
    ) -> ExpenseCategoryBreakdown:
        """Expense shares for a month, optionally limited to one account."""
        transactions = self._period_transactions(user_id, year, month)
        if account_id is not None:
            self.get_account(user_id, account_id)
            transactions = [t for t in transactions if t.account_id == account_id]
        return self._breakdown.compute(transactions)

    def recommendation(self, user_id: int, year: int, month: int) -> str:
        return self._recommendations.pick_one(self.monthly_metrics(user_id, year, month))

    # =========================================================================
    # EXCHANGE RATES
    # =========================================================================

    def update_exchange_rate(self, currency_code: str, rate: Decimal) -> Optional[Decimal]:
        """
        Returns:
            The previous rate, or None if the currency was new

        Raises:
            InvalidOperationError: currency_code is the base currency
        """
        old_rate = self._converter.update_rate(currency_code, rate)
        self._audit.log_rate_updated(currency_code.strip().upper(), old_rate, Decimal(rate))
        return old_rate


def create_ledger_components(
    use_database: bool = True,
    database_url: Optional[str] = None,
) -> tuple[LedgerService, AuthService, Optional[SqlDatabase]]:
    """
    Factory function to create all application components.

    Args:
        use_database: Whether to open the SQL database.
                      Set to False for in-memory storage.
        database_url: Overrides the configured URL.

    Returns:
        (ledger_service, auth_service, database)

    Raises:
        ConfigurationError: a settings group is invalid
    """
    status = validate_all_settings()
    failed = [name for name in ("database", "currency", "app") if not status[name]]
    for name in failed:
        logger.error("settings_invalid", group=name, error=status[f"{name}_error"])
    if failed:
        raise ConfigurationError(f"Invalid settings: {', '.join(failed)}")

    settings = get_settings()
    configure_logging("DEBUG" if settings.app.debug_mode else settings.app.log_level)
    database = None
    database_error = None

    if use_database:
        try:
            database = SqlDatabase(
                database_url or settings.database.url,
                echo=settings.database.echo,
            )
            database.create_all()
            account_store = SqlAccountStore(database)
            transaction_store = SqlTransactionStore(database)
            user_store = SqlUserStore(database)
            audit_logger = AuditLogger(SqlAuditStorage(database))
        except StorageError as e:
            # Database not usable - continue in memory
            logger.warning("database_unavailable", error=str(e))
            database = None
            database_error = e

    if database is None:
        account_store = InMemoryAccountStore()
        transaction_store = InMemoryTransactionStore()
        user_store = InMemoryUserStore()
        audit_logger = AuditLogger(InMemoryAuditStorage())
        if database_error is not None:
            audit_logger.log_error(
                error_type=type(database_error).__name__,
                error_message=str(database_error),
                details={"fallback": "memory"},
            )

    converter = CurrencyConverter(
        base_currency=settings.currency.base_currency,
        rates=settings.currency.seed_rates,
    )

    ledger_service = LedgerService(
        account_store=account_store,
        transaction_store=transaction_store,
        converter=converter,
        validator=TransactionValidator(settings.app),
        audit_logger=audit_logger,
    )

    auth_service = AuthService(
        user_store=user_store,
        audit_logger=audit_logger,
        min_password_length=settings.app.min_password_length,
    )

    logger.info(
        "ledger_components_created",
        environment=settings.app.app_environment,
        storage="sql" if database is not None else "memory",
        base_currency=converter.base_currency,
    )

    return ledger_service, auth_service, database
