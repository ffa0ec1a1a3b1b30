"""
Audit Logger

DESIGN DECISION: Every balance mutation and rate change is logged.
This provides:
1. Complete traceability of the ledger
2. Debugging capability when a two-step write goes wrong
3. A history the user can inspect

The audit logger:
- Is synchronous, like the rest of the ledger
- Gracefully handles failures (never crashes the ledger if logging fails)
- Supports correlation IDs to trace related events (e.g. one statement import)
"""

import logging
import sys
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finledger.config import get_settings
from finledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finledger.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route structlog output (via stdlib logging) to stdout.

    Uses AppSettings.log_level unless a level is given.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=(level or get_settings().app.log_level).upper(),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An AuditStorageInterface backend, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_user_registered(self, user_id: int, username: str) -> None:
        self.log(AuditEventBuilder.user_registered(user_id, username))

    def log_login_failed(self, username: str) -> None:
        self.log(AuditEventBuilder.login_failed(username))

    def log_password_changed(self, user_id: int) -> None:
        self.log(AuditEventBuilder.password_changed(user_id))

    def log_account_opened(
        self,
        account_id: int,
        user_id: int,
        name: str,
        currency: str,
    ) -> None:
        """Log account creation."""
        event = AuditEventBuilder.account_opened(
            account_id=account_id,
            user_id=user_id,
            name=name,
            currency=currency,
        )
        self.log(event)

    def log_transaction_applied(
        self,
        transaction_id: int,
        account_id: int,
        user_id: int,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance change together with the stored transaction."""
        event = AuditEventBuilder.transaction_applied(
            transaction_id=transaction_id,
            account_id=account_id,
            user_id=user_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_transaction_failed(
        self,
        account_id: int,
        user_id: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_failed(
            account_id=account_id,
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_balance_compensated(
        self,
        account_id: int,
        user_id: int,
        restored_balance: Decimal,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.balance_compensated(
            account_id=account_id,
            user_id=user_id,
            restored_balance=restored_balance,
            error_message=error_message,
        )
        self.log(event)

    def log_compensation_failed(
        self,
        account_id: int,
        user_id: int,
        expected_balance: Decimal,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.compensation_failed(
            account_id=account_id,
            user_id=user_id,
            expected_balance=expected_balance,
            error_message=error_message,
        )
        self.log(event)

    def log_rate_updated(
        self,
        currency_code: str,
        old_rate: Optional[Decimal],
        new_rate: Decimal,
    ) -> None:
        """Log an exchange rate change."""
        event = AuditEventBuilder.exchange_rate_updated(
            currency_code=currency_code,
            old_rate=old_rate,
            new_rate=new_rate,
        )
        self.log(event)

    def log_statement_imported(
        self,
        account_id: int,
        user_id: int,
        parsed: int,
        saved: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.statement_imported(
            account_id=account_id,
            user_id=user_id,
            parsed=parsed,
            saved=saved,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., statement import).
    Pass it through all subsequent operations.
    """
    return uuid4()
