"""
Audit Models for the Ledger

Every balance change and rate change is logged for audit purposes.
This provides:
1. Traceability of every balance mutation
2. Debugging information when a two-step write goes wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Users
    USER_REGISTERED = "user_registered"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGED = "password_changed"

    # Accounts and balances
    ACCOUNT_OPENED = "account_opened"
    TRANSACTION_APPLIED = "transaction_applied"
    TRANSACTION_FAILED = "transaction_failed"
    BALANCE_COMPENSATED = "balance_compensated"
    COMPENSATION_FAILED = "compensation_failed"

    # Currency
    EXCHANGE_RATE_UPDATED = "exchange_rate_updated"

    # Import
    STATEMENT_IMPORTED = "statement_imported"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'currency')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[int] = None

    # Correlation - for tracking related events (e.g. one statement import)
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_applied(...)
        event = AuditEventBuilder.exchange_rate_updated("USD", old, new)
    """

    @staticmethod
    def user_registered(user_id: int, username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=str(user_id),
            user_id=user_id,
            description=f"User registered: {username}",
            details={"username": username},
        )

    @staticmethod
    def login_failed(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description="Login failed",
            details={"username": username},
        )

    @staticmethod
    def password_changed(user_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=str(user_id),
            user_id=user_id,
            description="Password changed",
        )

    @staticmethod
    def account_opened(
        account_id: int,
        user_id: int,
        name: str,
        currency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_OPENED,
            entity_type="account",
            entity_id=str(account_id),
            user_id=user_id,
            description=f"Account opened: {name} ({currency})",
            details={"name": name, "currency": currency},
        )

    @staticmethod
    def transaction_applied(
        transaction_id: int,
        account_id: int,
        user_id: int,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_APPLIED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction applied to account {account_id}",
            details={
                "account_id": account_id,
                "old_balance": str(old_balance),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def transaction_failed(
        account_id: int,
        user_id: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=str(account_id),
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction could not be applied to account {account_id}",
            error_message=error_message,
        )

    @staticmethod
    def balance_compensated(
        account_id: int,
        user_id: int,
        restored_balance: Decimal,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_COMPENSATED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=str(account_id),
            user_id=user_id,
            description="Balance restored after failed transaction insert",
            details={"restored_balance": str(restored_balance)},
            error_message=error_message,
        )

    @staticmethod
    def compensation_failed(
        account_id: int,
        user_id: int,
        expected_balance: Decimal,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMPENSATION_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="account",
            entity_id=str(account_id),
            user_id=user_id,
            description="Balance could not be restored; ledger is inconsistent",
            details={"expected_balance": str(expected_balance)},
            error_message=error_message,
        )

    @staticmethod
    def exchange_rate_updated(
        currency_code: str,
        old_rate: Optional[Decimal],
        new_rate: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCHANGE_RATE_UPDATED,
            entity_type="currency",
            entity_id=currency_code,
            description=f"Exchange rate updated: {currency_code}",
            details={
                "old_rate": str(old_rate) if old_rate is not None else None,
                "new_rate": str(new_rate),
            },
        )

    @staticmethod
    def statement_imported(
        account_id: int,
        user_id: int,
        parsed: int,
        saved: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_IMPORTED,
            severity=AuditSeverity.INFO if saved == parsed else AuditSeverity.WARNING,
            entity_type="account",
            entity_id=str(account_id),
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Statement imported: {saved} of {parsed} transactions saved",
            details={"parsed": parsed, "saved": saved},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
