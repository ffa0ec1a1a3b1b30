"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing through the system must conform to these schemas.
"""

from finledger.models.ledger import (
    Account,
    AccountType,
    CurrencyMismatchError,
    ExpenseCategoryBreakdown,
    FinancialMetrics,
    Money,
    Transaction,
    TransactionCategory,
    TransactionType,
    User,
    ValidationIssue,
    ValidationResult,
)
from finledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountType",
    "CurrencyMismatchError",
    "ExpenseCategoryBreakdown",
    "FinancialMetrics",
    "Money",
    "Transaction",
    "TransactionCategory",
    "TransactionType",
    "User",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
