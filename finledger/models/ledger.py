"""
Core Data Models for the Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal only, never float arithmetic)
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Account and Transaction are immutable once built.
Balances change only through LedgerService.apply_transaction, which
persists a new balance rather than mutating a shared object.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


ZERO = Decimal("0")


class CurrencyMismatchError(ValueError):
    """Arithmetic attempted between Money values of different currencies."""

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot combine {left} and {right} amounts without conversion"
        )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT_CARD = "CREDIT_CARD"
    INVESTMENT = "INVESTMENT"
    CASH = "CASH"


class TransactionType(str, Enum):
    """Direction of a transaction relative to the account balance."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionCategory(str, Enum):
    """
    Closed category lists offered to users, per transaction type.

    DESIGN DECISION: Transaction.category stays a free-form string.
    These values are what the UI and import review offer; stored data
    is never rejected for using something else.
    """
    # Income categories
    SALARY = "Salary"
    SCHOLARSHIP = "Scholarship"
    GIFT = "Gift"
    REFUND = "Refund"

    # Expense categories
    FOOD_DINING = "Food & Dining"
    SHOPPING_GROCERIES = "Shopping & Groceries"
    TRANSPORTATION = "Transportation"
    ENTERTAINMENT = "Entertainment"
    HEALTHCARE = "Healthcare"
    UTILITIES = "Utilities"

    # Both
    OTHER = "Other"

    @classmethod
    def income_categories(cls) -> list["TransactionCategory"]:
        return [cls.SALARY, cls.SCHOLARSHIP, cls.GIFT, cls.REFUND, cls.OTHER]

    @classmethod
    def expense_categories(cls) -> list["TransactionCategory"]:
        return [
            cls.FOOD_DINING,
            cls.SHOPPING_GROCERIES,
            cls.TRANSPORTATION,
            cls.ENTERTAINMENT,
            cls.HEALTHCARE,
            cls.UTILITIES,
            cls.OTHER,
        ]

    @classmethod
    def for_type(cls, tx_type: TransactionType) -> list["TransactionCategory"]:
        if tx_type == TransactionType.INCOME:
            return cls.income_categories()
        return cls.expense_categories()


# =============================================================================
# MONEY
# =============================================================================

class Money(BaseModel):
    """
    An exact amount in a single currency.

    CRITICAL: Money values of different currencies are never added or
    subtracted directly. Convert first with CurrencyConverter.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str = Field(
        ...,
        pattern="^[A-Z]{3}$",
        description="ISO 4217 style three-letter code"
    )

    @field_validator('currency', mode='before')
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(amount=ZERO, currency=currency)

    def _require_same_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency}"


# =============================================================================
# ACCOUNTS, TRANSACTIONS, USERS
# =============================================================================

class Account(BaseModel):
    """
    A user-owned account holding a balance in one currency.

    The id is assigned by the AccountStore on insert.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: Optional[int] = None
    user_id: int
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType
    balance: Money

    @property
    def currency(self) -> str:
        return self.balance.currency

    def with_balance(self, amount: Decimal) -> "Account":
        """Return a copy carrying a new balance amount in the same currency."""
        return self.model_copy(
            update={"balance": Money(amount=amount, currency=self.currency)}
        )


class Transaction(BaseModel):
    """
    A single income or expense movement on an account.

    The amount is always positive; its currency is the account's currency.
    Transactions are immutable once created except for category relabeling
    during import review (see with_category).

    Category text is stored exactly as given; grouping relies on exact
    string equality.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    user_id: int
    account_id: int
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount in the account's currency"
    )
    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    date: dt.date
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )

    @field_validator('description', mode='before')
    @classmethod
    def strip_description(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @property
    def signed_amount(self) -> Decimal:
        """Balance delta: positive for income, negative for expense."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    def with_category(self, category: str) -> "Transaction":
        # Re-validate: model_copy skips field constraints
        return Transaction.model_validate({**self.model_dump(), "category": category})

    def with_id(self, transaction_id: int) -> "Transaction":
        return self.model_copy(update={"id": transaction_id})


class User(BaseModel):
    """
    A registered user.

    Password material never lives on this model; see UserStore credentials.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: Optional[int] = None
    username: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=200)
    base_currency: str = Field(default="USD", pattern="^[A-Z]{3}$")
    created_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )

    @field_validator('base_currency', mode='before')
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# =============================================================================
# DERIVED RESULTS (never persisted)
# =============================================================================

class FinancialMetrics(BaseModel):
    """
    Period metrics computed from a transaction set.

    savings_rate and expense_to_income_ratio are PERCENTAGES (0-100 scale,
    4 decimal places). Both stay exactly 0 when there is no income.
    """
    model_config = ConfigDict(frozen=True)

    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_cash_flow: Decimal = ZERO
    savings_rate: Decimal = ZERO
    expense_to_income_ratio: Decimal = ZERO

    def summary(self) -> str:
        return (
            f"FinancialMetrics{{income={self.total_income:.2f}, "
            f"expenses={self.total_expenses:.2f}, "
            f"netFlow={self.net_cash_flow:.2f}, "
            f"savingsRate={self.savings_rate:.2f}%, "
            f"expenseRatio={self.expense_to_income_ratio:.2f}%}}"
        )


class ExpenseCategoryBreakdown(BaseModel):
    """
    Share of total expenses per category.

    Percentages are rounded independently per category, so they need
    not sum to exactly 100.
    """
    model_config = ConfigDict(frozen=True)

    total_expenses: Decimal = ZERO
    category_percentages: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator('total_expenses', mode='before')
    @classmethod
    def default_total(cls, v):
        return ZERO if v is None else v

    @field_validator('category_percentages', mode='before')
    @classmethod
    def default_percentages(cls, v):
        return {} if v is None else dict(v)

    @property
    def percentages(self) -> Mapping[str, Decimal]:
        """Read-only view of the category percentages."""
        return MappingProxyType(self.category_percentages)

    def summary(self) -> str:
        if not self.category_percentages:
            return "No expenses for the selected period."

        lines = ["Expense breakdown (percent of total):"]
        for category, pct in self.category_percentages.items():
            lines.append(f"- {category}: {pct:.2f}%")
        return "\n".join(lines) + "\n"


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating one transaction at the boundary."""

    validated_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]
