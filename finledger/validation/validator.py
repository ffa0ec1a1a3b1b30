"""
Two-Stage Transaction Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (beyond what the pydantic model enforces)
- Positive amount
- Non-blank description and category

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection
- Category outside the offered list for its type

Only stage 1 produces errors. Stage 2 produces warnings: the ledger
accepts the transaction, but the caller can show them for review.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from datetime import date, timedelta
from typing import Optional

from finledger.config import AppSettings, get_settings
from finledger.models.ledger import (
    Transaction,
    TransactionCategory,
    ValidationIssue,
    ValidationResult,
)


class ValidationError(ValueError):
    """A transaction failed boundary validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        errors = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("Invalid transaction: " + "; ".join(errors))


class TransactionValidator:
    """
    Validates transactions before they touch an account balance.

    Stage 2 only runs when stage 1 passes.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        transaction: Transaction,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if transaction.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Record money out as an EXPENSE with a positive amount",
            ))

        if not transaction.description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))

        if not transaction.category.strip():
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
                suggested_fix=f"Use '{TransactionCategory.OTHER.value}' if unsure",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        transaction: Transaction,
    ) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation. Warnings only.
        """
        issues = []
        today = date.today()

        # Future date check (with tolerance)
        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if transaction.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({transaction.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if transaction.amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({transaction.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        offered = {c.value for c in TransactionCategory.for_type(transaction.type)}
        if transaction.category not in offered:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unlisted_category",
                message=(
                    f"Category '{transaction.category}' is not a standard "
                    f"{transaction.type.value.lower()} category"
                ),
                severity="warning",
            ))

        return issues

    def validate(self, transaction: Transaction) -> ValidationResult:
        """
        Run the full two-stage pipeline.

        Returns:
            ValidationResult with all issues found
        """
        schema_valid, all_issues = self._validate_schema(transaction)

        if schema_valid:
            all_issues.extend(self._validate_semantic(transaction))

        return ValidationResult(is_valid=schema_valid, issues=all_issues)

    def ensure_valid(self, transaction: Transaction) -> ValidationResult:
        """
        Validate and raise on errors.

        Raises:
            ValidationError: if any error-level issue was found
        """
        result = self.validate(transaction)
        if result.has_errors:
            raise ValidationError(result)
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("The transaction cannot be recorded:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     ({issue.suggested_fix})")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
