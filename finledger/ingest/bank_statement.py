"""
Bank statement CSV import.

Expected layout (first row is a header and is skipped):

    CCY, Date, Transaction Details, Deposit, Withdrawal, Balance

- CCY may be empty (account currency); any other currency is noted on
  the transaction, the amount is taken as is
- Date is day and short month only, e.g. "1 Feb"; the statement year is
  appended before parsing
- Exactly one of Deposit / Withdrawal carries the amount

Skipped rows: blank rows, carried-forward / brought-forward balance rows,
the "Transaction Summary" footer, rows with fewer than six fields, and
rows without an amount or description.

Every parsed row becomes a Transaction that goes through
LedgerService.apply_transaction. One bad row never aborts the import;
it is recorded on the ImportReport instead.
"""

import csv
from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finledger.audit import AuditLogger, create_correlation_id
from finledger.config import get_settings
from finledger.models.ledger import (
    Account,
    Transaction,
    TransactionCategory,
    TransactionType,
)
from finledger.orchestrator import LedgerInconsistencyError, LedgerService
from finledger.services.storage import StorageError
from finledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)

SKIP_MARKERS = ("B/F BALANCE", "C/F BALANCE", "Transaction Summary")
MIN_FIELDS = 6
PLACEHOLDER_CATEGORY = TransactionCategory.OTHER.value

Categorizer = Callable[[Transaction], str]


class ImportRowError(BaseModel):
    line_number: int
    message: str
    description: Optional[str] = None


class ImportReport(BaseModel):
    """Outcome of one statement import."""

    correlation_id: UUID = Field(default_factory=create_correlation_id)
    parsed: list[Transaction] = Field(default_factory=list)
    parsed_lines: list[int] = Field(default_factory=list)
    saved: list[Transaction] = Field(default_factory=list)
    skipped_lines: list[int] = Field(default_factory=list)
    errors: list[ImportRowError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def parsed_count(self) -> int:
        return len(self.parsed)

    @property
    def saved_count(self) -> int:
        return len(self.saved)

    def summary(self) -> str:
        return (
            f"Successfully imported {self.saved_count} transactions "
            f"out of {self.parsed_count} parsed"
        )


def _parse_amount(raw: str) -> Decimal:
    return Decimal(raw.replace(",", "").strip())


class BankStatementImporter:
    """
    Turns statement rows into ledger transactions.

    Args:
        ledger: Where parsed transactions are applied
        validator: Collects review warnings per row; the ledger still
                   enforces errors itself
        categorize: Review step choosing a category for each parsed
                    transaction. Defaults to "Other" for everything.
        statement_year: Year appended to "d Mon" dates (default: this year)
    """

    def __init__(
        self,
        ledger: LedgerService,
        validator: Optional[TransactionValidator] = None,
        categorize: Optional[Categorizer] = None,
        statement_year: Optional[int] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._validator = validator or TransactionValidator()
        self._categorize = categorize
        self._year = statement_year or date.today().year
        self._date_format = get_settings().app.statement_date_format
        self._audit = audit_logger or AuditLogger()

    def _parse_date(self, raw: str, report: ImportReport, line_number: int) -> date:
        try:
            return datetime.strptime(f"{raw.strip()} {self._year}", self._date_format).date()
        except ValueError:
            report.warnings.append(
                f"Line {line_number}: unreadable date '{raw}', using today"
            )
            logger.warning("statement_date_unparseable", line=line_number, value=raw)
            return date.today()

    def _parse_row(
        self,
        fields: list[str],
        account: Account,
        report: ImportReport,
        line_number: int,
    ) -> Optional[Transaction]:
        currency, date_raw, description, deposit, withdrawal = (
            f.strip() for f in fields[:5]
        )

        if (not deposit and not withdrawal) or not description:
            return None

        if deposit:
            amount = _parse_amount(deposit)
            tx_type = TransactionType.INCOME
        else:
            amount = _parse_amount(withdrawal)
            tx_type = TransactionType.EXPENSE

        notes = None
        if currency and currency.upper() != account.currency:
            notes = f"Original currency: {currency}"

        return Transaction(
            user_id=account.user_id,
            account_id=account.id,
            description=description,
            amount=amount,
            type=tx_type,
            category=PLACEHOLDER_CATEGORY,
            date=self._parse_date(date_raw, report, line_number),
            notes=notes,
        )

    def parse(
        self,
        lines: Iterable[str],
        user_id: int,
        account_id: int,
    ) -> ImportReport:
        """
        Parse and categorize statement rows without touching the ledger.

        Raises:
            AccountNotFoundError: the account is missing or not the user's
        """
        account = self._ledger.get_account(user_id, account_id)
        report = ImportReport()
        reader = csv.reader(lines, skipinitialspace=True)

        for row_number, fields in enumerate(reader, start=1):
            line_number = reader.line_num
            if row_number == 1:
                continue  # header
            if not any(f.strip() for f in fields):
                continue
            if any(marker in f for f in fields for marker in SKIP_MARKERS):
                continue
            if len(fields) < MIN_FIELDS:
                report.skipped_lines.append(line_number)
                logger.info("statement_row_skipped", line=line_number, fields=len(fields))
                continue

            try:
                transaction = self._parse_row(fields, account, report, line_number)
                if transaction is not None and self._categorize is not None:
                    transaction = transaction.with_category(self._categorize(transaction))
            except (ArithmeticError, ValueError) as e:
                report.errors.append(ImportRowError(line_number=line_number, message=str(e)))
                logger.warning("statement_row_invalid", line=line_number, error=str(e))
                continue

            if transaction is None:
                report.skipped_lines.append(line_number)
                continue

            for warning in self._validator.validate(transaction).warnings:
                report.warnings.append(f"Line {line_number}: {warning}")

            report.parsed.append(transaction)
            report.parsed_lines.append(line_number)

        return report

    def import_lines(
        self,
        lines: Iterable[str],
        user_id: int,
        account_id: int,
    ) -> ImportReport:
        """
        Parse, then apply every parsed transaction to the ledger.

        Raises:
            AccountNotFoundError: the account is missing or not the user's
            LedgerInconsistencyError: a balance could not be restored;
                the import stops there
        """
        report = self.parse(lines, user_id, account_id)

        for line_number, transaction in zip(report.parsed_lines, report.parsed):
            try:
                saved = self._ledger.apply_transaction(
                    user_id, transaction, correlation_id=report.correlation_id
                )
            except LedgerInconsistencyError:
                raise
            except (StorageError, ValueError) as e:
                report.errors.append(ImportRowError(
                    line_number=line_number,
                    message=str(e),
                    description=transaction.description,
                ))
                logger.warning(
                    "statement_transaction_not_saved",
                    description=transaction.description,
                    error=str(e),
                )
                continue
            report.saved.append(saved)

        self._audit.log_statement_imported(
            account_id=account_id,
            user_id=user_id,
            parsed=report.parsed_count,
            saved=report.saved_count,
            correlation_id=report.correlation_id,
        )
        logger.info("statement_imported", summary=report.summary())
        return report

    def import_file(
        self,
        path: Union[str, Path],
        user_id: int,
        account_id: int,
    ) -> ImportReport:
        with open(path, newline="", encoding="utf-8-sig") as f:
            return self.import_lines(f, user_id, account_id)
