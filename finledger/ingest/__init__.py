"""Statement import package."""

from finledger.ingest.bank_statement import (
    BankStatementImporter,
    ImportReport,
    ImportRowError,
)

__all__ = ["BankStatementImporter", "ImportReport", "ImportRowError"]
