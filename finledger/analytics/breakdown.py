"""
Category Breakdown Calculator

Share of total expenses per category for a pre-filtered transaction set.

Categories are grouped by exact string equality ("Food" and "food " are
different categories). The result keeps first-seen order. Each category
is rounded on its own, so the percentages need not sum to exactly 100.
"""

from collections.abc import Iterable
from decimal import Decimal

from finledger.analytics.metrics import ZERO, percent_of
from finledger.models.ledger import (
    ExpenseCategoryBreakdown,
    Transaction,
    TransactionType,
)


class CategoryBreakdownCalculator:
    """Stateless; income transactions are ignored."""

    def compute(self, transactions: Iterable[Transaction]) -> ExpenseCategoryBreakdown:
        totals: dict[str, Decimal] = {}
        total_expenses = ZERO

        for tx in transactions:
            if tx.type != TransactionType.EXPENSE:
                continue
            total_expenses += tx.amount
            totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount

        if total_expenses == 0:
            return ExpenseCategoryBreakdown(total_expenses=ZERO, category_percentages={})

        return ExpenseCategoryBreakdown(
            total_expenses=total_expenses,
            category_percentages={
                category: percent_of(amount, total_expenses)
                for category, amount in totals.items()
            },
        )
