"""
Metrics Calculator

Aggregates a period's transactions into FinancialMetrics.

The caller pre-filters by period (and user); nothing here looks at dates.
Percentages are on a 0-100 scale, rounded to 4 places half-up, and stay
exactly 0 when there is no income.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from finledger.models.ledger import FinancialMetrics, Transaction, TransactionType


ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_PLACES = Decimal("0.0001")


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, rounded to 4 places half-up. whole must be > 0."""
    return (part * HUNDRED / whole).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


class MetricsCalculator:
    """Stateless; one instance can be shared freely."""

    def compute(self, transactions: Iterable[Transaction]) -> FinancialMetrics:
        total_income = ZERO
        total_expenses = ZERO

        for tx in transactions:
            if tx.type == TransactionType.INCOME:
                total_income += tx.amount
            else:
                total_expenses += tx.amount

        net_cash_flow = total_income - total_expenses

        # No income: ratios are left at zero rather than dividing by zero
        savings_rate = ZERO
        expense_ratio = ZERO
        if total_income > 0:
            savings_rate = percent_of(net_cash_flow, total_income)
            expense_ratio = percent_of(total_expenses, total_income)

        return FinancialMetrics(
            total_income=total_income,
            total_expenses=total_expenses,
            net_cash_flow=net_cash_flow,
            savings_rate=savings_rate,
            expense_to_income_ratio=expense_ratio,
        )
