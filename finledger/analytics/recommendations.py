"""
Recommendation Selector

Maps FinancialMetrics onto pre-authored advice.

Three independent rule groups each may contribute a bucket of five
messages, always in this order:
1. Savings rate (exactly one bucket: low, moderate or high)
2. Expense-to-income ratio (high, moderate, or nothing)
3. Cash flow (negative, or nothing)

DESIGN DECISION: Thresholds are percentages (10/20 for savings, 70/90 for
expenses), matching the 0-100 scale MetricsCalculator produces.
"""

import random
from decimal import Decimal
from typing import Optional

from finledger.models.ledger import FinancialMetrics


LOW_SAVINGS_THRESHOLD = Decimal("10")
MODERATE_SAVINGS_THRESHOLD = Decimal("20")
HIGH_EXPENSE_THRESHOLD = Decimal("90")
MODERATE_EXPENSE_THRESHOLD = Decimal("70")

FALLBACK_RECOMMENDATION = (
    "Your financial health looks good! Keep maintaining your current habits."
)

LOW_SAVINGS = (
    "Savings ratio too low. Aim to save at least 20% of your income for financial security.",
    "Consider reducing discretionary spending to improve your savings rate.",
    "Your savings may not cover 3-6 months of expenses. Focus on building an emergency fund.",
    "Try implementing the 50/30/20 rule: 50% needs, 30% wants, 20% savings.",
    "Review recurring subscriptions and memberships that you may not be using frequently.",
)

MODERATE_SAVINGS = (
    "Good start on savings! Consider increasing your savings rate to 20% or more.",
    "You're building a solid foundation. Look for opportunities to optimize fixed expenses.",
    "Consider setting up automatic transfers to savings on payday.",
    "Your savings rate is decent. Think about specific financial goals to work towards.",
    "Review your budget for categories where you can potentially save more.",
)

HIGH_SAVINGS = (
    "Excellent savings rate! Consider investing surplus funds for long-term growth.",
    "Great job saving! You might want to explore retirement accounts or investment options.",
    "With your high savings rate, you're well positioned for major financial goals.",
    "Consider speaking with a financial advisor about investment strategies.",
    "Your strong savings habit will serve you well. Keep up the good work!",
)

HIGH_EXPENSE = (
    "Your expenses are very high relative to income. Focus on essential spending.",
    "Consider tracking every expense for 30 days to identify spending patterns.",
    "Review your largest expense categories for potential reductions.",
    "High expense ratio may limit financial flexibility. Look for cost-cutting opportunities.",
    "Consider whether lifestyle inflation is affecting your financial goals.",
)

MODERATE_EXPENSE = (
    "Your expense ratio is reasonable, but there's room for optimization.",
    "Consider meal planning to reduce food expenses.",
    "Review utility bills for potential savings through conservation.",
    "Look for opportunities to refinance high-interest debt.",
    "Consider bulk purchasing for frequently used items to save money.",
)

NEGATIVE_CASH_FLOW = (
    "You're spending more than you earn. Immediate action is needed.",
    "Create a strict budget focusing only on essential expenses.",
    "Consider temporary additional income sources to cover the deficit.",
    "Review and pause non-essential subscriptions and memberships.",
    "Negative cash flow is unsustainable. Prioritize debt reduction and expense cutting.",
)


class RecommendationSelector:
    """
    Picks advice for a set of metrics.

    Args:
        rng: Source of randomness for pick_one. Pass a seeded
             random.Random in tests.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def generate(self, metrics: FinancialMetrics) -> list[str]:
        recommendations: list[str] = []

        if metrics.savings_rate < LOW_SAVINGS_THRESHOLD:
            recommendations.extend(LOW_SAVINGS)
        elif metrics.savings_rate < MODERATE_SAVINGS_THRESHOLD:
            recommendations.extend(MODERATE_SAVINGS)
        else:
            recommendations.extend(HIGH_SAVINGS)

        if metrics.expense_to_income_ratio > HIGH_EXPENSE_THRESHOLD:
            recommendations.extend(HIGH_EXPENSE)
        elif metrics.expense_to_income_ratio > MODERATE_EXPENSE_THRESHOLD:
            recommendations.extend(MODERATE_EXPENSE)

        if metrics.net_cash_flow < 0:
            recommendations.extend(NEGATIVE_CASH_FLOW)

        return recommendations

    def pick_one(self, metrics: FinancialMetrics) -> str:
        """One recommendation chosen uniformly, or the fallback text."""
        recommendations = self.generate(metrics)
        # The savings rule always adds a bucket; the fallback is defensive
        if not recommendations:
            return FALLBACK_RECOMMENDATION
        return self._rng.choice(recommendations)
