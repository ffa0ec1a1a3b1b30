"""
finledger - Personal Finance Ledger

Multi-currency accounts, income/expense transactions, monthly metrics,
expense breakdowns and canned recommendations.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Every call names its user; nothing is global
3. Fail early, fail visibly
4. Every balance change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "finledger Team"
