"""
Analytics Package

Pure computations over transaction sets: period metrics, expense
breakdown and recommendation selection. No storage access here.
"""

from finledger.analytics.breakdown import CategoryBreakdownCalculator
from finledger.analytics.metrics import MetricsCalculator
from finledger.analytics.recommendations import (
    FALLBACK_RECOMMENDATION,
    RecommendationSelector,
)

__all__ = [
    "CategoryBreakdownCalculator",
    "FALLBACK_RECOMMENDATION",
    "MetricsCalculator",
    "RecommendationSelector",
]
