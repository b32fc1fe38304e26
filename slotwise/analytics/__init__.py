"""
Analytics Package

Recommendation analytics: append-only view/selection log and the
customer preference store fed by selections.
"""

from slotwise.analytics.recommendation_log import (
    PreferenceStore,
    RecommendationLog,
    RecommendationLogEntry,
)

__all__ = [
    "PreferenceStore",
    "RecommendationLog",
    "RecommendationLogEntry",
]
