"""Correlation engine and cross-tool pattern catalog."""

from cityscan.correlation.engine import (
    HEALTH_PENALTIES,
    CorrelationGroup,
    HealthScore,
    MergedSet,
    MergeState,
    compute_health,
    correlates,
    merge,
)
from cityscan.correlation.patterns import PatternCatalog, PatternRule, default_catalog
from cityscan.model.keys import correlation_key

__all__ = [
    "HEALTH_PENALTIES",
    "CorrelationGroup",
    "HealthScore",
    "MergedSet",
    "MergeState",
    "PatternCatalog",
    "PatternRule",
    "compute_health",
    "correlates",
    "correlation_key",
    "default_catalog",
    "merge",
]
