"""Unified analysis model: canonical paths, taxonomy and schema."""

from .keys import correlation_key
from .paths import entity_id, is_temp_path, normalize, package_path
from .schema import (
    AnalysisResult,
    CorrelationHints,
    SourceLocation,
    UnifiedEntity,
    UnifiedIssue,
    empty_result,
    freeze,
    make_entity,
    make_hints,
    make_issue,
    make_location,
    make_result,
    result_from_dict,
    thaw,
)
from .taxonomy import (
    AnalysisCategory,
    EntityKind,
    HealthLevel,
    Severity,
    SeverityVocabulary,
    map_severity,
    severity_from_cvss,
)

__all__ = [
    "AnalysisCategory",
    "AnalysisResult",
    "CorrelationHints",
    "EntityKind",
    "HealthLevel",
    "Severity",
    "SeverityVocabulary",
    "SourceLocation",
    "UnifiedEntity",
    "UnifiedIssue",
    "correlation_key",
    "empty_result",
    "entity_id",
    "freeze",
    "is_temp_path",
    "make_entity",
    "make_hints",
    "make_issue",
    "make_location",
    "make_result",
    "map_severity",
    "normalize",
    "package_path",
    "result_from_dict",
    "severity_from_cvss",
    "thaw",
]
