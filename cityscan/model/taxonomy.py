"""Severity and category taxonomy.

Tool-native severity tokens are converted once, at the mapper boundary, into
the closed ``Severity`` enum. Nothing downstream sees raw strings.
"""

from collections.abc import Iterable, Mapping
from enum import Enum


class Severity(Enum):
    """Universal severity levels, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class AnalysisCategory(Enum):
    """Analysis category. One adapter emits exactly one category."""

    DEPENDENCY_SECURITY = "dependency_security"
    STATIC_QUALITY = "static_quality"
    TYPE_CHECKING = "type_checking"
    FORMAL_VERIFICATION = "formal_verification"
    APPLICATION_SECURITY = "application_security"
    ARCHITECTURE = "architecture"

    @property
    def is_security(self) -> bool:
        return self in (AnalysisCategory.DEPENDENCY_SECURITY, AnalysisCategory.APPLICATION_SECURITY)

    @property
    def is_static(self) -> bool:
        return self in (AnalysisCategory.STATIC_QUALITY, AnalysisCategory.TYPE_CHECKING)


class EntityKind(Enum):
    """What an issue can attach to."""

    FILE = "file"
    MANIFEST = "manifest"
    LOCKFILE = "lockfile"
    PACKAGE = "package"
    APPLICATION = "application"
    DISTRICT = "district"


class HealthLevel(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int) -> "HealthLevel":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 75:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        if score >= 40:
            return cls.POOR
        return cls.CRITICAL


UNIVERSAL_TOKENS: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "very_high": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.INFO,
    "informational": Severity.INFO,
    "note": Severity.INFO,
}


def severity_from_cvss(score: float) -> Severity:
    """Bucket a CVSS base score."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score >= 0.1:
        return Severity.LOW
    return Severity.INFO


def coerce_cvss(value) -> float | None:
    """Accept a numeric score or numeric string; vectors and junk yield None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    if isinstance(value, Mapping):
        for key in ("score", "baseScore", "base_score"):
            if key in value:
                return coerce_cvss(value[key])
    return None


def map_severity(
    token=None,
    *,
    cvss=None,
    aliases: Iterable[str] = (),
    vocabulary: Mapping[str, Severity] | None = None,
) -> Severity:
    """Map native severity signals onto the universal scale.

    Precedence:
    1. Explicit token (tool vocabulary first, then the universal table).
    2. CVSS score.
    3. A CVE alias floors the result at medium.
    4. Info.
    """
    if token is not None and not isinstance(token, bool):
        key = str(token).strip().lower()
        if vocabulary and key in vocabulary:
            return vocabulary[key]
        if key in UNIVERSAL_TOKENS:
            return UNIVERSAL_TOKENS[key]

    score = coerce_cvss(cvss)
    if score is not None:
        return severity_from_cvss(score)

    if any(isinstance(alias, str) and alias.upper().startswith("CVE-") for alias in aliases or ()):
        return Severity.MEDIUM

    return Severity.INFO


class SeverityVocabulary:
    """One-shot native-to-universal converter declared by an adapter."""

    def __init__(self, mapping: Mapping[str, Severity] | None = None):
        self._mapping = {str(k).lower(): v for k, v in (mapping or {}).items()}

    def __call__(self, token=None, *, cvss=None, aliases: Iterable[str] = ()) -> Severity:
        return map_severity(token, cvss=cvss, aliases=aliases, vocabulary=self._mapping)

    def __contains__(self, token) -> bool:
        return str(token).lower() in self._mapping


__all__ = [
    "Severity",
    "AnalysisCategory",
    "EntityKind",
    "HealthLevel",
    "UNIVERSAL_TOKENS",
    "severity_from_cvss",
    "coerce_cvss",
    "map_severity",
    "SeverityVocabulary",
]
