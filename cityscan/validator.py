"""Contract checks for unified records before they leave the core.

``validate`` inspects one issue; ``validate_result`` drops the issues that
fail and records why in the Result metadata; ``correlation_readiness``
reports per tool how much of its output the correlation engine can use.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from cityscan.model.keys import correlation_key
from cityscan.model.schema import AnalysisResult, SourceLocation, UnifiedIssue, freeze
from cityscan.model.taxonomy import AnalysisCategory, Severity

# Metadata each tool's issues must carry.
REQUIRED_METADATA: dict[str, tuple[str, ...]] = {
    "npm-audit": ("packageName",),
    "osv-scanner": ("packageName", "osvId"),
    "cargo-audit": ("packageName", "advisoryId"),
    "cbmc": ("verificationType", "property"),
}

CIRCULAR_RULES = {"circular-dependency", "R0401", "cyclic-import"}


@dataclass(frozen=True)
class Violation:
    issue_id: str
    tool: str
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "issueId": self.issue_id,
            "tool": self.tool,
            "field": self.field,
            "message": self.message,
        }


def _check_location(loc: SourceLocation | None) -> str | None:
    if loc is None:
        return None
    coords = (loc.line, loc.column, loc.end_line, loc.end_column)
    if any(c is None for c in coords):
        return "location is partially populated"
    if any(isinstance(c, bool) or not isinstance(c, int) or c < 1 for c in coords):
        return "location coordinates must be 1-based integers"
    if (loc.end_line, loc.end_column) < (loc.line, loc.column):
        return "location end precedes start"
    return None


def validate(issue: UnifiedIssue) -> list[Violation]:
    """Return every contract violation found on ``issue`` (empty when valid)."""
    found: list[Violation] = []

    def fail(field: str, message: str) -> None:
        found.append(Violation(issue.id, issue.tool, field, message))

    if not isinstance(issue.severity, Severity):
        fail("severity", f"unknown severity {issue.severity!r}")
    if not isinstance(issue.category, AnalysisCategory):
        fail("category", f"unknown category {issue.category!r}")

    problem = _check_location(issue.location)
    if problem:
        fail("location", problem)

    if not isinstance(issue.metadata, Mapping) or isinstance(issue.metadata, dict):
        fail("metadata", "metadata must be frozen")

    entity = issue.entity
    if not 0.0 <= entity.confidence <= 1.0:
        fail("entity.confidence", f"confidence {entity.confidence} outside [0, 1]")
    if not entity.canonical_path or entity.canonical_path.startswith(("/", "./")):
        fail("entity.canonicalPath", f"path {entity.canonical_path!r} is not root-relative")

    expected_key = correlation_key(entity.canonical_path, issue.line, issue.category, issue.tool)
    if issue.correlation_key != expected_key:
        fail("correlationKey", "correlation key does not match path, line, category and tool")

    for key in REQUIRED_METADATA.get(issue.tool, ()):
        if issue.metadata.get(key) in (None, ""):
            fail(f"metadata.{key}", f"{issue.tool} issues must carry {key}")

    if issue.rule_id in CIRCULAR_RULES and not issue.metadata.get("dependencyChain"):
        fail("metadata.dependencyChain", "circular-dependency issues must carry dependencyChain")

    return found


def validate_result(result: AnalysisResult) -> AnalysisResult:
    """Drop invalid issues and record the violations in metadata.

    A result is validated once; calling this again returns it unchanged.
    """
    if "validation" in result.metadata:
        return result

    kept: list[UnifiedIssue] = []
    violations: list[Violation] = []
    for issue in result.issues:
        problems = validate(issue)
        if problems:
            violations.extend(problems)
        else:
            kept.append(issue)

    dropped = len(result.issues) - len(kept)
    ready = sum(1 for issue in kept if issue.correlation_hints.cross_tool_patterns)
    total = len(result.issues)
    report: dict[str, Any] = {
        "checked": total,
        "dropped": dropped,
        "violations": [v.to_dict() for v in violations],
        "readiness": round(100.0 * ready / total, 1) if total else 100.0,
    }
    metadata = dict(result.metadata)
    metadata["validation"] = report
    return replace(result, issues=tuple(kept), metadata=freeze(metadata))


def correlation_readiness(results: Iterable[AnalysisResult]) -> dict[str, float]:
    """Percentage of each tool's issues that are valid and carry crossToolPatterns.

    Skipped tools are left out. Tools that produced no issues score 100.
    """
    readiness: dict[str, float] = {}
    for result in results:
        if result.skipped:
            continue
        report = result.metadata.get("validation")
        if report is None:
            report = validate_result(result).metadata["validation"]
        readiness[result.tool] = report["readiness"]
    return dict(sorted(readiness.items()))
