"""Unified Entity / Issue / Result records and their trusted constructors.

Raw tool output crosses into the model only through ``make_entity``,
``make_issue`` and ``make_result``. Each raises ``SchemaError`` when a record
would violate an invariant; mappers catch that and drop the record.
"""

import posixpath
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from cityscan.errors import SchemaError
from cityscan.model.keys import correlation_key
from cityscan.model.paths import PACKAGE_NAMESPACES, entity_id, short_hash
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, Severity

DEFAULT_SEARCH_RADIUS = (5, 10)

_SYNTHETIC_PREFIXES = tuple(f"{ns}/" for ns in PACKAGE_NAMESPACES.values()) + ("dependencies/",)


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted((freeze(v) for v in value), key=repr))
    return value


def thaw(value: Any) -> Any:
    """Inverse of ``freeze`` for JSON serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class UnifiedEntity:
    """A project artifact an issue can attach to."""

    id: str
    kind: EntityKind
    name: str
    canonical_path: str
    original_identifier: str
    tool: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "canonicalPath": self.canonical_path,
            "originalIdentifier": self.original_identifier,
            "tool": self.tool,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class SourceLocation:
    """1-based source span. Always complete."""

    line: int
    column: int
    end_line: int
    end_column: int

    def to_dict(self) -> dict[str, int]:
        return {
            "line": self.line,
            "column": self.column,
            "endLine": self.end_line,
            "endColumn": self.end_column,
        }


@dataclass(frozen=True)
class CorrelationHints:
    """Per-issue hints consumed by the correlation engine."""

    similarity_factors: tuple[str, ...] = ("file", "line", "category")
    search_radius: tuple[int, int] = DEFAULT_SEARCH_RADIUS
    cross_tool_patterns: tuple[str, ...] = ()

    @property
    def line_radius(self) -> int:
        return self.search_radius[0]

    @property
    def column_radius(self) -> int:
        return self.search_radius[1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "similarityFactors": list(self.similarity_factors),
            "searchRadius": {"lines": self.search_radius[0], "columns": self.search_radius[1]},
            "crossToolPatterns": list(self.cross_tool_patterns),
        }


@dataclass(frozen=True)
class UnifiedIssue:
    """A single diagnostic produced by one tool."""

    id: str
    entity: UnifiedEntity
    severity: Severity
    category: AnalysisCategory
    title: str
    description: str
    rule_id: str
    location: SourceLocation | None
    tool: str
    metadata: Mapping[str, Any]
    correlation_key: str
    correlation_hints: CorrelationHints

    @property
    def line(self) -> int | None:
        return self.location.line if self.location else None

    @property
    def column(self) -> int | None:
        return self.location.column if self.location else None

    def to_dict(self) -> dict[str, Any]:
        loc = self.location.to_dict() if self.location else {
            "line": None,
            "column": None,
            "endLine": None,
            "endColumn": None,
        }
        return {
            "id": self.id,
            "entityId": self.entity.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "ruleId": self.rule_id,
            **loc,
            "tool": self.tool,
            "metadata": thaw(self.metadata),
            "correlationKey": self.correlation_key,
            "correlationHints": self.correlation_hints.to_dict(),
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one tool run against one project."""

    tool: str
    category: AnalysisCategory
    project_path: str
    entities: tuple[UnifiedEntity, ...]
    issues: tuple[UnifiedIssue, ...]
    metadata: Mapping[str, Any]
    duration: float = field(default=0.0, compare=False)
    timestamp: str = field(default="", compare=False)

    @property
    def success(self) -> bool:
        return "error" not in self.metadata and not self.metadata.get("cancelled", False)

    @property
    def skipped(self) -> bool:
        return bool(self.metadata.get("skipped"))

    @property
    def error(self) -> Mapping[str, Any] | None:
        return self.metadata.get("error")

    def entity_ids(self) -> set[str]:
        return {entity.id for entity in self.entities}

    def severity_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for issue in self.issues:
            counts[issue.severity.value] = counts.get(issue.severity.value, 0) + 1
        return counts

    def with_metadata(self, **extra: Any) -> "AnalysisResult":
        merged = dict(self.metadata)
        merged.update(extra)
        return replace(self, metadata=freeze(merged))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "category": self.category.value,
            "projectPath": self.project_path,
            "success": self.success,
            "entities": [entity.to_dict() for entity in self.entities],
            "issues": [issue.to_dict() for issue in self.issues],
            "metadata": thaw(self.metadata),
            "duration": round(self.duration, 3),
            "timestamp": self.timestamp,
        }


def _as_enum(enum_cls, value, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise SchemaError(f"Unknown {what}: {value!r}", {"field": what, "value": str(value)}) from None


def _check_canonical_path(path: str) -> None:
    if not isinstance(path, str) or not path:
        raise SchemaError("Canonical path must be a non-empty string", {"field": "canonicalPath"})
    if path == ".":
        raise SchemaError(
            f"Canonical path does not name a file: {path}",
            {"field": "canonicalPath", "value": path},
        )
    if "\\" in path or path.startswith("./") or posixpath.isabs(path):
        raise SchemaError(
            f"Canonical path is not root-relative: {path}",
            {"field": "canonicalPath", "value": path},
        )
    if ".." in path.split("/") and not path.startswith(_SYNTHETIC_PREFIXES):
        raise SchemaError(
            f"Canonical path escapes the project root: {path}",
            {"field": "canonicalPath", "value": path},
        )


def make_entity(
    kind,
    canonical_path: str,
    *,
    tool: str,
    name: str | None = None,
    original_identifier: str | None = None,
    confidence: float = 1.0,
) -> UnifiedEntity:
    """Build a validated entity. The id is derived from (kind, canonical path)."""
    kind = _as_enum(EntityKind, kind, "entity kind")
    _check_canonical_path(canonical_path)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise SchemaError("Confidence must be numeric", {"field": "confidence"})
    if not 0.0 <= float(confidence) <= 1.0:
        raise SchemaError(
            f"Confidence out of range: {confidence}",
            {"field": "confidence", "value": confidence},
        )
    if not tool:
        raise SchemaError("Entity requires a producing tool", {"field": "tool"})

    return UnifiedEntity(
        id=entity_id(kind, canonical_path),
        kind=kind,
        name=name or posixpath.basename(canonical_path) or canonical_path,
        canonical_path=canonical_path,
        original_identifier=original_identifier if original_identifier is not None else canonical_path,
        tool=tool,
        confidence=float(confidence),
    )


def _positive_int(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise SchemaError(f"{what} must be a 1-based integer, got {value!r}", {"field": what})
    return value


def make_location(line=None, column=None, end_line=None, end_column=None) -> SourceLocation | None:
    """All four coordinates or none."""
    coords = (line, column, end_line, end_column)
    if all(c is None for c in coords):
        return None
    if any(c is None for c in coords):
        raise SchemaError(
            "Location must carry line, column, endLine and endColumn together",
            {"field": "location", "value": [line, column, end_line, end_column]},
        )
    loc = SourceLocation(
        _positive_int(line, "line"),
        _positive_int(column, "column"),
        _positive_int(end_line, "endLine"),
        _positive_int(end_column, "endColumn"),
    )
    if loc.end_line < loc.line or (loc.end_line == loc.line and loc.end_column < loc.column):
        raise SchemaError("Location end precedes start", {"field": "location"})
    return loc


def make_hints(
    cross_tool_patterns: Iterable[str] = (),
    similarity_factors: Iterable[str] = ("file", "line", "category"),
    search_radius: tuple[int, int] = DEFAULT_SEARCH_RADIUS,
) -> CorrelationHints:
    return CorrelationHints(
        similarity_factors=tuple(similarity_factors),
        search_radius=(int(search_radius[0]), int(search_radius[1])),
        cross_tool_patterns=tuple(sorted(set(cross_tool_patterns))),
    )


def make_issue(
    entity: UnifiedEntity,
    *,
    severity: Severity,
    category: AnalysisCategory,
    title: str,
    rule_id: str,
    tool: str,
    description: str = "",
    location: SourceLocation | None = None,
    metadata: Mapping[str, Any] | None = None,
    hints: CorrelationHints | None = None,
) -> UnifiedIssue:
    """Build a validated issue with its correlation key and frozen metadata."""
    if not isinstance(entity, UnifiedEntity):
        raise SchemaError("Issue must reference a UnifiedEntity", {"field": "entity"})
    if not isinstance(severity, Severity):
        raise SchemaError(f"Severity must be a Severity, got {severity!r}", {"field": "severity"})
    category = _as_enum(AnalysisCategory, category, "category")
    if not title:
        raise SchemaError("Issue requires a title", {"field": "title"})
    if rule_id is None or str(rule_id) == "":
        raise SchemaError("Issue requires a rule id", {"field": "ruleId"})
    if not tool:
        raise SchemaError("Issue requires a producing tool", {"field": "tool"})
    if location is not None and not isinstance(location, SourceLocation):
        raise SchemaError("Location must be built with make_location", {"field": "location"})

    rule_id = str(rule_id)
    line = location.line if location else None
    column = location.column if location else None
    issue_id = short_hash(tool, rule_id, entity.id, line, column, title)

    return UnifiedIssue(
        id=issue_id,
        entity=entity,
        severity=severity,
        category=category,
        title=str(title),
        description=str(description or ""),
        rule_id=rule_id,
        location=location,
        tool=tool,
        metadata=freeze(dict(metadata or {})),
        correlation_key=correlation_key(entity.canonical_path, line, category, tool),
        correlation_hints=hints or make_hints(),
    )


def make_result(
    *,
    tool: str,
    category,
    project_path: str,
    entities: Iterable[UnifiedEntity] = (),
    issues: Iterable[UnifiedIssue] = (),
    metadata: Mapping[str, Any] | None = None,
    duration: float = 0.0,
    timestamp: str | None = None,
) -> AnalysisResult:
    """Build a validated result. Every issue's entity must be in the entity set."""
    category = _as_enum(AnalysisCategory, category, "category")
    if not posixpath.isabs(project_path.replace("\\", "/")):
        raise SchemaError(
            f"Project path must be absolute: {project_path}",
            {"field": "projectPath", "value": project_path},
        )
    entities = tuple(entities)
    issues = tuple(issues)

    known = {entity.id for entity in entities}
    for issue in issues:
        if issue.entity.id not in known:
            raise SchemaError(
                f"Issue {issue.id} references unknown entity {issue.entity.id}",
                {"field": "entity", "issueId": issue.id, "entityId": issue.entity.id},
            )
        if issue.category is not category:
            raise SchemaError(
                f"Issue {issue.id} category {issue.category.value} differs from result category {category.value}",
                {"field": "category", "issueId": issue.id},
            )

    return AnalysisResult(
        tool=tool,
        category=category,
        project_path=posixpath.normpath(project_path.replace("\\", "/")),
        entities=entities,
        issues=issues,
        metadata=freeze(dict(metadata or {})),
        duration=float(duration),
        timestamp=timestamp if timestamp is not None else datetime.now(UTC).isoformat(),
    )


def empty_result(
    *,
    tool: str,
    category,
    project_path: str,
    metadata: Mapping[str, Any] | None = None,
    duration: float = 0.0,
) -> AnalysisResult:
    return make_result(
        tool=tool,
        category=category,
        project_path=project_path,
        metadata=metadata,
        duration=duration,
    )


def result_from_dict(data: Mapping[str, Any]) -> AnalysisResult:
    """Rebuild a Result from its ``to_dict`` form, re-running every constructor.

    Stored issue ids are kept so groups computed later still reference them.
    """
    try:
        entities = {}
        for raw in data.get("entities") or []:
            entity = make_entity(
                raw["kind"],
                raw["canonicalPath"],
                tool=raw.get("tool") or data["tool"],
                name=raw.get("name"),
                original_identifier=raw.get("originalIdentifier"),
                confidence=raw.get("confidence", 1.0),
            )
            entities[entity.id] = entity

        issues = []
        for raw in data.get("issues") or []:
            entity = entities.get(raw["entityId"])
            if entity is None:
                raise SchemaError(
                    f"Issue {raw.get('id')} references unknown entity {raw['entityId']}",
                    {"field": "entityId", "issueId": raw.get("id")},
                )
            hints = raw.get("correlationHints") or {}
            radius = hints.get("searchRadius") or {}
            issue = make_issue(
                entity,
                severity=_as_enum(Severity, raw["severity"], "severity"),
                category=raw["category"],
                title=raw["title"],
                rule_id=raw["ruleId"],
                tool=raw["tool"],
                description=raw.get("description", ""),
                location=make_location(raw.get("line"), raw.get("column"), raw.get("endLine"), raw.get("endColumn")),
                metadata=raw.get("metadata"),
                hints=make_hints(
                    hints.get("crossToolPatterns") or (),
                    hints.get("similarityFactors") or ("file", "line", "category"),
                    (
                        radius.get("lines", DEFAULT_SEARCH_RADIUS[0]),
                        radius.get("columns", DEFAULT_SEARCH_RADIUS[1]),
                    ),
                ),
            )
            issues.append(replace(issue, id=raw.get("id") or issue.id))

        return make_result(
            tool=data["tool"],
            category=data["category"],
            project_path=data["projectPath"],
            entities=entities.values(),
            issues=issues,
            metadata=data.get("metadata"),
            duration=data.get("duration", 0.0),
            timestamp=data.get("timestamp") or "",
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise SchemaError(f"Malformed result document: {type(e).__name__}: {e}") from e
