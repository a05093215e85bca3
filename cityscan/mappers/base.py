"""Shared machinery for per-tool mappers.

A mapper is a pure function ``(raw, ctx) -> AnalysisResult``. It never
performs I/O, spawns processes or mutates ``raw``. Everything it needs from
the outside world arrives through the immutable ``MapperContext``.
"""

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from functools import wraps
from typing import Any

from cityscan.correlation.patterns import PatternCatalog, default_catalog
from cityscan.errors import CityscanError, ParseError, SchemaError
from cityscan.model.paths import DEFAULT_TEMP_PATTERNS, normalize
from cityscan.model.schema import (
    AnalysisResult,
    CorrelationHints,
    SourceLocation,
    UnifiedEntity,
    UnifiedIssue,
    empty_result,
    make_entity,
    make_issue,
    make_location,
    make_result,
)
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, Severity
from cityscan.utils.logging import logger


@dataclass(frozen=True)
class MapperContext:
    """Read-only capability handed to every mapper."""

    project_root: str
    tool_version: str = "unknown"
    catalog: PatternCatalog = field(default_factory=default_catalog)
    temp_patterns: tuple[str, ...] = DEFAULT_TEMP_PATTERNS
    duration: float = 0.0

    def normalize(self, path: str) -> str:
        return normalize(path, self.project_root, self.temp_patterns)

    def hints(self, tool: str, rule_id: str, text: str = "", severity: Severity | None = None) -> CorrelationHints:
        return self.catalog.hints_for(tool, rule_id, text, severity.value if severity else "")


class ResultBuilder:
    """Accumulates entities and issues for one mapper invocation.

    Entities are de-duplicated by id. Records that fail schema validation
    are dropped with a warning and counted.
    """

    def __init__(self, tool: str, category: AnalysisCategory, ctx: MapperContext):
        self.tool = tool
        self.category = category
        self.ctx = ctx
        self._entities: dict[str, UnifiedEntity] = {}
        self._issues: list[UnifiedIssue] = []
        self._issue_ids: set[str] = set()
        self.dropped: list[dict[str, Any]] = []

    def entity(
        self,
        kind: EntityKind,
        canonical_path: str,
        *,
        name: str | None = None,
        original_identifier: str | None = None,
        confidence: float = 1.0,
    ) -> UnifiedEntity:
        """Create or reuse the entity for (kind, canonical_path). Raises SchemaError."""
        candidate = make_entity(
            kind,
            canonical_path,
            tool=self.tool,
            name=name,
            original_identifier=original_identifier,
            confidence=confidence,
        )
        return self._entities.setdefault(candidate.id, candidate)

    def file_entity(self, raw_path: str, confidence: float = 1.0) -> UnifiedEntity:
        """Entity for a source file as reported by the tool."""
        canonical = self.ctx.normalize(raw_path)
        return self.entity(
            EntityKind.FILE,
            canonical,
            original_identifier=raw_path,
            confidence=confidence,
        )

    def issue(
        self,
        entity: UnifiedEntity,
        *,
        severity: Severity,
        title: str,
        rule_id: str,
        description: str = "",
        location: SourceLocation | None = None,
        metadata: Mapping[str, Any] | None = None,
        hint_text: str | None = None,
    ) -> UnifiedIssue:
        hints = self.ctx.hints(
            self.tool,
            str(rule_id),
            hint_text if hint_text is not None else f"{title} {description}",
            severity,
        )
        issue = make_issue(
            entity,
            severity=severity,
            category=self.category,
            title=title,
            rule_id=rule_id,
            tool=self.tool,
            description=description,
            location=location,
            metadata=metadata,
            hints=hints,
        )
        if issue.id in self._issue_ids:
            # Identical diagnostics reported twice keep distinct ids.
            suffix = 2
            while f"{issue.id}-{suffix}" in self._issue_ids:
                suffix += 1
            issue = _with_id(issue, f"{issue.id}-{suffix}")
        self._issue_ids.add(issue.id)
        self._issues.append(issue)
        return issue

    def drop(self, reason: str, record: Any = None) -> None:
        """Record a malformed input record and keep going."""
        hint = repr(record)[:120] if record is not None else ""
        logger.warning(f"[{self.tool}] Dropped malformed record: {reason} {hint}".rstrip())
        self.dropped.append({"reason": reason})

    def guard(self, record: Any, build: Callable[[], Any]) -> Any:
        """Run ``build`` for one record, dropping it on SchemaError or bad shape."""
        try:
            return build()
        except SchemaError as e:
            self.drop(e.message, record)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.drop(f"{type(e).__name__}: {e}", record)
        return None

    @property
    def issues(self) -> list[UnifiedIssue]:
        return list(self._issues)

    def build(self, metadata: Mapping[str, Any] | None = None) -> AnalysisResult:
        meta = {"toolVersion": self.ctx.tool_version}
        meta.update(metadata or {})
        if self.dropped:
            meta["droppedRecords"] = len(self.dropped)
            if not self._issues:
                meta["error"] = ParseError(
                    f"All {len(self.dropped)} {self.tool} records were malformed",
                    {"dropped": len(self.dropped)},
                ).to_dict()
        return make_result(
            tool=self.tool,
            category=self.category,
            project_path=_absolute_root(self.ctx.project_root),
            entities=self._entities.values(),
            issues=self._issues,
            metadata=meta,
            duration=self.ctx.duration,
        )


def _with_id(issue: UnifiedIssue, new_id: str) -> UnifiedIssue:
    return replace(issue, id=new_id)


def _absolute_root(root: str) -> str:
    return root if os.path.isabs(root) else os.path.abspath(root)


def location_from(line, column=None, end_line=None, end_column=None, *, zero_based_column: bool = False):
    """Build a complete 1-based location from whatever coordinates a tool gave.

    Missing columns default to 1 and missing ends collapse onto the start.
    Returns None when the tool gave no usable line.
    """
    line = _as_int(line)
    if line is None or line < 1:
        return None
    column = _as_int(column)
    if column is None:
        column = 1
    elif zero_based_column:
        column += 1
    column = max(column, 1)

    end_line = _as_int(end_line)
    if end_line is None or end_line < line:
        end_line = line
    end_column = _as_int(end_column)
    if end_column is None:
        end_column = column
    elif zero_based_column:
        end_column += 1
    if end_line == line and end_column < column:
        end_column = column
    return make_location(line, column, end_line, end_column)


def _as_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def mapper(tool: str, category: AnalysisCategory):
    """Decorator applying the mapper failure policy.

    An exception escaping the mapper body collapses the run into an empty
    Result carrying the error in metadata.
    """

    def decorator(func: Callable[[Any, MapperContext], AnalysisResult]):
        @wraps(func)
        def wrapper(raw: Any, ctx: MapperContext) -> AnalysisResult:
            try:
                return func(raw, ctx)
            except CityscanError as e:
                logger.warning(f"[{tool}] Mapping failed: {e.message}")
                error = e.to_dict()
            except Exception as e:
                logger.warning(f"[{tool}] Mapping failed: {type(e).__name__}: {e}")
                error = ParseError(f"{type(e).__name__}: {e}").to_dict()
            return empty_result(
                tool=tool,
                category=category,
                project_path=_absolute_root(ctx.project_root),
                metadata={"toolVersion": ctx.tool_version, "error": error},
                duration=ctx.duration,
            )

        wrapper.tool = tool
        wrapper.category = category
        return wrapper

    return decorator
