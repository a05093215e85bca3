"""Cross-tool correlation and aggregate health.

``merge`` takes validated AnalysisResults and produces a MergedSet: the
original results untouched plus groups of issue ids that several tools
reported about the same place for the same kind of reason.

Two issues correlate when all of these hold:

* their entities share a canonical path,
* their lines are within the line radius (both unlocated also counts),
* their columns are within the column radius,
* their crossToolPatterns intersect,
* they come from different tools.

Groups are the connected components of that relation.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cityscan.model.keys import correlation_key
from cityscan.model.paths import short_hash
from cityscan.model.schema import AnalysisResult, UnifiedIssue
from cityscan.model.taxonomy import AnalysisCategory, HealthLevel, Severity
from cityscan.utils.logging import logger

# (bucket, penalty per matching issue)
HEALTH_PENALTIES = {
    "criticalSecurity": 10,
    "highSecurity": 5,
    "criticalStatic": 12,
    "criticalMemory": 15,
    "criticalPerformance": 6,
    "circularDependency": 5,
    "formalVerification": 8,
}


class MergeState(Enum):
    COLLECTING = "collecting"
    KEYED = "keyed"
    GROUPED = "grouped"


@dataclass(frozen=True)
class HealthScore:
    score: int
    level: HealthLevel
    breakdown: dict[str, int] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "level": self.level.value, "penalties": dict(self.breakdown)}


@dataclass(frozen=True)
class CorrelationGroup:
    """Issues from different tools that describe the same finding."""

    key: str
    canonical_path: str
    issue_ids: tuple[str, ...]
    tools: tuple[str, ...]
    patterns: tuple[str, ...]
    severity: Severity
    line_span: tuple[int, int] | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "canonicalPath": self.canonical_path,
            "issueIds": list(self.issue_ids),
            "tools": list(self.tools),
            "sharedPatterns": list(self.patterns),
            "severity": self.severity.value,
            "lineSpan": list(self.line_span) if self.line_span else None,
        }


@dataclass(frozen=True)
class MergedSet:
    """Terminal, read-only output of ``merge``. Groups reference issues by id."""

    results: tuple[AnalysisResult, ...]
    groups: tuple[CorrelationGroup, ...]
    health: HealthScore
    state: MergeState = MergeState.GROUPED

    def issues(self) -> Iterable[UnifiedIssue]:
        for result in self.results:
            yield from result.issues

    def group_for(self, issue_id: str) -> CorrelationGroup | None:
        for group in self.groups:
            if issue_id in group.issue_ids:
                return group
        return None

    def summary(self) -> dict[str, Any]:
        by_severity: dict[str, int] = {s.value: 0 for s in Severity}
        by_tool: dict[str, int] = {}
        total = 0
        for result in self.results:
            by_tool[result.tool] = by_tool.get(result.tool, 0) + len(result.issues)
            for issue in result.issues:
                by_severity[issue.severity.value] += 1
                total += 1
        return {
            "totalIssues": total,
            "bySeverity": by_severity,
            "byTool": dict(sorted(by_tool.items())),
            "correlatedIssues": sum(len(g.issue_ids) for g in self.groups),
            "groupCount": len(self.groups),
            "failedTools": sorted(r.tool for r in self.results if not r.success and not r.skipped),
            "skippedTools": sorted(r.tool for r in self.results if r.skipped),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "results": [result.to_dict() for result in self.results],
            "groups": [group.to_dict() for group in self.groups],
            "health": self.health.to_dict(),
            "summary": self.summary(),
        }


def _penalty_buckets(issue: UnifiedIssue) -> list[str]:
    patterns = set(issue.correlation_hints.cross_tool_patterns)
    buckets = []
    if issue.category.is_security:
        if issue.severity is Severity.CRITICAL:
            buckets.append("criticalSecurity")
        elif issue.severity is Severity.HIGH:
            buckets.append("highSecurity")
    if issue.severity is Severity.CRITICAL:
        if issue.category.is_static:
            buckets.append("criticalStatic")
        if "memory_safety" in patterns:
            buckets.append("criticalMemory")
        if "performance_bottleneck" in patterns:
            buckets.append("criticalPerformance")
    if "circular_dependency" in patterns:
        buckets.append("circularDependency")
    if issue.category is AnalysisCategory.FORMAL_VERIFICATION:
        buckets.append("formalVerification")
    return buckets


def compute_health(issues: Iterable[UnifiedIssue]) -> HealthScore:
    """Score 100 minus per-issue penalties, clamped at 0.

    An issue can land in several buckets (a critical memory-safety finding
    from a static tool is penalised as both).
    """
    counts = {bucket: 0 for bucket in HEALTH_PENALTIES}
    for issue in issues:
        for bucket in _penalty_buckets(issue):
            counts[bucket] += 1

    penalty = sum(HEALTH_PENALTIES[bucket] * n for bucket, n in counts.items())
    score = max(0, 100 - penalty)
    return HealthScore(score, HealthLevel.from_score(score), {k: v for k, v in counts.items() if v})


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            # Lower index wins so components are stable across runs.
            self.parent[max(ra, rb)] = min(ra, rb)


def correlates(a: UnifiedIssue, b: UnifiedIssue) -> bool:
    """Pairwise correlation test. Uses the tighter of the two search radii."""
    if a.tool == b.tool:
        return False
    if a.entity.canonical_path != b.entity.canonical_path:
        return False
    if not set(a.correlation_hints.cross_tool_patterns) & set(b.correlation_hints.cross_tool_patterns):
        return False
    if a.location is None or b.location is None:
        return a.location is None and b.location is None
    line_radius = min(a.correlation_hints.line_radius, b.correlation_hints.line_radius)
    column_radius = min(a.correlation_hints.column_radius, b.correlation_hints.column_radius)
    return (
        abs(a.location.line - b.location.line) <= line_radius
        and abs(a.location.column - b.location.column) <= column_radius
    )


class _MergeBuilder:
    """collecting -> keyed -> grouped. Only ``finish`` leaves the builder."""

    def __init__(self):
        self.state = MergeState.COLLECTING
        self.results: list[AnalysisResult] = []
        self.issues: list[UnifiedIssue] = []
        self.groups: list[CorrelationGroup] = []

    def _expect(self, state: MergeState) -> None:
        if self.state is not state:
            raise RuntimeError(f"MergedSet is {self.state.value}, expected {state.value}")

    def collect(self, result: AnalysisResult) -> None:
        self._expect(MergeState.COLLECTING)
        self.results.append(result)

    def key(self) -> None:
        self._expect(MergeState.COLLECTING)
        for result in self.results:
            for issue in result.issues:
                expected = correlation_key(issue.entity.canonical_path, issue.line, issue.category, issue.tool)
                if issue.correlation_key != expected:
                    raise RuntimeError(f"Issue {issue.id} carries a stale correlation key")
                self.issues.append(issue)
        self.state = MergeState.KEYED

    def group(self) -> None:
        self._expect(MergeState.KEYED)
        by_path: dict[str, list[int]] = defaultdict(list)
        for index, issue in enumerate(self.issues):
            if issue.correlation_hints.cross_tool_patterns:
                by_path[issue.entity.canonical_path].append(index)

        uf = _UnionFind(len(self.issues))
        for indices in by_path.values():
            for pos, i in enumerate(indices):
                for j in indices[pos + 1:]:
                    if correlates(self.issues[i], self.issues[j]):
                        uf.union(i, j)

        components: dict[int, list[int]] = defaultdict(list)
        for indices in by_path.values():
            for i in indices:
                components[uf.find(i)].append(i)

        groups = [self._make_group(members) for members in components.values() if len(members) > 1]
        self.groups = sorted(groups, key=lambda g: g.key)
        self.state = MergeState.GROUPED

    def _make_group(self, members: list[int]) -> CorrelationGroup:
        issues = [self.issues[i] for i in members]
        shared = set(issues[0].correlation_hints.cross_tool_patterns)
        union = set(shared)
        for issue in issues[1:]:
            patterns = set(issue.correlation_hints.cross_tool_patterns)
            shared &= patterns
            union |= patterns
        lines = [issue.line for issue in issues if issue.line is not None]
        return CorrelationGroup(
            key=short_hash(*sorted(issue.correlation_key for issue in issues)),
            canonical_path=issues[0].entity.canonical_path,
            issue_ids=tuple(sorted(issue.id for issue in issues)),
            tools=tuple(sorted({issue.tool for issue in issues})),
            patterns=tuple(sorted(shared or union)),
            severity=min((issue.severity for issue in issues), key=lambda s: s.rank),
            line_span=(min(lines), max(lines)) if lines else None,
        )

    def finish(self) -> MergedSet:
        self._expect(MergeState.GROUPED)
        return MergedSet(
            results=tuple(self.results),
            groups=tuple(self.groups),
            health=compute_health(self.issues),
        )


def merge(results: Iterable[AnalysisResult | MergedSet] | MergedSet) -> MergedSet:
    """Correlate issues across results.

    Accepts results, previously merged sets, or a mix. Groups are recomputed
    from the underlying results, so ``merge(merge(r)) == merge(r)``.
    """
    if isinstance(results, MergedSet):
        results = [results]

    builder = _MergeBuilder()
    for item in results:
        if isinstance(item, MergedSet):
            for result in item.results:
                builder.collect(result)
        elif isinstance(item, AnalysisResult):
            builder.collect(item)
        else:
            raise TypeError(f"merge() expects AnalysisResult or MergedSet, got {type(item).__name__}")

    builder.key()
    builder.group()
    merged = builder.finish()
    logger.debug(
        f"Merged {len(merged.results)} results: {len(builder.issues)} issues, "
        f"{len(merged.groups)} correlation groups, health {merged.health.score}"
    )
    return merged
