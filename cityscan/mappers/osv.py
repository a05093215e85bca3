"""OSV-Scanner mapper.

OSV-Scanner covers many ecosystems (npm, PyPI, Go, crates.io, ...). Its
report nests ``results[].packages[].vulnerabilities[]``; each result also
names the manifest or lockfile it scanned.
"""

import posixpath
from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, mapper
from cityscan.model.paths import canonical_ecosystem, package_path
from cityscan.model.schema import AnalysisResult, UnifiedEntity
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, SeverityVocabulary, coerce_cvss

TOOL = "osv-scanner"
CATEGORY = AnalysisCategory.DEPENDENCY_SECURITY

SEVERITY = SeverityVocabulary()

LOCKFILE_NAMES = {
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "go.sum",
    "Pipfile.lock",
    "poetry.lock",
    "composer.lock",
    "Gemfile.lock",
    "uv.lock",
}


def _source_kind(path: str) -> EntityKind:
    return EntityKind.LOCKFILE if posixpath.basename(path) in LOCKFILE_NAMES else EntityKind.MANIFEST


def _cvss_score(vuln: Mapping[str, Any], group_scores: Mapping[str, Any]):
    """First numeric score from the record, else the package group's max_severity."""
    for entry in vuln.get("severity") or []:
        if isinstance(entry, Mapping):
            score = coerce_cvss(entry.get("score"))
            if score is not None:
                return score
    return coerce_cvss(group_scores.get(vuln.get("id")))


def _group_scores(pkg: Mapping[str, Any]) -> dict[str, Any]:
    scores = {}
    for group in pkg.get("groups") or []:
        if not isinstance(group, Mapping):
            continue
        for vuln_id in group.get("ids") or []:
            scores[vuln_id] = group.get("max_severity")
    return scores


def _describe(vuln: Mapping[str, Any], name: str, version: str | None, ecosystem: str | None) -> str:
    lines = [vuln.get("details") or vuln.get("summary") or "Vulnerability found in dependency", ""]
    lines.append(f"Affected package: {name}@{version or 'unknown'}")
    lines.append(f"Ecosystem: {ecosystem or 'unknown'}")
    if vuln.get("id"):
        lines.append(f"Vulnerability ID: {vuln['id']}")
    aliases = vuln.get("aliases") or []
    if aliases:
        lines.append(f"Aliases: {', '.join(aliases)}")
    return "\n".join(lines)


def _map_vulnerability(
    builder: ResultBuilder,
    package: UnifiedEntity,
    pkg_info: Mapping[str, Any],
    vuln: Mapping[str, Any],
    source: str | None,
    group_scores: Mapping[str, Any],
) -> None:
    vuln_id = vuln["id"]
    name = pkg_info["name"]
    version = pkg_info.get("version")
    ecosystem = pkg_info.get("ecosystem")
    aliases = [a for a in vuln.get("aliases") or [] if isinstance(a, str)]
    native = (vuln.get("database_specific") or {}).get("severity")
    score = _cvss_score(vuln, group_scores)

    builder.issue(
        package,
        severity=SEVERITY(native, cvss=score, aliases=aliases),
        title=vuln.get("summary") or f"{vuln_id} in {name}",
        rule_id=vuln_id,
        description=_describe(vuln, name, version, ecosystem),
        metadata={
            "osvId": vuln_id,
            "packageName": name,
            "packageVersion": version,
            "ecosystem": ecosystem,
            "source": source,
            "aliases": aliases,
            "references": [r.get("url") for r in vuln.get("references") or [] if isinstance(r, Mapping)],
            "summary": vuln.get("summary"),
            "published": vuln.get("published"),
            "modified": vuln.get("modified"),
            "nativeSeverity": native,
            "cvss": score,
        },
    )


@mapper(TOOL, CATEGORY)
def map_osv(raw: Any, ctx: MapperContext) -> AnalysisResult:
    """Map an ``osv-scanner --format json`` document to a unified Result."""
    if not isinstance(raw, Mapping):
        raise ParseError("osv-scanner output must be a JSON object")
    if raw.get("error"):
        raise ParseError(f"osv-scanner reported an error: {raw['error']}")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    scanned_sources = []

    for result in raw.get("results") or []:
        if not isinstance(result, Mapping):
            builder.drop("result is not an object", result)
            continue

        source_path = (result.get("source") or {}).get("path")
        canonical_source = None
        if source_path:
            canonical_source = ctx.normalize(source_path)
            scanned_sources.append(canonical_source)
            builder.guard(result["source"], lambda: builder.entity(
                _source_kind(canonical_source),
                canonical_source,
                original_identifier=source_path,
                confidence=1.0,
            ))

        for pkg in result.get("packages") or []:
            pkg_info = pkg.get("package") if isinstance(pkg, Mapping) else None
            if not isinstance(pkg_info, Mapping) or not pkg_info.get("name"):
                builder.drop("package record without a name", pkg)
                continue

            name = pkg_info["name"]
            package = builder.guard(pkg_info, lambda: builder.entity(
                EntityKind.PACKAGE,
                package_path(pkg_info.get("ecosystem"), name),
                name=name,
                original_identifier=f"{name}@{pkg_info.get('version') or 'unknown'}",
                confidence=0.9,
            ))
            if package is None:
                continue

            group_scores = _group_scores(pkg)
            for vuln in pkg.get("vulnerabilities") or []:
                builder.guard(vuln, lambda: _map_vulnerability(
                    builder, package, pkg_info, vuln, canonical_source, group_scores
                ))

    return builder.build({
        "scannedSources": scanned_sources,
        "totalVulnerabilities": len(builder.issues),
        "ecosystems": sorted({
            canonical_ecosystem((p.get("package") or {}).get("ecosystem"))
            for r in raw.get("results") or [] if isinstance(r, Mapping)
            for p in r.get("packages") or [] if isinstance(p, Mapping)
        } - {""}),
    })
