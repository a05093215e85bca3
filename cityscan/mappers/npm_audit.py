"""npm audit mapper.

Maps the ``npm audit --json`` report (audit report version 2, with a v1
``advisories`` fallback) onto the unified model. Each object in a
vulnerability's ``via`` list is a distinct advisory and yields its own
Issue; string ``via`` entries only point at other vulnerable packages.
"""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, mapper
from cityscan.model.paths import package_path
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, SeverityVocabulary

TOOL = "npm-audit"
CATEGORY = AnalysisCategory.DEPENDENCY_SECURITY

SEVERITY = SeverityVocabulary()


def _total_dependencies(raw: Mapping[str, Any]) -> int:
    deps = (raw.get("metadata") or {}).get("dependencies")
    if isinstance(deps, Mapping):
        total = deps.get("total", 0)
    else:
        total = deps
    return total if isinstance(total, int) and not isinstance(total, bool) else 0


def _describe(name: str, advisory: Mapping[str, Any], vuln: Mapping[str, Any]) -> str:
    parts = [advisory.get("title") or f"Vulnerability in {name}"]
    if advisory.get("url"):
        parts.append(f"Advisory: {advisory['url']}")
    affected = advisory.get("range") or vuln.get("range")
    if affected:
        parts.append(f"Affected versions: {affected}")
    fix = vuln.get("fixAvailable")
    if fix is True:
        parts.append("Fix available via `npm audit fix`")
    elif isinstance(fix, Mapping) and fix.get("name"):
        breaking = " (semver major)" if fix.get("isSemVerMajor") else ""
        parts.append(f"Fix available: {fix['name']}@{fix.get('version', '?')}{breaking}")
    else:
        parts.append("No fix available")
    parts.append("Direct dependency" if vuln.get("isDirect") else "Transitive dependency")
    return "\n".join(parts)


def _map_vulnerability(builder: ResultBuilder, name: str, vuln: Mapping[str, Any]) -> None:
    if not isinstance(vuln, Mapping):
        raise TypeError(f"vulnerability entry for {name} is {type(vuln).__name__}")

    package = builder.entity(
        EntityKind.PACKAGE,
        package_path("npm", name),
        name=name,
        original_identifier=name,
        confidence=0.8,
    )

    via = vuln.get("via") or []
    advisories = [v for v in via if isinstance(v, Mapping) and v.get("source") is not None]
    transitive = [v for v in via if isinstance(v, str)]
    token = vuln.get("severity")

    shared = {
        "packageName": name,
        "range": vuln.get("range"),
        "fixAvailable": vuln.get("fixAvailable"),
        "isDirect": bool(vuln.get("isDirect", False)),
        "effects": list(vuln.get("effects") or []),
    }
    if transitive:
        shared["via"] = transitive

    for advisory in advisories:
        native = advisory.get("severity") or token
        cvss = advisory.get("cvss")
        severity = SEVERITY(native, cvss=cvss)
        metadata = {
            **shared,
            "vulnerabilityId": advisory.get("source"),
            "url": advisory.get("url"),
            "cwe": list(advisory.get("cwe") or []),
            "cvss": cvss.get("score") if isinstance(cvss, Mapping) else cvss,
            "severity": native,
            "range": advisory.get("range") or vuln.get("range"),
            "dependency": advisory.get("dependency", name),
        }
        builder.guard(advisory, lambda: builder.issue(
            package,
            severity=severity,
            title=advisory.get("title") or f"Vulnerability in {name}",
            rule_id=str(advisory["source"]),
            description=_describe(name, advisory, vuln),
            metadata=metadata,
        ))

    if not advisories and token:
        builder.issue(
            package,
            severity=SEVERITY(token),
            title=f"Vulnerable dependency: {name}",
            rule_id=f"npm-audit-{name}",
            description=_describe(name, {}, vuln),
            metadata={**shared, "severity": token, "cwe": []},
        )


def _map_legacy_advisory(builder: ResultBuilder, advisory: Mapping[str, Any]) -> None:
    name = advisory["module_name"]
    package = builder.entity(
        EntityKind.PACKAGE,
        package_path("npm", name),
        name=name,
        original_identifier=name,
        confidence=0.8,
    )
    builder.issue(
        package,
        severity=SEVERITY(advisory.get("severity"), cvss=advisory.get("cvss")),
        title=advisory.get("title") or f"Vulnerability in {name}",
        rule_id=str(advisory["id"]),
        description=advisory.get("overview") or "",
        metadata={
            "packageName": name,
            "vulnerabilityId": advisory["id"],
            "url": advisory.get("url"),
            "cwe": [advisory["cwe"]] if isinstance(advisory.get("cwe"), str) else list(advisory.get("cwe") or []),
            "severity": advisory.get("severity"),
            "range": advisory.get("vulnerable_versions"),
            "fixAvailable": bool(advisory.get("patched_versions")),
            "isDirect": None,
            "effects": [],
        },
    )


@mapper(TOOL, CATEGORY)
def map_npm_audit(raw: Any, ctx: MapperContext) -> AnalysisResult:
    """Map an npm audit JSON document to a unified Result."""
    if not isinstance(raw, Mapping):
        raise ParseError("npm audit output must be a JSON object")
    if raw.get("error"):
        error = raw["error"]
        if isinstance(error, Mapping):
            raise ParseError(
                f"npm audit reported an error: {error.get('summary')}",
                {"code": error.get("code")},
            )
        raise ParseError(f"npm audit reported an error: {error}")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    builder.entity(EntityKind.MANIFEST, "package.json", name="package.json", confidence=1.0)

    total = _total_dependencies(raw)
    if total > 0:
        builder.entity(EntityKind.LOCKFILE, "package-lock.json", name="package-lock.json", confidence=0.9)

    vulnerabilities = raw.get("vulnerabilities") or {}
    for name, vuln in vulnerabilities.items():
        builder.guard(vuln, lambda: _map_vulnerability(builder, name, vuln))

    advisories = raw.get("advisories") or {}
    for advisory in advisories.values():
        builder.guard(advisory, lambda: _map_legacy_advisory(builder, advisory))

    return builder.build({
        "totalDependencies": total,
        "vulnerabilityCount": len(vulnerabilities) or len(advisories),
        "auditReportVersion": raw.get("auditReportVersion", 1 if advisories else None),
    })
