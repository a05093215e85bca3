"""cargo-audit mapper (RustSec advisory database)."""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, mapper
from cityscan.model.paths import package_path
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, SeverityVocabulary

TOOL = "cargo-audit"
CATEGORY = AnalysisCategory.DEPENDENCY_SECURITY

SEVERITY = SeverityVocabulary()


def _map_vulnerability(builder: ResultBuilder, vuln: Mapping[str, Any]) -> None:
    advisory = vuln["advisory"]
    pkg = vuln.get("package") or {}
    name = pkg.get("name") or advisory["package"]
    version = pkg.get("version")

    package = builder.entity(
        EntityKind.PACKAGE,
        package_path("cargo", name),
        name=name,
        original_identifier=f"{name}@{version or 'unknown'}",
        confidence=0.9,
    )

    aliases = [a for a in advisory.get("aliases") or [] if isinstance(a, str)]
    native = advisory.get("severity")
    versions = vuln.get("versions") or {}
    patched = list(versions.get("patched") or advisory.get("patched_versions") or [])

    description = advisory.get("description") or advisory.get("title") or ""
    if patched:
        description += f"\n\nPatched versions: {', '.join(patched)}"

    builder.issue(
        package,
        severity=SEVERITY(native, cvss=advisory.get("cvss"), aliases=aliases),
        title=advisory.get("title") or f"{advisory['id']} in {name}",
        rule_id=advisory["id"],
        description=description,
        metadata={
            "advisoryId": advisory["id"],
            "packageName": name,
            "packageVersion": version,
            "packageSource": pkg.get("source"),
            "url": advisory.get("url"),
            "cvss": advisory.get("cvss"),
            "aliases": aliases,
            "categories": list(advisory.get("categories") or []),
            "patchedVersions": patched,
            "date": advisory.get("date"),
            "nativeSeverity": native,
        },
    )


@mapper(TOOL, CATEGORY)
def map_cargo_audit(raw: Any, ctx: MapperContext) -> AnalysisResult:
    """Map ``cargo audit --json`` output to a unified Result.

    Informational ``warnings`` (unmaintained, yanked) are not vulnerabilities
    and are only counted.
    """
    if not isinstance(raw, Mapping):
        raise ParseError("cargo-audit output must be a JSON object")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    builder.entity(EntityKind.MANIFEST, "Cargo.toml", confidence=1.0)

    dependency_count = (raw.get("lockfile") or {}).get("dependency-count", 0)
    if isinstance(dependency_count, int) and dependency_count > 0:
        builder.entity(EntityKind.LOCKFILE, "Cargo.lock", confidence=0.9)

    vulnerabilities = raw.get("vulnerabilities") or {}
    for vuln in vulnerabilities.get("list") or []:
        builder.guard(vuln, lambda: _map_vulnerability(builder, vuln))

    warnings = raw.get("warnings") or {}
    return builder.build({
        "dependencyCount": dependency_count,
        "vulnerabilityCount": vulnerabilities.get("count", len(builder.issues)),
        "warningCounts": {
            kind: len(items) for kind, items in warnings.items() if isinstance(items, list)
        },
        "advisoryDatabase": (raw.get("database") or {}).get("last-commit"),
    })
