"""gosec mapper (``gosec -fmt=json``)."""

import re
from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, SeverityVocabulary

TOOL = "gosec"
CATEGORY = AnalysisCategory.APPLICATION_SECURITY

SEVERITY = SeverityVocabulary()

LINE_RANGE = re.compile(r"^\s*(\d+)(?:\s*-\s*(\d+))?\s*$")


def split_line(value) -> tuple[int | None, int | None]:
    """``"12"`` -> (12, None); ``"12-14"`` -> (12, 14)."""
    match = LINE_RANGE.match(str(value if value is not None else ""))
    if not match:
        return None, None
    end = match.group(2)
    return int(match.group(1)), int(end) if end else None


def _map_issue(builder: ResultBuilder, item: Mapping[str, Any]) -> None:
    line, end_line = split_line(item.get("line"))
    native = item.get("severity")
    cwe = item.get("cwe") or {}
    details = item["details"]

    builder.issue(
        builder.file_entity(item["file"]),
        severity=SEVERITY(native),
        title=details,
        rule_id=item["rule_id"],
        description=details,
        location=location_from(line, item.get("column"), end_line),
        metadata={
            "confidence": item.get("confidence"),
            "cwe": cwe.get("id") if isinstance(cwe, Mapping) else cwe,
            "cweUrl": cwe.get("url") if isinstance(cwe, Mapping) else None,
            "code": item.get("code"),
            "nosec": bool(item.get("nosec", False)),
            "nativeSeverity": native,
        },
    )


@mapper(TOOL, CATEGORY)
def map_gosec(raw: Any, ctx: MapperContext) -> AnalysisResult:
    if not isinstance(raw, Mapping):
        raise ParseError("gosec output must be a JSON object")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    for item in raw.get("Issues") or []:
        builder.guard(item, lambda: _map_issue(builder, item))

    stats = raw.get("Stats") or {}
    return builder.build({
        "gosecVersion": raw.get("GosecVersion"),
        "filesScanned": stats.get("files"),
        "linesScanned": stats.get("lines"),
        "nosecCount": stats.get("nosec"),
        "golangErrors": len(raw.get("Golang errors") or {}),
    })
