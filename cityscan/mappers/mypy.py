"""Mypy mapper.

Input is the list of dicts produced by ``parsers.parse_mypy_lines``.
"""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "mypy"
CATEGORY = AnalysisCategory.TYPE_CHECKING

SEVERITY = SeverityVocabulary({
    "error": Severity.HIGH,
    "warning": Severity.MEDIUM,
    "note": Severity.INFO,
})

# mypy error code -> coarse error type
ERROR_TYPES = {
    "attr-defined": "attribute",
    "union-attr": "attribute",
    "name-defined": "undefined-name",
    "arg-type": "argument",
    "call-arg": "argument",
    "call-overload": "argument",
    "return-value": "return",
    "return": "return",
    "assignment": "assignment",
    "import": "import",
    "import-untyped": "import",
    "import-not-found": "import",
    "no-untyped-def": "annotation",
    "var-annotated": "annotation",
    "override": "inheritance",
    "index": "indexing",
    "operator": "operator",
    "unreachable": "unreachable",
    "misc": "misc",
}


def _error_type(code: str | None, message: str) -> str:
    if code:
        return ERROR_TYPES.get(code, code)
    lowered = message.lower()
    if "has no attribute" in lowered:
        return "attribute"
    if "incompatible type" in lowered:
        return "argument"
    if "cannot find implementation or library stub" in lowered:
        return "import"
    return "general"


def _map_diagnostic(builder: ResultBuilder, item: Mapping[str, Any]) -> None:
    severity_token = item.get("severity") or "error"
    code = item.get("code")
    message = item["message"]

    builder.issue(
        builder.file_entity(item["file"]),
        severity=SEVERITY(severity_token),
        title=message,
        rule_id=code or f"mypy-{severity_token}",
        description=message,
        location=location_from(item.get("line"), item.get("column")),
        metadata={
            "errorType": _error_type(code, message),
            "errorCode": code,
            "nativeSeverity": severity_token,
        },
    )


@mapper(TOOL, CATEGORY)
def map_mypy(raw: Any, ctx: MapperContext) -> AnalysisResult:
    if not isinstance(raw, list):
        raise ParseError("mypy input must be a list of parsed diagnostics")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    for item in raw:
        if not isinstance(item, Mapping):
            builder.drop("diagnostic is not an object", item)
            continue
        builder.guard(item, lambda: _map_diagnostic(builder, item))

    counts: dict[str, int] = {}
    for item in raw:
        if isinstance(item, Mapping):
            key = str(item.get("severity") or "error")
            counts[key] = counts.get(key, 0) + 1
    return builder.build({"diagnosticCounts": counts})
