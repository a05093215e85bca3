"""ESLint mapper (``eslint -f json``)."""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult, UnifiedEntity
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "eslint"
CATEGORY = AnalysisCategory.STATIC_QUALITY

SEVERITY = SeverityVocabulary({
    "2": Severity.HIGH,
    "1": Severity.MEDIUM,
    "0": Severity.INFO,
})

PARSE_ERROR_RULE = "eslint-parse-error"


def _map_message(builder: ResultBuilder, entity: UnifiedEntity, msg: Mapping[str, Any]) -> None:
    rule_id = msg.get("ruleId") or PARSE_ERROR_RULE
    native = msg.get("severity")
    text = msg["message"]

    builder.issue(
        entity,
        severity=SEVERITY(native),
        title=text,
        rule_id=rule_id,
        description=text,
        location=location_from(
            msg.get("line"),
            msg.get("column"),
            msg.get("endLine"),
            msg.get("endColumn"),
        ),
        metadata={
            "fatal": bool(msg.get("fatal", False)),
            "nodeType": msg.get("nodeType"),
            "messageId": msg.get("messageId"),
            "fixable": msg.get("fix") is not None,
            "nativeSeverity": native,
        },
    )


@mapper(TOOL, CATEGORY)
def map_eslint(raw: Any, ctx: MapperContext) -> AnalysisResult:
    if not isinstance(raw, list):
        raise ParseError("eslint output must be a JSON array of file reports")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    files_with_messages = 0
    for report in raw:
        if not isinstance(report, Mapping) or not report.get("filePath"):
            builder.drop("file report without filePath", report)
            continue
        messages = report.get("messages") or []
        if not messages:
            continue
        entity = builder.guard(report, lambda: builder.file_entity(report["filePath"]))
        if entity is None:
            continue
        files_with_messages += 1
        for msg in messages:
            builder.guard(msg, lambda: _map_message(builder, entity, msg))

    return builder.build({
        "filesScanned": len(raw),
        "filesWithMessages": files_with_messages,
        "errorCount": sum(r.get("errorCount", 0) for r in raw if isinstance(r, Mapping)),
        "warningCount": sum(r.get("warningCount", 0) for r in raw if isinstance(r, Mapping)),
    })
