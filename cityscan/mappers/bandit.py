"""Bandit mapper (``bandit -f json``)."""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "bandit"
CATEGORY = AnalysisCategory.APPLICATION_SECURITY

SEVERITY = SeverityVocabulary({"undefined": Severity.INFO})

CONFIDENCE = {"HIGH": 0.9, "MEDIUM": 0.6, "LOW": 0.3}


def _map_finding(builder: ResultBuilder, finding: Mapping[str, Any]) -> None:
    native = finding.get("issue_severity")
    confidence = str(finding.get("issue_confidence") or "").upper()
    cwe = finding.get("issue_cwe") or {}
    line_range = finding.get("line_range") or []
    text = finding["issue_text"]

    builder.issue(
        builder.file_entity(finding["filename"]),
        severity=SEVERITY(native),
        title=f"{finding.get('test_name') or finding['test_id']}: {text}",
        rule_id=finding["test_id"],
        description=text,
        location=location_from(
            finding.get("line_number"),
            finding.get("col_offset"),
            line_range[-1] if line_range else None,
            finding.get("end_col_offset"),
            zero_based_column=True,
        ),
        metadata={
            "testId": finding["test_id"],
            "testName": finding.get("test_name"),
            "issueConfidence": confidence or None,
            "confidence": CONFIDENCE.get(confidence),
            "cwe": cwe.get("id") if isinstance(cwe, Mapping) else cwe,
            "moreInfo": finding.get("more_info"),
            "code": finding.get("code"),
            "nativeSeverity": native,
        },
    )


@mapper(TOOL, CATEGORY)
def map_bandit(raw: Any, ctx: MapperContext) -> AnalysisResult:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("results", []), list):
        raise ParseError("bandit output must be an object with a results array")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    for finding in raw.get("results") or []:
        builder.guard(finding, lambda: _map_finding(builder, finding))

    totals = (raw.get("metrics") or {}).get("_totals") or {}
    return builder.build({
        "linesOfCode": totals.get("loc"),
        "scanErrors": [e.get("reason") for e in raw.get("errors") or [] if isinstance(e, Mapping)],
    })
