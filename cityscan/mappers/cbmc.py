"""CBMC mapper.

Input is the property list from ``parsers.parse_cbmc_xml``. Only failing
properties become issues; passing ones are counted.
"""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "cbmc"
CATEGORY = AnalysisCategory.FORMAL_VERIFICATION

SEVERITY = SeverityVocabulary({
    "bounds-check": Severity.HIGH,
    "pointer-check": Severity.HIGH,
    "pointer-primitives": Severity.HIGH,
    "overflow": Severity.HIGH,
    "memory-leak": Severity.HIGH,
    "division-by-zero": Severity.MEDIUM,
    "assertion": Severity.MEDIUM,
    "nan": Severity.MEDIUM,
    "conversion": Severity.LOW,
})

TITLES = {
    "bounds-check": "Array bounds violation",
    "pointer-check": "Invalid pointer dereference",
    "pointer-primitives": "Invalid pointer primitive",
    "overflow": "Arithmetic overflow",
    "memory-leak": "Memory leak",
    "division-by-zero": "Division by zero",
    "assertion": "Assertion failure",
    "nan": "Floating-point NaN",
    "conversion": "Lossy conversion",
}


def _map_property(builder: ResultBuilder, prop: Mapping[str, Any]) -> None:
    if not prop.get("file"):
        raise ValueError(f"failing property {prop.get('property')} has no source location")

    check = prop["check"]
    severity = SEVERITY(check)
    description = prop.get("description") or prop["property"]

    builder.issue(
        builder.file_entity(prop["file"]),
        severity=severity,
        title=TITLES.get(check, f"Verification failure: {check}"),
        rule_id=check,
        description=description,
        location=location_from(prop.get("line")),
        metadata={
            "verificationType": "bounded-model-checking",
            "property": prop["property"],
            "propertyClass": prop.get("class") or None,
            "function": prop.get("function"),
            "status": prop.get("status"),
        },
    )


@mapper(TOOL, CATEGORY)
def map_cbmc(raw: Any, ctx: MapperContext) -> AnalysisResult:
    if not isinstance(raw, list):
        raise ParseError("cbmc input must be a list of parsed properties")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    statuses: dict[str, int] = {}
    for prop in raw:
        if not isinstance(prop, Mapping):
            builder.drop("property is not an object", prop)
            continue
        status = str(prop.get("status") or "UNKNOWN")
        statuses[status] = statuses.get(status, 0) + 1
        if status == "FAILURE":
            builder.guard(prop, lambda: _map_property(builder, prop))

    return builder.build({
        "propertiesChecked": len(raw),
        "propertyStatus": statuses,
    })
