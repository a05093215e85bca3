"""Pylint mapper.

Accepts either the bare JSON message array produced by
``--output-format=json`` or ``{"messages": [...], "score": X}`` when the
adapter has also captured the text score line.
"""

import re
from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "pylint"
CATEGORY = AnalysisCategory.STATIC_QUALITY

SEVERITY = SeverityVocabulary({
    "fatal": Severity.CRITICAL,
    "error": Severity.HIGH,
    "warning": Severity.MEDIUM,
    "refactor": Severity.LOW,
    "convention": Severity.LOW,
    "info": Severity.INFO,
})

CYCLIC_IMPORT = re.compile(r"Cyclic import \((?P<chain>[^)]+)\)")


def _dependency_chain(text: str) -> list[str] | None:
    match = CYCLIC_IMPORT.search(text or "")
    if not match:
        return None
    return [module.strip() for module in match.group("chain").split("->") if module.strip()]


def _map_message(builder: ResultBuilder, msg: Mapping[str, Any]) -> None:
    path = msg["path"]
    rule_id = msg.get("message-id") or msg.get("messageId") or msg.get("symbol")
    symbol = msg.get("symbol")
    text = msg.get("message") or symbol or rule_id
    metadata = {
        "symbol": symbol,
        "pylintType": msg.get("type"),
        "module": msg.get("module"),
        "obj": msg.get("obj") or None,
        "nativeSeverity": msg.get("type"),
    }
    chain = _dependency_chain(text)
    if chain:
        metadata["dependencyChain"] = chain

    builder.issue(
        builder.file_entity(path),
        severity=SEVERITY(msg.get("type")),
        title=f"{symbol}: {text}" if symbol else text,
        rule_id=rule_id,
        description=text,
        # pylint columns are 0-based
        location=location_from(
            msg.get("line"),
            msg.get("column"),
            msg.get("endLine"),
            msg.get("endColumn"),
            zero_based_column=True,
        ),
        metadata=metadata,
    )


@mapper(TOOL, CATEGORY)
def map_pylint(raw: Any, ctx: MapperContext) -> AnalysisResult:
    score = None
    if isinstance(raw, Mapping):
        score = raw.get("score")
        messages = raw.get("messages")
    else:
        messages = raw
    if not isinstance(messages, list):
        raise ParseError("pylint output must be a JSON array of messages")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    for msg in messages:
        if not isinstance(msg, Mapping):
            builder.drop("message is not an object", msg)
            continue
        builder.guard(msg, lambda: _map_message(builder, msg))

    return builder.build({"score": score, "messageCount": len(messages)})
