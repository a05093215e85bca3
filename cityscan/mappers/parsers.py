"""Raw tool output decoders.

These turn stdout text into plain Python structures for the mappers. They
translate syntax only; severity and category decisions belong to mappers.
Every decoder rejects input larger than its configured limit.
"""

import html
import json
import re
from typing import Any

from cityscan.errors import ParseError

DEFAULT_MAX_INPUT_BYTES = 50 * 1024 * 1024

MYPY_LINE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):(?:(?P<column>\d+):)?\s*"
    r"(?P<severity>error|warning|note):\s*(?P<message>.+?)"
    r"(?:\s+\[(?P<code>[a-z0-9_-]+)\])?\s*$"
)

PYLINT_SCORE = re.compile(r"Your code has been rated at (?P<score>-?\d+(?:\.\d+)?)/10")

_XML_BLOCK = re.compile(
    r"<(?P<tag>property|result)\b(?P<attrs>[^>]{0,2000}?)(?:/>|>(?P<body>.{0,20000}?)</(?P=tag)>)",
    re.DOTALL,
)
_XML_ATTR = re.compile(r'([A-Za-z_][\w\-]*)="([^"]*)"')
_XML_LOCATION = re.compile(r"<location\b([^>]{0,2000}?)/?>")
_XML_DESCRIPTION = re.compile(r"<description>(.{0,4000}?)</description>", re.DOTALL)

# CBMC property classes / name fragments -> check name.
CBMC_CHECKS = (
    (("array_bounds", "array bounds", "bounds-check", "bounds_check"), "bounds-check"),
    (("pointer_dereference", "pointer dereference", "pointer-check", "pointer_check"), "pointer-check"),
    (("pointer_primitives", "pointer primitives"), "pointer-primitives"),
    (("memory-leak", "memory_leak", "memory leak", "memleak"), "memory-leak"),
    (("division-by-zero", "division_by_zero", "division by zero"), "division-by-zero"),
    (("overflow",), "overflow"),
    (("nan",), "nan"),
    (("conversion",), "conversion"),
    (("assertion", "assert"), "assertion"),
)


def check_size(text: str, limit: int = DEFAULT_MAX_INPUT_BYTES, what: str = "tool output") -> None:
    size = len(text.encode("utf-8", errors="replace"))
    if size > limit:
        raise ParseError(
            f"{what} is {size} bytes, over the {limit}-byte limit",
            {"size": size, "limit": limit},
        )


def parse_json(text: str, what: str = "tool output", limit: int = DEFAULT_MAX_INPUT_BYTES) -> Any:
    """Decode a JSON document, raising ParseError on empty or invalid input."""
    check_size(text, limit, what)
    stripped = (text or "").strip()
    if not stripped:
        raise ParseError(f"{what} is empty")
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"{what} is not valid JSON: {e.msg} at line {e.lineno}",
            {"line": e.lineno, "column": e.colno},
        ) from e


def parse_json_lenient(text: str, what: str = "tool output", limit: int = DEFAULT_MAX_INPUT_BYTES) -> Any:
    """Decode JSON that some tools prefix with banner lines."""
    check_size(text, limit, what)
    stripped = (text or "").strip()
    starts = [i for i in (stripped.find("{"), stripped.find("[")) if i >= 0]
    if starts:
        stripped = stripped[min(starts):]
    return parse_json(stripped, what, limit)


def parse_mypy_lines(text: str, limit: int = DEFAULT_MAX_INPUT_BYTES) -> list[dict[str, Any]]:
    """Parse ``file:line[:col]: severity: message [code]`` lines.

    Lines that don't match (summaries, blank lines) are skipped.
    """
    check_size(text, limit, "mypy output")
    items = []
    for raw_line in (text or "").splitlines():
        match = MYPY_LINE.match(raw_line.strip())
        if not match:
            continue
        items.append({
            "file": match.group("file"),
            "line": int(match.group("line")),
            "column": int(match.group("column")) if match.group("column") else None,
            "severity": match.group("severity"),
            "message": match.group("message"),
            "code": match.group("code"),
        })
    return items


def parse_pylint_score(text: str) -> float | None:
    """Extract X from ``Your code has been rated at X/10``."""
    match = PYLINT_SCORE.search(text or "")
    return float(match.group("score")) if match else None


def _attrs(fragment: str) -> dict[str, str]:
    return {key: html.unescape(value) for key, value in _XML_ATTR.findall(fragment or "")}


def cbmc_check_name(name: str, klass: str = "") -> str:
    """Reduce a CBMC property name/class to the check that produced it."""
    haystack = f"{klass} {name}".lower()
    tokens = set(re.split(r"[.\s]+", haystack))
    for needles, check in CBMC_CHECKS:
        for needle in needles:
            if (needle in tokens) if len(needle) <= 3 else (needle in haystack):
                return check
    return name


def parse_cbmc_xml(text: str, limit: int = DEFAULT_MAX_INPUT_BYTES) -> list[dict[str, Any]]:
    """Extract (property, status, location, description) tuples from ``--xml-ui`` output.

    Handles both ``<property name=.. status=..>`` blocks and
    ``<result property=.. status=..>`` blocks; details from either are merged
    per property name in document order.
    """
    check_size(text, limit, "cbmc output")
    if "<" not in (text or ""):
        raise ParseError("cbmc output contains no XML")

    properties: dict[str, dict[str, Any]] = {}
    for block in _XML_BLOCK.finditer(text):
        attrs = _attrs(block.group("attrs"))
        name = attrs.get("name") or attrs.get("property")
        if not name:
            continue
        entry = properties.setdefault(name, {
            "property": name,
            "class": "",
            "status": None,
            "file": None,
            "line": None,
            "function": None,
            "description": None,
        })
        if attrs.get("class"):
            entry["class"] = attrs["class"]
        if attrs.get("status"):
            entry["status"] = attrs["status"].upper()

        body = block.group("body") or ""
        locations = _XML_LOCATION.findall(body)
        if locations:
            # The violating step is the last location in a trace.
            loc = _attrs(locations[-1])
            entry["file"] = loc.get("file") or entry["file"]
            entry["line"] = int(loc["line"]) if loc.get("line", "").isdigit() else entry["line"]
            entry["function"] = loc.get("function") or entry["function"]
        description = _XML_DESCRIPTION.search(body)
        if description:
            entry["description"] = html.unescape(description.group(1).strip())

    for entry in properties.values():
        entry["check"] = cbmc_check_name(entry["property"], entry["class"])
    return list(properties.values())
