"""Tests for raw output decoders."""

import pytest

from cityscan.errors import ParseError
from cityscan.mappers.parsers import (
    cbmc_check_name,
    parse_cbmc_xml,
    parse_json,
    parse_json_lenient,
    parse_mypy_lines,
    parse_pylint_score,
)

CBMC_XML = """<?xml version="1.0" encoding="UTF-8"?>
<cprover>
  <program>CBMC 5.95.1 (cbmc-5.95.1)</program>
  <result property="main.array_bounds.1" status="FAILURE">
    <goto_trace>
      <location file="src/buffer.c" function="main" line="40"/>
      <location file="src/buffer.c" function="main" line="42"/>
    </goto_trace>
  </result>
  <result property="main.overflow.1" status="SUCCESS"/>
  <property name="main.array_bounds.1" class="array_bounds" status="FAILURE">
    <description>array 'buf' upper bound in buf[(signed long int)i]</description>
    <location file="src/buffer.c" function="main" line="42"/>
  </property>
</cprover>
"""


class TestJson:
    def test_parse_json(self):
        assert parse_json('{"a": [1, 2]}') == {"a": [1, 2]}

    @pytest.mark.parametrize("text", ["", "   ", "{not json", "[1, 2"])
    def test_invalid_raises_parse_error(self, text):
        with pytest.raises(ParseError):
            parse_json(text)

    def test_lenient_skips_banner(self):
        text = "npm WARN config something\n{\"vulnerabilities\": {}}"
        assert parse_json_lenient(text) == {"vulnerabilities": {}}

    def test_size_limit(self):
        with pytest.raises(ParseError) as exc:
            parse_json("[" + "1," * 100 + "1]", limit=50)
        assert exc.value.metadata["limit"] == 50


class TestMypyLines:
    def test_parses_diagnostics(self):
        text = (
            "src/app.py:12:4: error: Incompatible types in assignment  [misc]\n"
            "src/app.py:20: note: See https://mypy.rtfd.io\n"
            "Found 1 error in 1 file (checked 3 source files)\n"
        )
        items = parse_mypy_lines(text)
        assert items == [
            {
                "file": "src/app.py",
                "line": 12,
                "column": 4,
                "severity": "error",
                "message": "Incompatible types in assignment",
                "code": "misc",
            },
            {
                "file": "src/app.py",
                "line": 20,
                "column": None,
                "severity": "note",
                "message": "See https://mypy.rtfd.io",
                "code": None,
            },
        ]

    def test_windows_drive_letter(self):
        items = parse_mypy_lines("C:\\proj\\a.py:3:1: error: Name \"x\" is not defined  [name-defined]")
        assert items[0]["file"] == "C:\\proj\\a.py"
        assert items[0]["code"] == "name-defined"


class TestPylintScore:
    def test_extracts_score(self):
        assert parse_pylint_score("Your code has been rated at 7.50/10 (previous run: 7.00/10)") == 7.5

    def test_negative_score(self):
        assert parse_pylint_score("Your code has been rated at -2.31/10") == -2.31

    def test_missing(self):
        assert parse_pylint_score("") is None


class TestCbmcXml:
    """CBMC --xml-ui output is reduced to one record per property."""

    def test_merges_result_and_property_blocks(self):
        props = {p["property"]: p for p in parse_cbmc_xml(CBMC_XML)}
        failing = props["main.array_bounds.1"]
        assert failing["status"] == "FAILURE"
        assert failing["file"] == "src/buffer.c"
        assert failing["line"] == 42
        assert failing["function"] == "main"
        assert failing["check"] == "bounds-check"
        assert "upper bound" in failing["description"]
        assert props["main.overflow.1"]["status"] == "SUCCESS"
        assert props["main.overflow.1"]["check"] == "overflow"

    def test_no_xml(self):
        with pytest.raises(ParseError):
            parse_cbmc_xml("CBMC version 5.95.1\nParsing failed")

    @pytest.mark.parametrize(
        "name, klass, expected",
        [
            ("main.pointer_dereference.3", "", "pointer-check"),
            ("f.division-by-zero.1", "division-by-zero", "division-by-zero"),
            ("main.assertion.1", "assertion", "assertion"),
            ("g.NaN.1", "NaN", "nan"),
            ("main.unwind.0", "unwind", "main.unwind.0"),
        ],
    )
    def test_check_names(self, name, klass, expected):
        assert cbmc_check_name(name, klass) == expected
