"""Tests for per-tool mappers."""

import pytest

from cityscan.mappers import (
    MAPPERS,
    map_bandit,
    map_cargo_audit,
    map_cbmc,
    map_eslint,
    map_gosec,
    map_madge,
    map_mypy,
    map_npm_audit,
    map_osv,
    map_pylint,
)
from cityscan.mappers.base import location_from
from cityscan.mappers.gosec import split_line
from cityscan.model.taxonomy import AnalysisCategory, EntityKind, Severity
from cityscan.validator import validate


def _assert_valid(result):
    for issue in result.issues:
        assert validate(issue) == [], issue.id
        assert issue.entity.id in result.entity_ids()


class TestMapperRegistry:
    def test_every_tool_has_a_mapper(self):
        assert sorted(MAPPERS) == sorted([
            "bandit", "cargo-audit", "cbmc", "eslint", "gosec",
            "madge", "mypy", "npm-audit", "osv-scanner", "pylint",
        ])

    @pytest.mark.parametrize("tool", sorted(
        ["bandit", "cargo-audit", "cbmc", "eslint", "gosec", "madge", "mypy", "npm-audit", "osv-scanner", "pylint"]
    ))
    def test_garbage_input_becomes_error_result(self, tool, ctx):
        """A mapper never raises; unusable input yields an empty failed Result."""
        result = MAPPERS[tool]("definitely not tool output", ctx)
        assert result.issues == ()
        assert not result.success
        assert result.metadata["error"]["type"] == "parse"
        assert result.metadata["toolVersion"] == "1.0.0"


class TestLocationFrom:
    def test_defaults_missing_column_and_end(self):
        loc = location_from(12)
        assert (loc.line, loc.column, loc.end_line, loc.end_column) == (12, 1, 12, 1)

    def test_zero_based_columns_shift(self):
        loc = location_from(3, 0, 3, 7, zero_based_column=True)
        assert (loc.column, loc.end_column) == (1, 8)

    def test_no_line_means_unlocated(self):
        assert location_from(None, 4) is None
        assert location_from(0) is None

    def test_string_coordinates(self):
        loc = location_from("7", "2")
        assert (loc.line, loc.column) == (7, 2)


class TestNpmAudit:
    def test_transitive_via_and_moderate(self, ctx):
        raw = {
            "auditReportVersion": 2,
            "vulnerabilities": {
                "minimist": {
                    "name": "minimist",
                    "severity": "moderate",
                    "via": [{"source": 1179, "title": "Prototype Pollution", "severity": "moderate", "cwe": []}],
                    "range": "<1.2.6",
                    "isDirect": False,
                    "fixAvailable": True,
                },
                "mkdirp": {"name": "mkdirp", "severity": "moderate", "via": ["minimist"], "isDirect": True},
            },
            "metadata": {"dependencies": {"total": 42}},
        }
        result = map_npm_audit(raw, ctx)
        _assert_valid(result)
        by_rule = {i.rule_id: i for i in result.issues}
        assert by_rule["1179"].severity is Severity.MEDIUM
        assert by_rule["1179"].metadata["severity"] == "moderate"
        assert by_rule["npm-audit-mkdirp"].metadata["via"] == ("minimist",)
        kinds = sorted(e.kind.value for e in result.entities)
        assert kinds == ["lockfile", "manifest", "package", "package"]
        assert result.metadata["totalDependencies"] == 42

    def test_npm_error_document(self, ctx):
        result = map_npm_audit({"error": {"code": "ENOLOCK", "summary": "no lockfile"}}, ctx)
        assert not result.success
        assert "no lockfile" in result.metadata["error"]["message"]

    def test_cvss_fallback_without_token(self, ctx):
        raw = {"vulnerabilities": {"x": {"via": [{"source": 1, "title": "T", "cvss": {"score": 9.8}}]}}}
        result = map_npm_audit(raw, ctx)
        assert result.issues[0].severity is Severity.CRITICAL
        assert result.issues[0].metadata["cvss"] == 9.8

    def test_legacy_advisories(self, ctx):
        raw = {
            "advisories": {
                "118": {
                    "id": 118,
                    "module_name": "minimatch",
                    "severity": "high",
                    "title": "Regular Expression Denial of Service",
                    "cwe": "CWE-400",
                    "vulnerable_versions": "<=3.0.1",
                    "patched_versions": ">=3.0.2",
                }
            }
        }
        result = map_npm_audit(raw, ctx)
        issue = result.issues[0]
        assert issue.rule_id == "118"
        assert issue.metadata["cwe"] == ("CWE-400",)
        assert issue.entity.canonical_path == "node_modules/minimatch"
        assert result.metadata["auditReportVersion"] == 1


class TestOsv:
    def test_source_entity_and_aliases(self, ctx):
        raw = {
            "results": [{
                "source": {"path": f"{ctx.project_root}/requirements.txt", "type": "lockfile"},
                "packages": [{
                    "package": {"name": "requests", "version": "2.19.0", "ecosystem": "PyPI"},
                    "vulnerabilities": [{
                        "id": "PYSEC-2018-28",
                        "aliases": ["CVE-2018-18074"],
                        "summary": "Credentials leak on redirect",
                    }],
                }],
            }]
        }
        result = map_osv(raw, ctx)
        _assert_valid(result)
        entities = {e.kind: e for e in result.entities}
        assert entities[EntityKind.MANIFEST].canonical_path == "requirements.txt"
        assert entities[EntityKind.PACKAGE].canonical_path == "site-packages/requests"
        issue = result.issues[0]
        assert issue.severity is Severity.MEDIUM
        assert issue.metadata["source"] == "requirements.txt"
        assert issue.metadata["aliases"] == ("CVE-2018-18074",)
        assert result.metadata["ecosystems"] == ("pypi",)

    def test_group_max_severity(self, ctx):
        raw = {"results": [{"packages": [{
            "package": {"name": "lodash", "version": "4.17.20", "ecosystem": "npm"},
            "groups": [{"ids": ["GHSA-35jh-r3h4-6jhm"], "max_severity": "7.2"}],
            "vulnerabilities": [{"id": "GHSA-35jh-r3h4-6jhm", "severity": [{"type": "CVSS_V3", "score": "CVSS:3.1/AV:N"}]}],
        }]}]}
        issue = map_osv(raw, ctx).issues[0]
        assert issue.severity is Severity.HIGH
        assert issue.metadata["cvss"] == 7.2

    def test_lockfile_kind(self, ctx):
        raw = {"results": [{"source": {"path": "package-lock.json"}, "packages": []}]}
        assert map_osv(raw, ctx).entities[0].kind is EntityKind.LOCKFILE

    def test_package_without_name_dropped(self, ctx):
        raw = {"results": [{"packages": [{"package": {"ecosystem": "npm"}}]}]}
        result = map_osv(raw, ctx)
        assert result.metadata["droppedRecords"] == 1
        assert not result.success


class TestCargoAudit:
    def test_maps_rustsec_advisory(self, ctx):
        raw = {
            "database": {"last-commit": "abc123"},
            "lockfile": {"dependency-count": 120},
            "vulnerabilities": {
                "found": True,
                "count": 1,
                "list": [{
                    "advisory": {
                        "id": "RUSTSEC-2023-0044",
                        "package": "openssl",
                        "title": "`openssl` `X509VerifyParamRef::set_host` buffer over-read",
                        "description": "Out of bounds read",
                        "date": "2023-06-20",
                        "aliases": ["GHSA-xcf7-rvmh-g6q4"],
                        "categories": ["memory-corruption"],
                        "cvss": None,
                    },
                    "versions": {"patched": [">=0.10.55"]},
                    "package": {"name": "openssl", "version": "0.10.52", "source": "registry+https://github.com/rust-lang/crates.io-index"},
                }],
            },
            "warnings": {"unmaintained": [{}], "yanked": []},
        }
        result = map_cargo_audit(raw, ctx)
        _assert_valid(result)
        issue = result.issues[0]
        assert issue.rule_id == "RUSTSEC-2023-0044"
        assert issue.entity.canonical_path == "target/package/openssl"
        assert issue.metadata["patchedVersions"] == (">=0.10.55",)
        assert "memory_safety" in issue.correlation_hints.cross_tool_patterns
        assert {e.canonical_path for e in result.entities} == {"Cargo.toml", "Cargo.lock", "target/package/openssl"}
        assert result.metadata["warningCounts"] == {"unmaintained": 1, "yanked": 0}
        assert result.metadata["advisoryDatabase"] == "abc123"


class TestPylint:
    def test_message_mapping(self, ctx):
        raw = [{
            "type": "warning",
            "module": "app",
            "obj": "main",
            "line": 4,
            "column": 4,
            "endLine": 4,
            "endColumn": 10,
            "path": "src/app.py",
            "symbol": "unused-variable",
            "message": "Unused variable 'x'",
            "message-id": "W0612",
        }]
        issue = map_pylint(raw, ctx).issues[0]
        assert issue.severity is Severity.MEDIUM
        assert issue.rule_id == "W0612"
        assert (issue.location.column, issue.location.end_column) == (5, 11)
        assert "dead_code" in issue.correlation_hints.cross_tool_patterns
        assert issue.metadata["symbol"] == "unused-variable"

    def test_cyclic_import_chain(self, ctx):
        raw = {"score": 8.5, "messages": [{
            "type": "refactor",
            "line": 1,
            "column": 0,
            "path": "pkg/__init__.py",
            "symbol": "cyclic-import",
            "message": "Cyclic import (pkg.a -> pkg.b)",
            "message-id": "R0401",
        }]}
        result = map_pylint(raw, ctx)
        _assert_valid(result)
        issue = result.issues[0]
        assert issue.metadata["dependencyChain"] == ("pkg.a", "pkg.b")
        assert "circular_dependency" in issue.correlation_hints.cross_tool_patterns
        assert result.metadata["score"] == 8.5

    @pytest.mark.parametrize(
        "kind, severity",
        [("fatal", Severity.CRITICAL), ("error", Severity.HIGH), ("convention", Severity.LOW), ("info", Severity.INFO)],
    )
    def test_severity_vocabulary(self, ctx, kind, severity):
        raw = [{"type": kind, "line": 1, "column": 0, "path": "a.py", "symbol": "s", "message": "m", "message-id": "X1"}]
        assert map_pylint(raw, ctx).issues[0].severity is severity

    def test_record_without_path_is_dropped(self, ctx):
        raw = [
            {"type": "error", "line": 1, "message": "m", "message-id": "E1"},
            {"type": "error", "line": 1, "column": 0, "path": "a.py", "message": "m", "message-id": "E1"},
        ]
        result = map_pylint(raw, ctx)
        assert len(result.issues) == 1
        assert result.metadata["droppedRecords"] == 1
        assert result.success


class TestMypy:
    def test_note_is_info(self, ctx):
        raw = [{"file": "a.py", "line": 3, "column": None, "severity": "note", "message": "Revealed type", "code": None}]
        issue = map_mypy(raw, ctx).issues[0]
        assert issue.severity is Severity.INFO
        assert issue.rule_id == "mypy-note"
        assert issue.location.column == 1

    def test_error_type(self, ctx):
        raw = [{"file": "a.py", "line": 3, "column": 5, "severity": "error",
                "message": "\"Foo\" has no attribute \"bar\"", "code": "attr-defined"}]
        issue = map_mypy(raw, ctx).issues[0]
        assert issue.metadata["errorType"] == "attribute"
        assert "undefined_reference" in issue.correlation_hints.cross_tool_patterns
        assert "type_safety" in issue.correlation_hints.cross_tool_patterns


class TestEslint:
    def test_reports_and_parse_errors(self, ctx):
        raw = [
            {"filePath": f"{ctx.project_root}/src/a.ts", "messages": [
                {"ruleId": "no-unused-vars", "severity": 2, "message": "'x' is assigned a value but never used.",
                 "line": 10, "column": 4, "endLine": 10, "endColumn": 5, "nodeType": "Identifier"},
                {"ruleId": None, "fatal": True, "severity": 2, "message": "Parsing error: Unexpected token", "line": 20, "column": 1},
            ], "errorCount": 2, "warningCount": 0},
            {"filePath": f"{ctx.project_root}/src/clean.ts", "messages": [], "errorCount": 0, "warningCount": 0},
        ]
        result = map_eslint(raw, ctx)
        _assert_valid(result)
        assert [e.canonical_path for e in result.entities] == ["src/a.ts"]
        unused, fatal = result.issues
        assert unused.severity is Severity.HIGH
        assert "dead_code" in unused.correlation_hints.cross_tool_patterns
        assert fatal.rule_id == "eslint-parse-error"
        assert fatal.metadata["fatal"] is True
        assert result.metadata["filesScanned"] == 2
        assert result.metadata["filesWithMessages"] == 1

    def test_warning_severity(self, ctx):
        raw = [{"filePath": "x.js", "messages": [{"ruleId": "eqeqeq", "severity": 1, "message": "m", "line": 1, "column": 1}]}]
        assert map_eslint(raw, ctx).issues[0].severity is Severity.MEDIUM


class TestBandit:
    def test_finding(self, ctx):
        raw = {
            "results": [{
                "filename": "./src/app.py",
                "test_id": "B602",
                "test_name": "subprocess_popen_with_shell_equals_true",
                "issue_severity": "HIGH",
                "issue_confidence": "HIGH",
                "issue_cwe": {"id": 78, "link": "https://cwe.mitre.org/data/definitions/78.html"},
                "issue_text": "subprocess call with shell=True identified",
                "line_number": 5,
                "line_range": [5, 6],
                "col_offset": 4,
                "end_col_offset": 30,
                "more_info": "https://bandit.readthedocs.io/",
            }],
            "metrics": {"_totals": {"loc": 120}},
            "errors": [],
        }
        result = map_bandit(raw, ctx)
        _assert_valid(result)
        issue = result.issues[0]
        assert issue.entity.canonical_path == "src/app.py"
        assert issue.severity is Severity.HIGH
        assert issue.category is AnalysisCategory.APPLICATION_SECURITY
        assert (issue.location.line, issue.location.column, issue.location.end_line) == (5, 5, 6)
        assert issue.metadata["confidence"] == 0.9
        assert issue.metadata["issueConfidence"] == "HIGH"
        assert issue.metadata["cwe"] == 78
        assert {"security_vulnerability", "command_execution"} <= set(issue.correlation_hints.cross_tool_patterns)
        assert result.metadata["linesOfCode"] == 120

    def test_rejects_non_object(self, ctx):
        assert not map_bandit([], ctx).success


class TestGosec:
    @pytest.mark.parametrize("value, expected", [("12", (12, None)), ("12-14", (12, 14)), ("", (None, None)), (None, (None, None))])
    def test_split_line(self, value, expected):
        assert split_line(value) == expected

    def test_issue(self, ctx):
        raw = {
            "Issues": [{
                "severity": "MEDIUM",
                "confidence": "HIGH",
                "cwe": {"id": "22", "url": "https://cwe.mitre.org/data/definitions/22.html"},
                "rule_id": "G304",
                "details": "Potential file inclusion via variable",
                "file": f"{ctx.project_root}/cmd/main.go",
                "code": "os.ReadFile(path)",
                "line": "31-33",
                "column": "15",
                "nosec": False,
            }],
            "Stats": {"files": 3, "lines": 200, "nosec": 0, "found": 1},
            "GosecVersion": "2.18.2",
        }
        result = map_gosec(raw, ctx)
        _assert_valid(result)
        issue = result.issues[0]
        assert issue.entity.canonical_path == "cmd/main.go"
        assert (issue.location.line, issue.location.column, issue.location.end_line) == (31, 15, 33)
        assert issue.metadata["cwe"] == "22"
        assert "path_traversal" in issue.correlation_hints.cross_tool_patterns
        assert result.metadata["gosecVersion"] == "2.18.2"


class TestMadge:
    def test_cycles(self, ctx):
        raw = [["src/a.js", "src/b.js"], ["src/c.js", "src/d.js", "src/e.js"], ["lonely.js"]]
        result = map_madge(raw, ctx)
        _assert_valid(result)
        assert len(result.issues) == 2
        first = result.issues[0]
        assert first.rule_id == "circular-dependency"
        assert first.entity.canonical_path == "src/a.js"
        assert first.metadata["dependencyChain"] == ("src/a.js", "src/b.js")
        assert first.location is None
        assert "circular_dependency" in first.correlation_hints.cross_tool_patterns
        assert result.metadata["droppedRecords"] == 1

    def test_wrapped_form(self, ctx):
        assert len(map_madge({"circular": [["a.js", "b.js"]]}, ctx).issues) == 1


class TestCbmc:
    def test_only_failures_become_issues(self, ctx):
        raw = [
            {"property": "main.overflow.1", "class": "overflow", "status": "FAILURE", "file": "src/m.c",
             "line": 8, "function": "main", "description": "arithmetic overflow on signed +", "check": "overflow"},
            {"property": "main.assertion.1", "class": "assertion", "status": "SUCCESS", "file": "src/m.c",
             "line": 9, "function": "main", "description": None, "check": "assertion"},
            {"property": "main.conversion.1", "class": "conversion", "status": "FAILURE", "file": "src/m.c",
             "line": 12, "function": "main", "description": None, "check": "conversion"},
        ]
        result = map_cbmc(raw, ctx)
        _assert_valid(result)
        overflow, conversion = result.issues
        assert overflow.severity is Severity.HIGH
        assert {"arithmetic_error", "integer_overflow"} <= set(overflow.correlation_hints.cross_tool_patterns)
        assert conversion.severity is Severity.LOW
        assert result.metadata["propertyStatus"] == {"FAILURE": 2, "SUCCESS": 1}

    def test_failure_without_location_dropped(self, ctx):
        raw = [{"property": "p", "status": "FAILURE", "file": None, "line": None, "check": "assertion"}]
        result = map_cbmc(raw, ctx)
        assert result.issues == ()
        assert result.metadata["droppedRecords"] == 1

    def test_unknown_check_is_info(self, ctx):
        raw = [{"property": "main.unwind.1", "class": "unwind", "status": "FAILURE", "file": "src/m.c",
                "line": 3, "function": "main", "description": "unwinding assertion loop 0", "check": "unwind"}]
        (issue,) = map_cbmc(raw, ctx).issues
        assert issue.severity is Severity.INFO


class TestDeterminism:
    def test_same_input_same_output(self, ctx):
        """Re-mapping identical raw output yields identical issues in identical order."""
        raw = [{"type": "error", "line": n, "column": 0, "path": "a.py", "symbol": "s", "message": "m", "message-id": "E1"}
               for n in (3, 1, 2, 1)]
        first = map_pylint(raw, ctx)
        second = map_pylint(raw, ctx)
        assert first == second
        ids = [i.id for i in first.issues]
        assert len(set(ids)) == 4
        assert ids[3] == f"{ids[1]}-2"
