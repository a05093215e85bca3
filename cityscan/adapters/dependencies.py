"""Dependency-audit adapters: npm audit, OSV-Scanner, cargo-audit."""

from pathlib import Path

from cityscan.adapters.base import BaseAdapter
from cityscan.driver.kernel import RunResult
from cityscan.mappers import map_cargo_audit, map_npm_audit, map_osv
from cityscan.mappers.parsers import parse_json_lenient
from cityscan.model.taxonomy import AnalysisCategory

NO_PACKAGE_SOURCES = 128


class NpmAuditAdapter(BaseAdapter):
    """``npm audit --json``. Exit code 1 means vulnerabilities were found."""

    name = "npm-audit"
    category = AnalysisCategory.DEPENDENCY_SECURITY
    executable = "npm"
    mapper = staticmethod(map_npm_audit)
    timeout_class = "dependency"
    indicators = ("package.json",)

    def build_args(self, scratch: Path) -> list[str]:
        return ["audit", "--json"]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "npm audit output")


class OsvScannerAdapter(BaseAdapter):
    """OSV-Scanner over every lockfile in the tree.

    Exit 1 means vulnerabilities were found. Exit 128 means no package
    sources were found, so nothing was scanned.
    """

    name = "osv-scanner"
    category = AnalysisCategory.DEPENDENCY_SECURITY
    executable = "osv-scanner"
    mapper = staticmethod(map_osv)
    ok_exit_codes = frozenset({0, 1, NO_PACKAGE_SOURCES})
    timeout_class = "dependency"
    indicators = (
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "Cargo.lock",
        "go.mod",
        "requirements.txt",
        "Pipfile.lock",
        "poetry.lock",
    )

    def build_args(self, scratch: Path) -> list[str]:
        return ["--format", "json", "--recursive", "."]

    def parse(self, run_result: RunResult, scratch: Path):
        if run_result.exit_code == NO_PACKAGE_SOURCES or not run_result.stdout.strip():
            return {"results": []}
        return parse_json_lenient(run_result.stdout, "osv-scanner output")


class CargoAuditAdapter(BaseAdapter):
    name = "cargo-audit"
    category = AnalysisCategory.DEPENDENCY_SECURITY
    executable = "cargo"
    mapper = staticmethod(map_cargo_audit)
    version_args = ("audit", "--version")
    timeout_class = "dependency"
    indicators = ("Cargo.toml", "Cargo.lock")

    def build_args(self, scratch: Path) -> list[str]:
        return ["audit", "--json"]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "cargo-audit output")
