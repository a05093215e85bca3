"""Python analyzers: pylint, mypy and bandit.

All three run with the Python env additions so the host's PYTHONPATH and
MYPYPATH never leak into the analysis.
"""

from pathlib import Path

from cityscan.adapters.base import BaseAdapter
from cityscan.driver.kernel import RunResult
from cityscan.driver.sandbox import PYTHON_ENV
from cityscan.errors import ParseError
from cityscan.mappers import map_bandit, map_mypy, map_pylint
from cityscan.mappers.parsers import (
    parse_json,
    parse_json_lenient,
    parse_mypy_lines,
    parse_pylint_score,
)
from cityscan.model.taxonomy import AnalysisCategory

PYTHON_INDICATORS = ("requirements.txt", "Pipfile.lock", "pyproject.toml")


def _ignored_dirs(adapter: BaseAdapter) -> str:
    return ",".join(adapter.caps.config.get("paths", {}).get("skip_dirs", [])) or ".git"


class PylintAdapter(BaseAdapter):
    """Pylint writes JSON to a scratch file and the score line to stdout.

    Exit status is a bit mask (fatal=1, error=2, warning=4, refactor=8,
    convention=16) so 0..31 are all clean runs.
    """

    name = "pylint"
    category = AnalysisCategory.STATIC_QUALITY
    executable = "pylint"
    mapper = staticmethod(map_pylint)
    ok_exit_codes = frozenset(range(32))
    indicators = PYTHON_INDICATORS
    extensions = (".py",)

    def env(self) -> dict[str, str]:
        return dict(PYTHON_ENV)

    def build_args(self, scratch: Path) -> list[str]:
        report = scratch / "pylint.json"
        return [
            f"--output-format=json:{report},text",
            "--score=y",
            "--recursive=y",
            f"--ignore={_ignored_dirs(self)}",
            ".",
        ]

    def parse(self, run_result: RunResult, scratch: Path):
        report = scratch / "pylint.json"
        if not report.exists():
            raise ParseError(
                "pylint produced no JSON report",
                {"exitCode": run_result.exit_code, "stderr": run_result.stderr[-2000:]},
            )
        text = report.read_text(encoding="utf-8", errors="replace")
        messages = parse_json(text, "pylint report") if text.strip() else []
        return {"messages": messages, "score": parse_pylint_score(run_result.stdout)}


class MypyAdapter(BaseAdapter):
    name = "mypy"
    category = AnalysisCategory.TYPE_CHECKING
    executable = "mypy"
    mapper = staticmethod(map_mypy)
    extensions = (".py",)

    def env(self) -> dict[str, str]:
        return dict(PYTHON_ENV)

    def build_args(self, scratch: Path) -> list[str]:
        return [
            "--show-error-codes",
            "--show-column-numbers",
            "--no-error-summary",
            "--no-color-output",
            "--ignore-missing-imports",
            "--cache-dir",
            str(scratch / "mypy_cache"),
            ".",
        ]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_mypy_lines(run_result.stdout)


class BanditAdapter(BaseAdapter):
    name = "bandit"
    category = AnalysisCategory.APPLICATION_SECURITY
    executable = "bandit"
    mapper = staticmethod(map_bandit)
    extensions = (".py",)

    def env(self) -> dict[str, str]:
        return dict(PYTHON_ENV)

    def build_args(self, scratch: Path) -> list[str]:
        excluded = ",".join(f"./{d}" for d in _ignored_dirs(self).split(","))
        return ["-r", ".", "-f", "json", "-q", "-x", excluded]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "bandit output")
