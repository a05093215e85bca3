"""JavaScript / TypeScript analyzers: ESLint and madge."""

from pathlib import Path

from cityscan.adapters.base import BaseAdapter
from cityscan.driver.kernel import RunResult
from cityscan.mappers import map_eslint, map_madge
from cityscan.mappers.parsers import parse_json_lenient
from cityscan.model.taxonomy import AnalysisCategory

JS_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs")


class EslintAdapter(BaseAdapter):
    """ESLint with the project's own config. Exit 2 is a config/crash error."""

    name = "eslint"
    category = AnalysisCategory.STATIC_QUALITY
    executable = "eslint"
    mapper = staticmethod(map_eslint)
    indicators = ("package.json",)
    extensions = JS_EXTENSIONS

    def build_args(self, scratch: Path) -> list[str]:
        return ["-f", "json", "--no-error-on-unmatched-pattern", "."]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "eslint output")


class MadgeAdapter(BaseAdapter):
    name = "madge"
    category = AnalysisCategory.ARCHITECTURE
    executable = "madge"
    mapper = staticmethod(map_madge)
    indicators = ("package.json",)
    extensions = JS_EXTENSIONS

    def build_args(self, scratch: Path) -> list[str]:
        extensions = ",".join(ext.lstrip(".") for ext in JS_EXTENSIONS)
        return ["--circular", "--json", "--no-spinner", "--extensions", extensions, "."]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "madge output")
