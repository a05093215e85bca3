"""Go security analyzer: gosec."""

from pathlib import Path

from cityscan.adapters.base import BaseAdapter
from cityscan.driver.kernel import RunResult
from cityscan.mappers import map_gosec
from cityscan.mappers.parsers import parse_json_lenient
from cityscan.model.taxonomy import AnalysisCategory


class GosecAdapter(BaseAdapter):
    name = "gosec"
    category = AnalysisCategory.APPLICATION_SECURITY
    executable = "gosec"
    mapper = staticmethod(map_gosec)
    version_args = ("-version",)
    indicators = ("go.mod",)
    extensions = (".go",)

    def build_args(self, scratch: Path) -> list[str]:
        return ["-fmt=json", "./..."]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_json_lenient(run_result.stdout, "gosec output")
