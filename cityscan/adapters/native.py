"""C / C++ bounded model checking with CBMC."""

from pathlib import Path

from cityscan.adapters.base import BaseAdapter
from cityscan.driver.kernel import RunResult
from cityscan.driver.sandbox import is_safe_arg
from cityscan.errors import ParseError
from cityscan.mappers import map_cbmc
from cityscan.mappers.parsers import parse_cbmc_xml
from cityscan.model.taxonomy import AnalysisCategory
from cityscan.utils.logging import logger

CBMC_CHECKS = (
    "--bounds-check",
    "--pointer-check",
    "--memory-leak-check",
    "--div-by-zero-check",
    "--signed-overflow-check",
)


class CbmcAdapter(BaseAdapter):
    """CBMC exits 10 when a property fails; that is a clean run with findings.

    Any other non-zero code is a failed run.
    """

    name = "cbmc"
    category = AnalysisCategory.FORMAL_VERIFICATION
    executable = "cbmc"
    mapper = staticmethod(map_cbmc)
    ok_exit_codes = frozenset({0, 10})
    timeout_class = "verification"
    extensions = (".c", ".cpp")

    def env(self) -> dict[str, str]:
        limits = self.caps.config.get("limits", {})
        return {"CBMC_MAX_MEMORY": str(int(limits.get("cbmc_max_memory_mb", 4096)))}

    def unwind(self) -> int:
        limits = self.caps.config.get("limits", {})
        requested = int(limits.get("cbmc_unwind", 10))
        return max(1, min(requested, int(limits.get("cbmc_max_unwind", 50))))

    def sources(self) -> list[str]:
        files = self.caps.inventory.with_extension(*self.extensions)
        safe = [f for f in files if is_safe_arg(f)]
        if len(safe) < len(files):
            logger.warning(f"[{self.name}] Skipping {len(files) - len(safe)} files with unsafe names")
        return safe

    def build_args(self, scratch: Path) -> list[str]:
        sources = self.sources()
        if not sources:
            raise ParseError("No C/C++ sources to verify")
        return [*CBMC_CHECKS, "--xml-ui", "--unwind", str(self.unwind()), *sources]

    def parse(self, run_result: RunResult, scratch: Path):
        return parse_cbmc_xml(run_result.stdout)
