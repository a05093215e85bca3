"""Base adapter: one driver invocation plus one mapper.

An adapter never reaches for global state. Everything it may use (the
kernel's spawn primitive, the scratch-dir factory, the mapper context, the
project inventory, limits) arrives in an ``AdapterCapabilities`` value.
"""

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar

from cityscan.driver import kernel, tempdirs
from cityscan.driver.kernel import CancelToken, RunOptions, RunResult
from cityscan.driver.sandbox import validate_args
from cityscan.errors import (
    CancelledError,
    CityscanError,
    ParseError,
    ToolTimeoutError,
)
from cityscan.inventory import ProjectInventory
from cityscan.mappers.base import MapperContext
from cityscan.model.schema import AnalysisResult, empty_result
from cityscan.model.taxonomy import AnalysisCategory
from cityscan.utils.logging import logger

DEFAULT_LIMITS = {
    "timeouts": {"probe": 5, "dependency": 120, "static": 300, "verification": 600, "grace": 2},
    "limits": {"max_output_bytes": 50 * 1024 * 1024},
}


@dataclass(frozen=True)
class AdapterCapabilities:
    """What an adapter is allowed to do, handed over by value."""

    mapper_context: MapperContext
    inventory: ProjectInventory
    config: Mapping[str, Any] = field(default_factory=lambda: DEFAULT_LIMITS)
    run: Callable[..., Awaitable[RunResult]] = kernel.run
    probe: Callable[..., Awaitable[str]] = kernel.probe_version
    validate_args: Callable[[Sequence[str]], list[str]] = validate_args
    scratch_dir: Callable[[str], AbstractContextManager[Path]] = tempdirs.scratch_dir
    cancel_token: CancelToken | None = None

    @property
    def project_root(self) -> str:
        return self.mapper_context.project_root

    def timeout(self, timeout_class: str) -> float:
        return float(self.config["timeouts"][timeout_class])


class BaseAdapter:
    """Drives one external tool and maps its output.

    Subclasses declare the tool and implement ``build_args`` and ``parse``.
    """

    name: ClassVar[str]
    category: ClassVar[AnalysisCategory]
    executable: ClassVar[str]
    mapper: ClassVar[Callable[[Any, MapperContext], AnalysisResult]]
    version_args: ClassVar[tuple[str, ...]] = ("--version",)
    ok_exit_codes: ClassVar[frozenset[int]] = frozenset({0, 1})
    timeout_class: ClassVar[str] = "static"
    indicators: ClassVar[tuple[str, ...]] = ()
    extensions: ClassVar[tuple[str, ...]] = ()

    def __init__(self, caps: AdapterCapabilities):
        self.caps = caps

    @classmethod
    def applies_to(cls, inventory: ProjectInventory) -> bool:
        """True when a declared manifest or source extension is present."""
        if any(inventory.has(name) for name in cls.indicators):
            return True
        return bool(cls.extensions) and bool(inventory.with_extension(*cls.extensions))

    @property
    def root(self) -> str:
        return self.caps.project_root

    def env(self) -> dict[str, str]:
        return {}

    def build_args(self, scratch: Path) -> list[str]:
        raise NotImplementedError

    def parse(self, run_result: RunResult, scratch: Path) -> Any:
        """Decode raw output into the structure the mapper expects."""
        raise NotImplementedError

    def run_options(self) -> RunOptions:
        timeouts = self.caps.config["timeouts"]
        return RunOptions(
            cwd=self.root,
            timeout=float(timeouts[self.timeout_class]),
            max_output_bytes=int(self.caps.config["limits"]["max_output_bytes"]),
            env=self.env(),
            cancel_token=self.caps.cancel_token,
            grace_period=float(timeouts.get("grace", kernel.DEFAULT_GRACE_PERIOD)),
        )

    async def probe(self) -> str:
        """Version string, or ToolUnavailableError."""
        return await self.caps.probe(
            self.executable,
            self.version_args,
            timeout=self.caps.timeout("probe"),
            cwd=self.root,
        )

    def unexpected_exit(self, run_result: RunResult) -> CityscanError:
        return ParseError(
            f"{self.name} exited with unexpected code {run_result.exit_code}",
            {"exitCode": run_result.exit_code, "stderr": run_result.stderr[-2000:]},
        )

    async def analyze(self, tool_version: str = "unknown") -> AnalysisResult:
        """Run the tool once and map its output. Never raises for tool failures."""
        start_time = time.perf_counter()
        ctx = replace(self.caps.mapper_context, tool_version=tool_version)

        with self.caps.scratch_dir(self.name) as scratch:
            try:
                args = self.caps.validate_args(self.build_args(scratch))
                run_result = await self.caps.run(self.executable, args, self.run_options())
            except CityscanError as e:
                return self.failed_result(ctx, e, time.perf_counter() - start_time)

            duration = run_result.duration
            if run_result.timed_out:
                error = ToolTimeoutError(
                    f"{self.name} timed out after {self.run_options().timeout}s",
                    {"timeout": self.run_options().timeout},
                )
                return self.failed_result(ctx, error, duration)
            if run_result.killed:
                return self.cancelled_result(ctx, duration)
            if run_result.exit_code not in self.ok_exit_codes:
                return self.failed_result(ctx, self.unexpected_exit(run_result), duration)

            try:
                raw = self.parse(run_result, scratch)
            except CityscanError as e:
                return self.failed_result(ctx, e, duration, exit_code=run_result.exit_code)

            if self.caps.cancel_token is not None and self.caps.cancel_token.cancelled:
                return self.cancelled_result(ctx, duration)

        result = self.mapper(raw, replace(ctx, duration=duration))
        logger.info(
            f"[{self.name}] {len(result.issues)} issues across {len(result.entities)} entities "
            f"({duration:.2f}s)"
        )
        return result.with_metadata(exitCode=run_result.exit_code)

    def skipped(self, reason: str) -> AnalysisResult:
        """Marker result for a tool that is not installed or not applicable."""
        return empty_result(
            tool=self.name,
            category=self.category,
            project_path=self.root,
            metadata={"skipped": True, "reason": reason},
        )

    def cancelled_result(self, ctx: MapperContext, duration: float) -> AnalysisResult:
        logger.info(f"[{self.name}] Cancelled")
        return empty_result(
            tool=self.name,
            category=self.category,
            project_path=self.root,
            metadata={"toolVersion": ctx.tool_version, "cancelled": True},
            duration=duration,
        )

    def failed_result(
        self,
        ctx: MapperContext,
        error: CityscanError,
        duration: float,
        exit_code: int | None = None,
    ) -> AnalysisResult:
        if isinstance(error, CancelledError):
            return self.cancelled_result(ctx, duration)
        logger.warning(f"[{self.name}] {error.category}: {error.message}")
        metadata: dict[str, Any] = {"toolVersion": ctx.tool_version, "error": error.to_dict()}
        if exit_code is not None:
            metadata["exitCode"] = exit_code
        return empty_result(
            tool=self.name,
            category=self.category,
            project_path=self.root,
            metadata=metadata,
            duration=duration,
        )
