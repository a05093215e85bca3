"""Analyzer orchestrator.

Decides which tools apply to a project, runs them concurrently through
their adapters, validates every Result and returns them in a stable order.
A failing tool never fails the whole run.
"""

import asyncio
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any

from cityscan.adapters import ADAPTERS, AdapterCapabilities, BaseAdapter
from cityscan.config_runtime import DEFAULTS, load_runtime_config
from cityscan.correlation.patterns import PatternCatalog, default_catalog
from cityscan.driver import kernel
from cityscan.driver.kernel import CancelToken, RunOptions, RunResult
from cityscan.driver.manifests import LOCKFILE_COMMANDS, WRITERS
from cityscan.driver.tempdirs import scratch_dir
from cityscan.errors import CityscanError, ToolUnavailableError
from cityscan.inventory import ProjectInventory, scan_project
from cityscan.mappers.base import MapperContext
from cityscan.model.paths import canonical_ecosystem
from cityscan.model.schema import AnalysisResult, empty_result, freeze
from cityscan.utils.logging import logger
from cityscan.validator import validate_result

LANGUAGE_MANIFESTS = {
    "package.json": "javascript",
    "Cargo.toml": "rust",
    "Cargo.lock": "rust",
    "go.mod": "go",
    "requirements.txt": "python",
    "Pipfile.lock": "python",
    "pyproject.toml": "python",
}

LANGUAGE_EXTENSIONS = {
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
}


@dataclass(frozen=True)
class AnalyzerContext:
    """Everything one analysis needs, built once at the entry point."""

    project_root: str
    inventory: ProjectInventory
    config: Mapping[str, Any] = field(default_factory=lambda: freeze(DEFAULTS))
    catalog: PatternCatalog = field(default_factory=default_catalog)
    concurrency: int = 4
    cancel_token: CancelToken | None = None
    adapters: Mapping[str, type[BaseAdapter]] = field(default_factory=lambda: MappingProxyType(ADAPTERS))
    run: Callable[..., Awaitable[RunResult]] = kernel.run
    probe: Callable[..., Awaitable[str]] = kernel.probe_version

    @classmethod
    def from_project(
        cls,
        project_path: str,
        *,
        config: Mapping[str, Any] | None = None,
        cancel_token: CancelToken | None = None,
        concurrency: int | None = None,
        adapters: Mapping[str, type[BaseAdapter]] | None = None,
        catalog: PatternCatalog | None = None,
        **overrides: Any,
    ) -> "AnalyzerContext":
        """Canonicalize the root, load config and walk the tree.

        Raises:
            ValueError: If the project path is missing or not a directory.
        """
        root = os.path.realpath(os.path.abspath(project_path))
        if not os.path.isdir(root):
            raise ValueError(f"Project path is not a directory: {project_path}")

        cfg = config if config is not None else load_runtime_config(root)
        inventory = scan_project(
            root,
            skip_dirs=cfg["paths"]["skip_dirs"],
            max_files=cfg["limits"]["max_files"],
            max_file_size=cfg["limits"]["max_file_size"],
        )
        radius = (cfg["correlation"]["line_radius"], cfg["correlation"]["column_radius"])
        return cls(
            project_root=root,
            inventory=inventory,
            config=freeze(cfg),
            catalog=(catalog or default_catalog()).with_radius(radius),
            concurrency=max(1, concurrency or cfg["limits"]["concurrency"]),
            cancel_token=cancel_token,
            adapters=MappingProxyType(dict(adapters if adapters is not None else ADAPTERS)),
            **overrides,
        )

    def mapper_context(self) -> MapperContext:
        return MapperContext(
            project_root=self.project_root,
            catalog=self.catalog,
            temp_patterns=tuple(self.config["paths"]["temp_patterns"]),
        )

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            mapper_context=self.mapper_context(),
            inventory=self.inventory,
            config=self.config,
            run=self.run,
            probe=self.probe,
            cancel_token=self.cancel_token,
        )


def detect_languages(inventory: ProjectInventory) -> list[str]:
    """Languages indicated by root manifests and source file extensions."""
    found = {LANGUAGE_MANIFESTS[name] for name in inventory.manifests if name in LANGUAGE_MANIFESTS}
    found.update(LANGUAGE_EXTENSIONS[ext] for ext in inventory.extensions() if ext in LANGUAGE_EXTENSIONS)
    return sorted(found)


def default_tool_set(
    inventory: ProjectInventory,
    adapters: Mapping[str, type[BaseAdapter]] = ADAPTERS,
) -> list[str]:
    """Tools whose indicators are present in the project."""
    return sorted(name for name, adapter in adapters.items() if adapter.applies_to(inventory))


def _sort_key(result: AnalysisResult) -> tuple[str, str]:
    return result.tool, result.issues[0].id if result.issues else ""


async def _run_adapter(adapter: BaseAdapter, semaphore: asyncio.Semaphore, token: CancelToken | None) -> AnalysisResult:
    async with semaphore:
        if token is not None and token.cancelled:
            return adapter.cancelled_result(adapter.caps.mapper_context, 0.0)
        try:
            version = await adapter.probe()
        except ToolUnavailableError as e:
            logger.info(f"[{adapter.name}] Skipped: {e.message}")
            return adapter.skipped(e.message)
        except CityscanError as e:
            return adapter.failed_result(adapter.caps.mapper_context, e, 0.0)

        logger.debug(f"[{adapter.name}] Using {version}")
        try:
            return await adapter.analyze(version)
        except Exception as e:
            logger.opt(exception=True).error(f"[{adapter.name}] Adapter crashed: {e}")
            error = CityscanError(
                f"{adapter.name} adapter failed: {type(e).__name__}: {e}",
                {"exceptionType": type(e).__name__},
            )
            return adapter.failed_result(replace(adapter.caps.mapper_context, tool_version=version), error, 0.0)


async def analyze(
    project_path: str,
    tool_set: Iterable[str] | None = None,
    context: AnalyzerContext | None = None,
    **options: Any,
) -> list[AnalysisResult]:
    """Run the selected tools against a project.

    Args:
        project_path: Project directory
        tool_set: Tool names; defaults to every tool whose indicators match
        context: Prebuilt context; built from ``project_path`` when omitted
        **options: Forwarded to ``AnalyzerContext.from_project``
            (cancel_token, concurrency, config, adapters, run, probe)

    Returns:
        One validated Result per tool, sorted by (tool, first issue id).
        Skipped, failed and cancelled tools are present with their state
        in metadata.

    Raises:
        ValueError: Unknown tool name or missing project directory.
    """
    ctx = context or AnalyzerContext.from_project(project_path, **options)
    names = list(tool_set) if tool_set is not None else default_tool_set(ctx.inventory, ctx.adapters)

    unknown = sorted(set(names) - set(ctx.adapters))
    if unknown:
        raise ValueError(f"Unknown tools: {', '.join(unknown)}")

    languages = detect_languages(ctx.inventory)
    logger.info(
        f"Analyzing {ctx.project_root} ({', '.join(languages) or 'no languages detected'}) "
        f"with {', '.join(names) or 'no tools'}"
    )
    if not names:
        return []

    semaphore = asyncio.Semaphore(ctx.concurrency)
    caps = ctx.capabilities()
    adapters = [ctx.adapters[name](caps) for name in dict.fromkeys(names)]
    raw_results = await asyncio.gather(
        *(_run_adapter(adapter, semaphore, ctx.cancel_token) for adapter in adapters)
    )

    results = sorted((validate_result(result) for result in raw_results), key=_sort_key)
    failed = [r.tool for r in results if not r.success and not r.skipped]
    if failed:
        logger.warning(f"Tools that did not complete: {', '.join(failed)}")
    return results


async def _generate_lockfile(
    eco: str,
    directory: Path,
    config: Mapping[str, Any],
    run: Callable[..., Awaitable[RunResult]],
    cancel_token: CancelToken | None,
) -> dict[str, Any] | None:
    """Resolve a synthetic manifest into the lockfile scanners read.

    Failures are logged and reported in the returned record; the scan still
    runs and finds no sources.
    """
    command = LOCKFILE_COMMANDS.get(eco)
    if command is None:
        return None
    executable, args, lockfile = command
    timeouts = config["timeouts"]
    opts = RunOptions(
        cwd=str(directory),
        timeout=float(timeouts["dependency"]),
        max_output_bytes=int(config["limits"]["max_output_bytes"]),
        cancel_token=cancel_token,
        grace_period=float(timeouts.get("grace", kernel.DEFAULT_GRACE_PERIOD)),
    )
    try:
        result = await run(executable, list(args), opts)
    except CityscanError as e:
        logger.warning(f"[{executable}] Could not generate {lockfile}: {e.message}")
        return {"file": lockfile, "generated": False, "error": e.to_dict()}

    generated = (Path(directory) / lockfile).is_file()
    if result.exit_code != 0 or not generated:
        logger.warning(
            f"[{executable}] Exited with {result.exit_code} while generating {lockfile}: {result.stderr[-500:].strip()}"
        )
    return {"file": lockfile, "generated": generated, "exitCode": result.exit_code}


async def scan_package(
    ecosystem: str,
    name: str,
    version: str | None = None,
    *,
    config: Mapping[str, Any] | None = None,
    cancel_token: CancelToken | None = None,
    tool: str = "osv-scanner",
    **options: Any,
) -> AnalysisResult:
    """Audit a single dependency by scanning a synthetic one-entry manifest.

    Raises:
        ValueError: Unsupported ecosystem.
        UnsafeArgumentError: Package name or version fails validation.
    """
    eco = canonical_ecosystem(ecosystem)
    writer = WRITERS.get(eco)
    if writer is None:
        raise ValueError(f"Unsupported ecosystem: {ecosystem}")

    with scratch_dir("package") as directory:
        writer(directory, name, version)
        cfg = config if config is not None else load_runtime_config(str(directory))
        lockfile = await _generate_lockfile(eco, directory, cfg, options.get("run", kernel.run), cancel_token)
        ctx = AnalyzerContext.from_project(str(directory), config=cfg, cancel_token=cancel_token, **options)
        results = await analyze(str(directory), [tool], ctx)

    if not results:
        return empty_result(
            tool=tool,
            category=ctx.adapters[tool].category,
            project_path=ctx.project_root,
            metadata={"skipped": True, "reason": "No result"},
        )
    extra: dict[str, Any] = {"package": {"ecosystem": eco, "name": name, "version": version}}
    if lockfile is not None:
        extra["lockfile"] = lockfile
    return results[0].with_metadata(**extra)
