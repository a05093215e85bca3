"""Analyzer detection and availability reporting."""

import asyncio
import json
from dataclasses import asdict, dataclass

import click
from rich.table import Table

from cityscan.adapters import ADAPTERS
from cityscan.config_runtime import load_runtime_config
from cityscan.driver.kernel import probe_version
from cityscan.errors import ToolUnavailableError
from cityscan.inventory import scan_project
from cityscan.ui import console
from cityscan.utils.error_handler import handle_exceptions


@dataclass
class ToolStatus:
    """Status of a single analyzer."""

    name: str
    category: str
    executable: str
    version: str | None
    available: bool
    applies: bool | None = None
    reason: str | None = None

    @property
    def display_version(self) -> str:
        if not self.available:
            return "not installed"
        return self.version or "unknown"


async def _probe(adapter, timeout: float) -> ToolStatus:
    try:
        version = await probe_version(adapter.executable, adapter.version_args, timeout=timeout)
    except ToolUnavailableError as e:
        return ToolStatus(adapter.name, adapter.category.value, adapter.executable, None, False, reason=e.message)
    return ToolStatus(adapter.name, adapter.category.value, adapter.executable, version, True)


async def detect_all_tools(timeout: float = 5.0) -> list[ToolStatus]:
    """Probe every known analyzer concurrently."""
    adapters = [ADAPTERS[name] for name in sorted(ADAPTERS)]
    return list(await asyncio.gather(*(_probe(adapter, timeout) for adapter in adapters)))


@click.command("tools")
@click.argument("project", required=False, type=click.Path(exists=True, file_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@handle_exceptions
def tools(project, as_json):
    """Show known analyzers, their category and whether they are installed.

    With PROJECT, also show which analyzers apply to it.

    \b
    EXAMPLES:
      cityscan tools
      cityscan tools ./service --json
    """
    cfg = load_runtime_config(project or ".")
    statuses = asyncio.run(detect_all_tools(float(cfg["timeouts"]["probe"])))

    if project is not None:
        inventory = scan_project(
            project,
            skip_dirs=cfg["paths"]["skip_dirs"],
            max_files=cfg["limits"]["max_files"],
            max_file_size=cfg["limits"]["max_file_size"],
        )
        for status in statuses:
            status.applies = ADAPTERS[status.name].applies_to(inventory)

    if as_json:
        click.echo(json.dumps([asdict(s) for s in statuses], indent=2, sort_keys=True))
        return

    table = Table(title="Analyzers")
    table.add_column("Tool", style="tool")
    table.add_column("Category")
    table.add_column("Version")
    if project is not None:
        table.add_column("Applies")
    for status in statuses:
        version = status.display_version if status.available else "[dim]not installed[/dim]"
        row = [status.name, status.category, version]
        if project is not None:
            row.append("[success]yes[/success]" if status.applies else "[dim]no[/dim]")
        table.add_row(*row)
    console.print(table)
