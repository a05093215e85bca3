"""Central UI handler for cityscan.

Single source of truth for Rich console styling. The console writes to
stderr so that result documents on stdout stay machine-readable.
"""

import sys

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

CITYSCAN_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "critical": "bold red",
    "high": "bold yellow",
    "medium": "bold blue",
    "low": "cyan",
    "tool": "bold magenta",
    "path": "bold cyan",
    "dim": "dim white",
})

console = Console(theme=CITYSCAN_THEME, stderr=True, force_terminal=sys.stderr.isatty())


def print_results_table(results, readiness: dict[str, float] | None = None) -> None:
    """Render one row per tool with status and severity counts."""
    table = Table(title="Analysis results", show_lines=False)
    table.add_column("Tool", style="tool")
    table.add_column("Category")
    table.add_column("Status")
    for level in ("critical", "high", "medium", "low", "info"):
        table.add_column(level.capitalize(), justify="right", style=level)
    table.add_column("Ready %", justify="right")

    readiness = readiness or {}
    for result in results:
        counts = result.severity_counts()
        if result.metadata.get("skipped"):
            status = "[dim]skipped[/dim]"
        elif result.metadata.get("cancelled"):
            status = "[warning]cancelled[/warning]"
        elif result.metadata.get("error"):
            status = "[error]failed[/error]"
        else:
            status = "[success]ok[/success]"
        ready = readiness.get(result.tool)
        table.add_row(
            result.tool,
            result.category.value,
            status,
            *(str(counts.get(level, 0)) for level in ("critical", "high", "medium", "low", "info")),
            f"{ready:.0f}" if ready is not None else "-",
        )

    console.print(table)


def print_health(health: dict) -> None:
    level = health["level"]
    style = {
        "excellent": "success",
        "good": "success",
        "fair": "warning",
        "poor": "error",
        "critical": "critical",
    }.get(level, "info")
    console.print(f"Overall health: [{style}]{health['score']} ({level})[/{style}]")
