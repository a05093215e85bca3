"""Run analyzers against a project and emit unified results."""

import asyncio
import json
import signal
from pathlib import Path
from typing import Any, NoReturn

import click

from cityscan.adapters import ADAPTERS
from cityscan.correlation import compute_health, merge as merge_results
from cityscan.driver.kernel import CancelToken
from cityscan.orchestrator import analyze as run_analysis
from cityscan.ui import console, print_health, print_results_table
from cityscan.utils.error_handler import handle_exceptions
from cityscan.utils.exit_codes import ExitCodes
from cityscan.utils.logging import logger
from cityscan.validator import correlation_readiness


def write_document(document: dict[str, Any], out: str | None) -> None:
    """Write a JSON document to ``out`` or stdout. Keys are sorted for determinism."""
    text = json.dumps(document, indent=2, sort_keys=True)
    if out is None:
        click.echo(text)
        return
    path = Path(out)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n", encoding="utf-8")
    logger.info(f"Wrote {path}")


def exit_for(results) -> NoReturn:
    """Exit with the code the results call for."""
    code = ExitCodes.for_results(results)
    if code != ExitCodes.SUCCESS:
        logger.info(ExitCodes.get_description(code))
    raise SystemExit(code)


def report(results, merged=None, quiet: bool = False) -> None:
    """Render the per-tool table and overall health on stderr."""
    if quiet:
        return
    print_results_table(results, correlation_readiness(results))
    health = merged.health if merged is not None else compute_health(
        issue for result in results for issue in result.issues
    )
    print_health(health.to_dict())
    if merged is not None and merged.groups:
        console.print(f"Correlated {len(merged.groups)} finding groups across tools")


async def _analyze_with_interrupt(project: str, tool_set, **options):
    """Run the orchestrator; Ctrl-C cancels in-flight tools instead of killing the process."""
    token = CancelToken()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, token.cancel)
    try:
        return await run_analysis(project, tool_set, cancel_token=token, **options)
    finally:
        loop.remove_signal_handler(signal.SIGINT)


@click.command("analyze")
@click.argument("project", type=click.Path(exists=True, file_okay=False), default=".")
@click.option(
    "--tool",
    "tools",
    multiple=True,
    type=click.Choice(sorted(ADAPTERS)),
    help="Analyzer to run (repeatable). Defaults to every applicable analyzer.",
)
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Max analyzers running at once")
@click.option("--out", type=click.Path(dir_okay=False), default=None, help="Write JSON here instead of stdout")
@click.option("--merge", "do_merge", is_flag=True, help="Correlate findings across tools")
@click.option("--quiet", "-q", is_flag=True, help="Suppress the summary table")
@handle_exceptions
def analyze(project, tools, concurrency, out, do_merge, quiet):
    """Run analyzers on PROJECT and write unified results as JSON.

    \b
    EXAMPLES:
      cityscan analyze .
      cityscan analyze ./service --tool pylint --tool bandit
      cityscan analyze . --merge --out .cityscan/report.json

    Tools that are not installed are reported as skipped. A tool that fails
    never stops the others.
    """
    tool_set = list(tools) if tools else None
    results = asyncio.run(_analyze_with_interrupt(project, tool_set, concurrency=concurrency))

    if do_merge:
        merged = merge_results(results)
        write_document(merged.to_dict(), out)
    else:
        merged = None
        write_document(
            {
                "results": [result.to_dict() for result in results],
                "readiness": correlation_readiness(results),
            },
            out,
        )

    report(results, merged, quiet)
    exit_for(results)
