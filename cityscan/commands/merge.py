"""Correlate stored result documents."""

import json
from pathlib import Path

import click

from cityscan.commands.analyze import exit_for, report, write_document
from cityscan.correlation import merge as merge_results
from cityscan.errors import SchemaError
from cityscan.model.schema import result_from_dict
from cityscan.utils.error_handler import handle_exceptions


def load_results(path: str) -> list:
    """Read Results from a document written by ``analyze`` or ``merge``.

    Accepts a single result, a list of results, or an object with a
    ``results`` list.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SchemaError(f"{path} is not valid JSON: {e}") from e

    if isinstance(data, dict) and "results" in data:
        data = data["results"]
    elif isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise SchemaError(f"{path} does not contain result documents")
    return [result_from_dict(item) for item in data]


@click.command("merge")
@click.argument("documents", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--out", type=click.Path(dir_okay=False), default=None, help="Write JSON here instead of stdout")
@click.option("--quiet", "-q", is_flag=True, help="Suppress the summary table")
@handle_exceptions
def merge(documents, out, quiet):
    """Re-run cross-tool correlation over stored result DOCUMENTS.

    \b
    EXAMPLES:
      cityscan merge python.json js.json --out merged.json
    """
    results = [result for path in documents for result in load_results(path)]
    merged = merge_results(results)
    write_document(merged.to_dict(), out)
    report(merged.results, merged, quiet)
    exit_for(merged.results)
