"""Audit a single dependency without a project checkout."""

import asyncio

import click

from cityscan.commands.analyze import exit_for, report, write_document
from cityscan.driver.manifests import WRITERS
from cityscan.orchestrator import scan_package
from cityscan.utils.error_handler import handle_exceptions


@click.command("package")
@click.argument("ecosystem", type=click.Choice(sorted(WRITERS), case_sensitive=False))
@click.argument("name")
@click.argument("version", required=False)
@click.option("--out", type=click.Path(dir_okay=False), default=None, help="Write JSON here instead of stdout")
@click.option("--quiet", "-q", is_flag=True, help="Suppress the summary table")
@handle_exceptions
def package(ecosystem, name, version, out, quiet):
    """Check one package version for known vulnerabilities.

    A throwaway manifest naming only NAME@VERSION is scanned with
    osv-scanner and removed afterwards.

    \b
    EXAMPLES:
      cityscan package npm lodash 4.17.20
      cityscan package pypi requests 2.19.0
    """
    result = asyncio.run(scan_package(ecosystem, name, version))
    write_document(result.to_dict(), out)
    report([result], quiet=quiet)
    exit_for([result])
