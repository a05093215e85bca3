"""cityscan CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - commands are imported after the group is defined

import click

from cityscan import __version__
from cityscan.driver.tempdirs import install_signal_cleanup


@click.group()
@click.version_option(version=__version__, prog_name="cityscan")
@click.help_option("-h", "--help")
def cli():
    """cityscan - run many analyzers, get one correlated report

    \b
    QUICK START:
      cityscan tools .                 # Which analyzers apply, which are installed
      cityscan analyze .               # Run every applicable analyzer
      cityscan analyze . --merge       # Also correlate findings across tools
      cityscan merge a.json b.json     # Correlate stored result documents
      cityscan package npm lodash 4.17.20  # Audit one dependency version

    \b
    EXIT CODES:
      0  Success
      1  Critical severity findings
      2  Invalid usage
      3  One or more analyzers failed

    Logging is controlled by CITYSCAN_LOG_LEVEL and CITYSCAN_LOG_JSON.
    """
    install_signal_cleanup()


from cityscan.commands.analyze import analyze
from cityscan.commands.merge import merge
from cityscan.commands.package import package
from cityscan.commands.tools import tools

cli.add_command(analyze)
cli.add_command(merge)
cli.add_command(package)
cli.add_command(tools)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
