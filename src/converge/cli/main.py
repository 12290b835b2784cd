"""Main CLI entry point for Converge."""

import logging
import click
from .commands.plan import plan
from .commands.apply import apply, destroy
from .commands.state import state
from .commands.taint import taint, untaint
from .commands.validate import validate, graph
from .commands.version import version as version_command
from ..utils.logging import get_logger, setup_logging
from .. import __version__

logger = get_logger("cli.main")


@click.group()
@click.version_option(version=__version__, prog_name="converge", message="%(prog)s version %(version)s")
@click.option('--verbose', '-v', count=True, help='Increase log verbosity (-v info, -vv debug)')
def cli(verbose):
    """Converge - Declarative resource reconciler."""
    if verbose:
        setup_logging(logging.DEBUG if verbose > 1 else logging.INFO)


cli.add_command(plan)
cli.add_command(apply)
cli.add_command(destroy)
cli.add_command(state)
cli.add_command(taint)
cli.add_command(untaint)
cli.add_command(validate)
cli.add_command(graph)
cli.add_command(version_command)


def main():
    cli()
