"""Apply and destroy commands - execute a plan against providers."""

import json
import signal
import sys
from pathlib import Path
import click
from ...plan.models import Plan
from ...presentation.human_formatter import format_plan, format_report
from ...utils.logging import get_logger
from ..utils import build_workspace, echo_output, handle_errors, workspace_options

logger = get_logger("cli.apply")


@click.command()
@workspace_options
@click.option('--plan', 'plan_path', type=click.Path(exists=True, dir_okay=False), help='Apply a plan saved with plan --out')
@click.option('--refresh/--no-refresh', default=None, help='Read resources back before diffing')
@click.option('--json', 'json_output', is_flag=True, help='Output the run report as JSON')
@click.option('--quiet', is_flag=True, help='Suppress progress messages')
@handle_errors
def apply(plan_path, refresh, json_output, quiet, **options):
    """
    Compute a plan and execute it.

    Exits 0 when every resource succeeded, 1 otherwise.
    """
    workspace = build_workspace(**options)
    saved = Plan.load(Path(plan_path)) if plan_path else None
    _run(workspace, lambda: workspace.apply(plan=saved, refresh=refresh), json_output, quiet)


@click.command()
@workspace_options
@click.option('--json', 'json_output', is_flag=True, help='Output the run report as JSON')
@click.option('--quiet', is_flag=True, help='Suppress progress messages')
@handle_errors
def destroy(json_output, quiet, **options):
    """Delete every resource recorded in state, dependents first."""
    workspace = build_workspace(**options)
    _run(workspace, workspace.destroy, json_output, quiet)


def _run(workspace, execute, json_output, quiet):
    def sigint_handler(_signal_received, _frame):
        click.echo("Interrupt received: finishing in-flight operations, starting nothing new...", err=True)
        workspace.cancel()

    previous = signal.signal(signal.SIGINT, sigint_handler)
    try:
        executed, report = execute()
    finally:
        signal.signal(signal.SIGINT, previous)

    if json_output:
        echo_output(json.dumps({
            "plan": executed.model_dump(mode="json"),
            "report": report.model_dump(mode="json"),
            "success": report.success,
        }, indent=2))
    else:
        if not quiet:
            echo_output(format_plan(executed))
            echo_output("")
        echo_output(format_report(report))

    sys.exit(report.exit_code)
