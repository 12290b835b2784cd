"""Plan command - show the actions needed to reconcile state."""

import json
from pathlib import Path
import click
from ...presentation.human_formatter import format_plan
from ...utils.logging import get_logger
from ..utils import build_workspace, echo_output, handle_errors, workspace_options

logger = get_logger("cli.plan")


@click.command()
@workspace_options
@click.option('--out', '-o', 'out_path', type=click.Path(dir_okay=False), help='Save the plan for a later apply')
@click.option('--destroy', is_flag=True, help='Plan deletion of every managed resource')
@click.option('--refresh/--no-refresh', default=None, help='Read resources back before diffing')
@click.option('--json', 'json_output', is_flag=True, help='Output the plan as JSON')
@click.option('--quiet', is_flag=True, help='Suppress progress messages')
@handle_errors
def plan(out_path, destroy, refresh, json_output, quiet, **options):
    """
    Compute and print the plan. Mutates nothing.

    Exit code is 0 whether or not changes are pending.
    """
    workspace = build_workspace(**options)
    if not quiet:
        click.echo(f"Planning against state: {workspace.state_path}", err=True)

    computed = workspace.plan(destroy=destroy, refresh=refresh)

    if json_output:
        echo_output(json.dumps(computed.model_dump(mode="json"), indent=2))
    else:
        echo_output(format_plan(computed))

    if out_path:
        computed.save(Path(out_path))
        if not quiet:
            click.echo(f"Plan saved to: {out_path}", err=True)
