"""State commands - read-only inspection plus explicit state surgery."""

import json
import sys
import click
from ...presentation.human_formatter import format_state_list, format_state_show
from ..utils import build_workspace, echo_output, format_error, handle_errors, workspace_options


@click.group()
def state():
    """Inspect and edit the State Store."""
    pass


@state.command(name="list")
@workspace_options
@handle_errors
def list_resources(**options):
    """List managed resource addresses."""
    workspace = build_workspace(**options)
    entries = workspace.open_state().all()
    if entries:
        echo_output(format_state_list(entries))


@state.command()
@click.argument('address')
@workspace_options
@click.option('--json', 'json_output', is_flag=True, help='Output the entry as JSON')
@handle_errors
def show(address, json_output, **options):
    """Show the recorded attributes of ADDRESS."""
    workspace = build_workspace(**options)
    entry = workspace.open_state().read(address)
    if entry is None:
        click.echo(format_error(f"Resource {address} is not in state", "Run 'converge state list'"), err=True)
        sys.exit(1)
    if json_output:
        echo_output(json.dumps(entry.model_dump(mode="json"), indent=2))
    else:
        echo_output(format_state_show(entry))


@state.command(name="rm")
@click.argument('address')
@workspace_options
@handle_errors
def remove(address, **options):
    """Stop managing ADDRESS without deleting the real resource."""
    workspace = build_workspace(**options)
    if not workspace.forget(address):
        click.echo(format_error(f"Resource {address} is not in state"), err=True)
        sys.exit(1)
    click.echo(f"Removed {address} from state")
