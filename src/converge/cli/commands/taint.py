"""Taint commands - force or cancel replacement on the next apply."""

import click
from ..utils import build_workspace, handle_errors, workspace_options


@click.command()
@click.argument('address')
@workspace_options
@handle_errors
def taint(address, **options):
    """Mark ADDRESS so the next apply replaces it."""
    build_workspace(**options).taint(address, tainted=True)
    click.echo(f"Resource {address} has been marked as tainted")


@click.command()
@click.argument('address')
@workspace_options
@handle_errors
def untaint(address, **options):
    """Clear the taint (or stale) mark on ADDRESS."""
    build_workspace(**options).taint(address, tainted=False)
    click.echo(f"Resource {address} has been successfully untainted")
