"""Validate and graph commands - static checks of the configuration."""

import click
from ..utils import build_workspace, echo_output, handle_errors, workspace_options


@click.command()
@workspace_options
@handle_errors
def validate(**options):
    """Check the configuration: kinds, attributes, references and cycles."""
    workspace = build_workspace(**options)
    graph = workspace.graph()
    click.echo(f"Configuration is valid ({len(graph.addresses())} resources)")


@click.command()
@workspace_options
@handle_errors
def graph(**options):
    """Print the dependency graph in Graphviz DOT format."""
    workspace = build_workspace(**options)
    echo_output(workspace.graph().to_dot().rstrip("\n"))
