"""CLI utilities package."""

import functools
import sys
from typing import Any, Callable, Optional, Tuple
import click
from ...config.manager import load_settings
from ...ingest.config_loader import parse_var_overrides
from ...utils.errors import ConvergeError
from ...utils.logging import get_logger, setup_logging
from ...workspace import Workspace

logger = get_logger("cli.utils")

DEFAULT_CONFIG = "converge.yaml"


def format_error(message: str, suggestion: Optional[str] = None) -> str:
    """
    Format error message with optional suggestion.

    Args:
        message: Error message
        suggestion: Optional suggestion or help text

    Returns:
        Formatted error string
    """
    error = f"Error: {message}"
    if suggestion:
        error += f"\nTip: {suggestion}"
    return error


def workspace_options(func: Callable) -> Callable:
    """Options shared by every command that touches a configuration or state."""
    options = [
        click.option('--config', '-c', 'config_path', default=DEFAULT_CONFIG, show_default=True,
                     type=click.Path(dir_okay=False), help='Configuration document (YAML or JSON)'),
        click.option('--state', 'state_path', type=click.Path(dir_okay=False), help='State file (overrides settings)'),
        click.option('--var', 'var_pairs', multiple=True, metavar='KEY=VALUE', help='Set a variable (repeatable)'),
        click.option('--var-file', 'var_files', multiple=True, type=click.Path(exists=True, dir_okay=False),
                     help='Variable values file (repeatable)'),
        click.option('--settings', 'settings_path', type=click.Path(dir_okay=False), help='Settings file replacing .converge/config.yaml'),
        click.option('--parallelism', type=click.IntRange(min=1), help='Maximum concurrent operations'),
        click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Provider operation timeout in seconds'),
        click.option('--lock/--no-lock', 'lock', default=None, help='Hold the state lock during the run'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_workspace(
    config_path: Optional[str] = None,
    state_path: Optional[str] = None,
    var_pairs: Tuple[str, ...] = (),
    var_files: Tuple[str, ...] = (),
    settings_path: Optional[str] = None,
    parallelism: Optional[int] = None,
    timeout: Optional[float] = None,
    lock: Optional[bool] = None,
    **_: Any
) -> Workspace:
    """Create a Workspace from common command-line options."""
    settings = load_settings(settings_path)
    context = click.get_current_context(silent=True)
    if context is None or not context.find_root().params.get("verbose"):
        setup_logging(settings.log_level)
    updates = {}
    if parallelism is not None:
        updates["parallelism"] = parallelism
    if timeout is not None:
        updates["timeout"] = timeout
    if lock is not None:
        updates["lock"] = lock
    if updates:
        settings = settings.model_copy(update=updates)
    return Workspace(
        config_path=config_path,
        settings=settings,
        state_path=state_path,
        var_files=var_files,
        variables=parse_var_overrides(var_pairs),
    )


def handle_errors(func: Callable) -> Callable:
    """Turn ConvergeError into a formatted message and exit code 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConvergeError as e:
            click.echo(format_error(str(e)), err=True)
            sys.exit(1)
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            click.echo(format_error(f"Command failed: {e}"), err=True)
            sys.exit(1)
    return wrapper


def echo_output(text: str) -> None:
    try:
        click.echo(text)
    except UnicodeEncodeError:
        safe_text = text.encode('ascii', errors='replace').decode('ascii')
        click.echo(safe_text)


__all__ = ["DEFAULT_CONFIG", "build_workspace", "echo_output", "format_error", "handle_errors", "workspace_options"]
