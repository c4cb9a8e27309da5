"""Typer application and CLI entry point for devgrid-auth.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It invokes the Typer app and turns
:class:`~devgrid_auth.exceptions.DevGridAuthError` into the matching exit
code; anything else is written to a crash log under the data directory.

See Also:
    :mod:`devgrid_auth.commands.auth`: the sign-in commands.
    :mod:`devgrid_auth.output`: output formatting initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime

import typer
from rich.console import Console
from rich.logging import RichHandler

from devgrid_auth import __version__
from devgrid_auth.commands.auth import (
    auth_login,
    auth_logout,
    auth_sessions,
    auth_status,
    auth_token,
)
from devgrid_auth.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="devgrid-auth",
    help="Sign in to DevGrid from a terminal with the OAuth device flow.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("login")(auth_login)
app.command("logout")(auth_logout)
app.command("status")(auth_status)
app.command("token")(auth_token)
app.command("sessions")(auth_sessions)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"devgrid-auth {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every command.

    Installs the global :class:`~devgrid_auth.output.OutputManager`,
    enables debug logging with ``--verbose``, and stores shared options in
    ``ctx.obj``. A ``context_factory`` already present in ``ctx.obj`` is
    kept, which lets embedders and tests supply their own
    :class:`~devgrid_auth.context.AuthContext`.
    """
    from devgrid_auth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _write_crash_log() -> str:
    """Write the current traceback to disk and return the log file path."""
    from devgrid_auth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``devgrid-auth`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from devgrid_auth.exceptions import DevGridAuthError
        from devgrid_auth.output import error

        if isinstance(exc, DevGridAuthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
