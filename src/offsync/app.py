"""Typer application and CLI entry point for offsync.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``fetch``, ``route``, ``status``, ``cache``,
``queue``, ``sync``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~offsync.exceptions.OffsyncError` exits with the error's
``exit_code``; anything else is written to a crash log under the data
directory.

See Also:
    :mod:`offsync.config`: Configuration resolution.
    :mod:`offsync.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from offsync import __version__
from offsync.commands.cache import cache_app
from offsync.commands.config import config_app
from offsync.commands.fetch import fetch_command, route_command, status_command
from offsync.commands.queue import queue_app
from offsync.commands.sync import sync_app
from offsync.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="offsync",
    help="Offline-first caching and write queueing for HTTP clients.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("fetch")(fetch_command)
app.command("route")(route_command)
app.command("status")(status_command)
app.add_typer(cache_app, name="cache", help="Cache generation management.")
app.add_typer(queue_app, name="queue", help="Pending write management.")
app.add_typer(sync_app, name="sync", help="Replay pending writes.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"offsync {__version__}")
        raise typer.Exit()


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
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-b", help="Origin that relative paths resolve against."
    ),
    generation: Optional[str] = typer.Option(
        None, "--generation", "-g", help="Cache generation to use."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~offsync.output.OutputManager` and the
    log handler from CLI flags, and stores shared options in the Typer
    context so that sub-commands can read them via ``ctx.obj``.
    """
    from offsync.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["generation"] = generation
    ctx.obj["force"] = force


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from offsync.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text("".join(traceback.format_exception(exc)))
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``offsync`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from offsync.exceptions import OffsyncError
        from offsync.output import error

        if isinstance(exc, OffsyncError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
