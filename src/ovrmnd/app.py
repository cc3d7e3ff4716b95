"""Typer application and CLI entry point for ovrmnd.

The root app carries the global output flags (``--json``, ``--plain``,
``--no-color``, ``--quiet``, ``--verbose``) and the built-in commands:
``call``, ``list``, ``validate``, ``init`` and the ``cache`` family.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  It installs a SIGINT handler, invokes the app, and
turns anything that escapes a command into an exit code.  Unexpected
exceptions are written to a crash log under the cache directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from ovrmnd import __version__
from ovrmnd.commands.cache import cache_app
from ovrmnd.commands.call import call_command
from ovrmnd.commands.init import init_command
from ovrmnd.commands.list import list_command
from ovrmnd.commands.validate import validate_command
from ovrmnd.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="ovrmnd",
    help="Call REST and GraphQL APIs described in YAML service files.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("call")(call_command)
app.command("list")(list_command)
app.command("validate")(validate_command)
app.command("init")(init_command)
app.add_typer(cache_app, name="cache", help="Inspect and clear the response cache.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ovrmnd {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
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
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~ovrmnd.output.OutputManager` and routes
    library log records to stderr.
    """
    from ovrmnd.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose=verbose, no_color=no_color)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits with 130."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to ``<cache dir>/logs`` and return its path."""
    from ovrmnd.config import get_cache_dir

    logs_dir = get_cache_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``ovrmnd`` console script.

    :class:`~ovrmnd.exceptions.OvrmndError` instances that escape a command
    exit with the error's ``exit_code``.  Any other exception produces a
    crash log and exit code 1.
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
        from ovrmnd.exceptions import OvrmndError
        from ovrmnd.output import error, suggest

        if isinstance(exc, OvrmndError):
            error(exc.message)
            if exc.help:
                suggest(exc.help)
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)


if __name__ == "__main__":
    main()
