"""Command-line interface for lazyactions."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from lazyactions import __version__
from lazyactions.app import RunMonitor
from lazyactions.config import MonitorConfig
from lazyactions.constants import DEFAULT_REFRESH_INTERVAL
from lazyactions.constants import DEFAULT_RUN_LIMIT
from lazyactions.events import EventQueue
from lazyactions.exceptions import ConfigurationError
from lazyactions.exceptions import LazyActionsError
from lazyactions.gh_cli import FetchHints
from lazyactions.gh_cli import GhCli
from lazyactions.scheduler import RefreshScheduler
from lazyactions.state.filters import FilterSet
from lazyactions.tui import RunMonitorTUI

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

#: Exit status for errors that prevent the monitor from starting
EXIT_STARTUP_ERROR = 1

#: Exit status for invalid command-line values
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    name="lazyactions",
    help="Terminal monitor for GitHub Actions runs of the current repository.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console(stderr=True)


def configure_logging(log_file: Path | None, verbose: bool) -> None:
    """
    Send log records to ``log_file``, if given.

    Nothing is written to the terminal: the full-screen display owns it.
    """
    if log_file is None:
        return
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger = logging.getLogger("lazyactions")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lazyactions {__version__}")
        raise typer.Exit()


@app.command()
def main(
    branch: bool = typer.Option(
        False, "--branch", "-b", help="Start with only runs of the current branch."
    ),
    user: bool = typer.Option(
        False, "--user", "-u", help="Start with only runs triggered by you."
    ),
    latest: bool = typer.Option(
        False, "--latest", "-l", help="Start with only the latest run of each workflow."
    ),
    interval: float = typer.Option(
        DEFAULT_REFRESH_INTERVAL,
        "--interval",
        "-i",
        help="Seconds between the end of one refresh and the next.",
    ),
    limit: int = typer.Option(
        DEFAULT_RUN_LIMIT, "--limit", "-n", help="Number of recent runs fetched per refresh."
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write a diagnostic log to this file.", dir_okay=False
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages."),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Watch the GitHub Actions runs of the repository in the current directory.

    The run list refreshes in the background. Press Enter to read a run's
    log, b/u/l to toggle filters, ? for all keys and q to quit.

    Examples:
        lazyactions
        lazyactions --branch --latest
        lazyactions -i 10 -n 50 --log-file lazyactions.log
    """
    configure_logging(log_file, verbose)

    try:
        config = MonitorConfig(
            interval=interval,
            limit=limit,
            filters=FilterSet(branch_only=branch, user_only=user, latest_only=latest),
        )
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None

    gh = GhCli()
    try:
        context = gh.resolve_context()
    except LazyActionsError as e:
        logger.error("Startup failed: %s", e)
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_STARTUP_ERROR) from None

    events = EventQueue()
    scheduler = RefreshScheduler(
        gh,
        events,
        interval=config.interval,
        hints=FetchHints(limit=config.limit),
    )
    monitor = RunMonitor(context, config, scheduler)
    RunMonitorTUI(monitor, events).run()


if __name__ == "__main__":
    app()
