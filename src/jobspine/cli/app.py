"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from jobspine import __version__
from jobspine.cli.cron import app as cron_app
from jobspine.cli.queue import app as queue_app
from jobspine.cli.scheduler import app as scheduler_app
from jobspine.core.config import get_settings
from jobspine.observability.logging import configure_logging

app = Typer(
    name="jobspine",
    help="jobspine - Redis-backed job queue and cron scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_format: str | None = typer.Option(None, "--log-format", help="console or json"),
) -> None:
    """jobspine CLI - manage queues, cron jobs and the scheduler."""
    settings = get_settings()
    configure_logging(
        level=(log_level or settings.log_level).upper(),
        format=(log_format or settings.log_format).lower(),
    )


app.add_typer(queue_app, name="queue", help="Queue inspection and job submission.")
app.add_typer(cron_app, name="cron", help="Recurring job templates.")
app.add_typer(scheduler_app, name="scheduler", help="Scheduler loop.")
