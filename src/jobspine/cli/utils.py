"""
CLI utility helpers - output formatting and store wiring.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from jobspine.core.config import (
    JobSpineSettings,
    create_job_queue,
    create_redis_client,
    create_scheduler,
    get_settings,
)
from jobspine.core.errors import JobSpineError
from jobspine.jobs.queue import JobQueue
from jobspine.jobs.scheduler import JobScheduler

console = Console()
err_console = Console(stderr=True)


# ── Store wiring ─────────────────────────────────────────────────────────


def load_settings(redis_url: str | None = None, queue_name: str | None = None) -> JobSpineSettings:
    """Settings from the environment with command-line overrides applied."""
    settings = get_settings()
    overrides = {
        k: v for k, v in {"redis_url": redis_url, "queue_name": queue_name}.items() if v is not None
    }
    return settings.model_copy(update=overrides) if overrides else settings


def make_queue(redis_url: str | None = None, queue_name: str | None = None) -> JobQueue:
    """Open the queue named on the command line (or in ``JOBSPINE_QUEUE_NAME``)."""
    settings = load_settings(redis_url, queue_name)
    return create_job_queue(settings, client=create_redis_client(settings))


def make_scheduler(
    redis_url: str | None = None,
    queue_name: str | None = None,
    *,
    interval: float | None = None,
) -> JobScheduler:
    """Scheduler bound to the queue from :func:`make_queue`."""
    settings = load_settings(redis_url, queue_name)
    scheduler = create_scheduler(settings, make_queue(redis_url, queue_name))
    if interval is not None:
        scheduler.config.check_interval_seconds = interval
    return scheduler


def parse_payload(raw: str | None) -> Any:
    """Decode a ``--payload`` JSON argument."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        err_console.print(f"[bold red]Error[/bold red]: --payload is not valid JSON ({e.msg})")
        raise typer.Exit(code=2) from e


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print a :class:`JobSpineError` and exit with status 1."""
    try:
        yield
    except JobSpineError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        context = e.to_dict().get("context")
        if context:
            err_console.print(f"  {json.dumps(context, default=str)}", style="dim", markup=False, highlight=False)
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
