"""
CLI: ``jobspine scheduler`` - run the scheduler loop.
"""

from __future__ import annotations

import signal

import typer

from jobspine.cli.utils import console, handle_errors, make_scheduler, print_json
from jobspine.observability.logging import bind_context, clear_context, get_logger

app = typer.Typer(no_args_is_help=True)
log = get_logger(__name__)


@app.command("run")
def run_scheduler(
    interval: float | None = typer.Option(None, "--interval", "-i", help="Seconds between ticks"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
) -> None:
    """Run the scheduler in the foreground until interrupted."""
    scheduler = make_scheduler(redis_url, queue, interval=interval)
    bind_context(instance_id=scheduler.lock_manager.instance_id, queue=scheduler.queue.name)

    def _shutdown(signum: int, _frame: object) -> None:
        log.info("scheduler_shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    with handle_errors():
        try:
            scheduler.run_forever()
        finally:
            clear_context()


@app.command("tick")
def tick(
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a single scheduler tick (for cron-driven deployments)."""
    with handle_errors():
        result = make_scheduler(redis_url, queue).run_once()
    data = {"acquired": result.acquired, "promoted": result.promoted, "cron_fired": result.cron_fired}
    if json_out:
        print_json(data)
    elif not result.acquired:
        console.print("[yellow]Skipped[/yellow]: another scheduler holds the lease")
    else:
        console.print(f"Promoted {result.promoted} job(s), fired {result.cron_fired} cron job(s)")
