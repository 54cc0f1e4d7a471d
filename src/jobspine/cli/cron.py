"""
CLI: ``jobspine cron`` - recurring job templates.
"""

from __future__ import annotations

import typer

from jobspine.cli.utils import (
    console,
    handle_errors,
    make_scheduler,
    parse_payload,
    print_json,
    print_table,
)
from jobspine.core.errors import CronJobNotFoundError
from jobspine.jobs.cron import iter_occurrences
from jobspine.jobs.models import Job, JobPriority, utcnow

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_cron_jobs(
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered cron jobs."""
    with handle_errors():
        infos = make_scheduler(redis_url, queue).get_cron_jobs()
    if json_out:
        print_json([info.to_dict() for info in infos])
    else:
        print_table([info.to_dict() for info in infos], title="Cron jobs")


@app.command("add")
def add_cron_job(
    schedule: str = typer.Argument(..., help='Cron expression, e.g. "0 9 * * MON-FRI"'),
    job_type: str = typer.Argument(..., help="Job type"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON payload"),
    priority: JobPriority = typer.Option(JobPriority.NORMAL, "--priority"),
    timezone: str | None = typer.Option(None, "--timezone", "--tz"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Register a recurring job."""
    template = Job.create(job_type, parse_payload(payload), priority=priority)
    with handle_errors():
        cron_job = make_scheduler(redis_url, queue).cron(schedule, template, timezone=timezone)
    if json_out:
        print_json(cron_job.info().to_dict())
    else:
        console.print(
            f"[green]Registered[/green] {cron_job.id} '{schedule}' "
            f"next run {cron_job.next_run.isoformat()}"
        )


def _toggle(cron_id: str, enabled: bool, redis_url: str | None, queue: str | None) -> None:
    with handle_errors():
        scheduler = make_scheduler(redis_url, queue)
        changed = scheduler.enable_cron(cron_id) if enabled else scheduler.disable_cron(cron_id)
        if not changed:
            raise CronJobNotFoundError(cron_id)
    console.print(f"{'Enabled' if enabled else 'Disabled'} {cron_id}")


@app.command("enable")
def enable_cron_job(
    cron_id: str = typer.Argument(..., help="Cron job ID"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
) -> None:
    """Resume a cron job."""
    _toggle(cron_id, True, redis_url, queue)


@app.command("disable")
def disable_cron_job(
    cron_id: str = typer.Argument(..., help="Cron job ID"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
) -> None:
    """Pause a cron job without removing it."""
    _toggle(cron_id, False, redis_url, queue)


@app.command("remove")
def remove_cron_job(
    cron_id: str = typer.Argument(..., help="Cron job ID"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
) -> None:
    """Delete a cron job."""
    with handle_errors():
        if not make_scheduler(redis_url, queue).remove_cron(cron_id):
            raise CronJobNotFoundError(cron_id)
    console.print(f"Removed {cron_id}")


@app.command("next")
def next_runs(
    schedule: str = typer.Argument(..., help="Cron expression"),
    count: int = typer.Option(5, "--count", "-n"),
    timezone: str = typer.Option("UTC", "--timezone", "--tz"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Preview the next occurrences of an expression (UTC)."""
    with handle_errors():
        runs = list(iter_occurrences(schedule, utcnow(), count, timezone))
    if json_out:
        print_json([run.isoformat() for run in runs])
        return
    for run in runs:
        console.print(run.isoformat())
