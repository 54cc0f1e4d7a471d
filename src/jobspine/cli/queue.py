"""
CLI: ``jobspine queue`` - inspect and feed a job queue.
"""

from __future__ import annotations

from datetime import timedelta

import typer

from jobspine.cli.utils import (
    console,
    handle_errors,
    make_queue,
    parse_payload,
    print_dict,
    print_json,
    print_table,
)
from jobspine.core.errors import JobNotFoundError
from jobspine.jobs.models import Job, JobPriority, JobQuery, JobStatus, utcnow

app = typer.Typer(no_args_is_help=True)


def _job_row(job: Job) -> dict[str, object]:
    return {
        "id": job.id,
        "type": job.job_type,
        "priority": job.priority.value,
        "status": job.status.value,
        "attempt": f"{job.attempt}/{job.max_attempts}",
        "created_at": job.created_at.isoformat(timespec="seconds"),
        "scheduled_for": job.scheduled_for.isoformat(timespec="seconds") if job.scheduled_for else None,
    }


@app.command("stats")
def queue_stats(
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show queue depth and status counts."""
    with handle_errors():
        stats = make_queue(redis_url, queue).stats()
    if json_out:
        print_json(stats.to_dict())
    else:
        console.print(stats.format())


@app.command("metrics")
def queue_metrics(
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show lifetime job outcomes and average run time."""
    with handle_errors():
        metrics = make_queue(redis_url, queue).metrics()
    if json_out:
        print_json(metrics.to_dict())
        return
    average = metrics.average_duration_ms()
    print_dict(
        {
            **{status: metrics.count(status) for status in ("completed", "failed", "dead")},
            "total_processed": metrics.total_processed,
            "average_latency_ms": "-" if average is None else f"{average:.1f}",
        },
        title=f"Metrics for '{metrics.name}'",
    )


@app.command("list")
def list_jobs(
    status: JobStatus | None = typer.Option(None, "--status", "-s"),
    job_type: str | None = typer.Option(None, "--type", "-t"),
    tags: list[str] | None = typer.Option(None, "--tag", help="Require tag (repeatable)"),
    limit: int = typer.Option(50, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs, oldest first."""
    query = JobQuery(status=status, job_type=job_type, tags=list(tags or []), offset=offset, limit=limit)
    with handle_errors():
        jobs = make_queue(redis_url, queue).list_jobs(query)
    if json_out:
        print_json([job.to_dict() for job in jobs])
    else:
        print_table([_job_row(job) for job in jobs], title="Jobs")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one job record."""
    with handle_errors():
        job = make_queue(redis_url, queue).get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
    if json_out:
        print_json(job.to_dict())
    else:
        print_dict(job.to_dict(), title=f"Job: {job_id}")


@app.command("enqueue")
def enqueue_job(
    job_type: str = typer.Argument(..., help="Job type"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON payload"),
    priority: JobPriority = typer.Option(JobPriority.NORMAL, "--priority"),
    delay: float | None = typer.Option(None, "--delay", help="Defer by this many seconds"),
    tags: list[str] | None = typer.Option(None, "--tag", help="Tag (repeatable)"),
    max_attempts: int = typer.Option(3, "--max-attempts"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Enqueue a job (optionally deferred)."""
    job = Job.create(
        job_type,
        parse_payload(payload),
        priority=priority,
        tags=list(tags or []),
        max_attempts=max_attempts,
        scheduled_for=utcnow() + timedelta(seconds=delay) if delay else None,
    )
    with handle_errors():
        make_queue(redis_url, queue).enqueue(job)
    if json_out:
        print_json(job.to_dict())
    else:
        console.print(f"[green]Enqueued[/green] {job.id} ({job.job_type}, {job.priority.value})")


@app.command("clear")
def clear_queue(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
) -> None:
    """Delete every job, list and counter of the queue."""
    job_queue = make_queue(redis_url, queue)
    if not yes:
        typer.confirm(f"Delete all jobs in queue '{job_queue.name}'?", abort=True)
    with handle_errors():
        deleted = job_queue.clear()
    console.print(f"Deleted {deleted} job(s) from '{job_queue.name}'")


@app.command("dead-letters")
def dead_letters(
    limit: int = typer.Option(20, "--limit", "-n"),
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", envvar="JOBSPINE_REDIS_URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List dead-lettered jobs, newest first."""
    with handle_errors():
        entries = make_queue(redis_url, queue).dead_letters.list(limit=limit)
    if json_out:
        print_json([entry.to_dict() for entry in entries])
        return
    rows = [
        {
            "id": entry.id,
            "job_id": entry.job.id,
            "type": entry.job.job_type,
            "attempts": entry.attempts,
            "error": entry.error,
            "created_at": entry.created_at.isoformat(timespec="seconds"),
        }
        for entry in entries
    ]
    print_table(rows, title="Dead letters")
