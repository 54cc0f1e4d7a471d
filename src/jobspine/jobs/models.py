"""Job domain models.

Defines the records stored by the queue and the scheduler:
- Job: a unit of asynchronous work with an opaque payload
- CronJob / CronJobInfo: a recurring job template and its listing summary
- QueueStats: a computed, never-persisted view of a queue
- JobMetrics: lifetime terminal-status counts and run durations
- JobQuery: filters for administrative listing

Records are serialized as JSON documents (UTF-8 bytes). Datetimes are
timezone-aware UTC and stored as ISO-8601 strings; enums are stored by value.
"""

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from jobspine.core.errors import DeserializationError, SerializationError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


class JobPriority(str, Enum):
    """Priority tier. Dequeue drains HIGH, then NORMAL, then LOW."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHTS[self]

    @classmethod
    def ordered(cls) -> list["JobPriority"]:
        """Tiers in dequeue order."""
        return [cls.HIGH, cls.NORMAL, cls.LOW]


_PRIORITY_WEIGHTS = {
    JobPriority.HIGH: 100,
    JobPriority.NORMAL: 50,
    JobPriority.LOW: 10,
}


class JobStatus(str, Enum):
    """Lifecycle status of a job.

    ::

        PENDING → RUNNING → COMPLETED | FAILED | TIMED_OUT
        FAILED | TIMED_OUT → PENDING (retry) | DEAD
        PENDING | RUNNING → CANCELLED
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """True for statuses that stamp ``completed_at``."""
        return self in TERMINAL_STATUSES

    @property
    def is_retryable(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.TIMED_OUT)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.DEAD,
    JobStatus.TIMED_OUT,
    JobStatus.CANCELLED,
})


@dataclass
class Job:
    """A unit of asynchronous work.

    The payload is opaque to this package; it only has to be
    JSON-serializable.

    Example:
        >>> job = Job.create("send_email", {"to": "a@example.com"}, priority=JobPriority.HIGH)
        >>> job.status
        <JobStatus.PENDING: 'pending'>
    """

    job_type: str
    payload: Any = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    queue: str = "default"
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.PENDING
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    attempt: int = 0
    max_attempts: int = 3
    timeout_seconds: int = 300
    worker_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    last_error: str | None = None

    @classmethod
    def create(
        cls,
        job_type: str,
        payload: Any = None,
        *,
        queue: str = "default",
        priority: JobPriority | str = JobPriority.NORMAL,
        tags: list[str] | None = None,
        scheduled_for: datetime | None = None,
        max_attempts: int = 3,
        timeout_seconds: int = 300,
        metadata: dict[str, str] | None = None,
    ) -> "Job":
        """Create a new job in PENDING status."""
        return cls(
            job_type=job_type,
            payload=payload,
            queue=queue,
            priority=JobPriority(priority),
            tags=list(tags or []),
            scheduled_for=ensure_utc(scheduled_for) if scheduled_for else None,
            max_attempts=max_attempts,
            timeout_seconds=timeout_seconds,
            metadata=dict(metadata or {}),
        )

    # ── Scheduling ───────────────────────────────────────────────

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_for is not None

    def should_execute_now(self, now: datetime | None = None) -> bool:
        if self.scheduled_for is None:
            return True
        return (now or utcnow()) >= self.scheduled_for

    def time_until_execution(self, now: datetime | None = None) -> timedelta | None:
        """Time left before a deferred job is due, clamped at zero."""
        if self.scheduled_for is None:
            return None
        return max(self.scheduled_for - (now or utcnow()), timedelta(0))

    # ── Lifecycle ────────────────────────────────────────────────

    def transition_to(
        self,
        status: JobStatus,
        *,
        error: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Move to *status*, stamping ``started_at``/``completed_at``.

        Entering RUNNING counts an attempt. Re-entering PENDING clears
        ``completed_at`` so a retried job is not reported as finished.
        """
        now = now or utcnow()
        self.status = status
        if status == JobStatus.RUNNING:
            self.started_at = now
            self.completed_at = None
            self.attempt += 1
        elif status.is_terminal:
            self.completed_at = now
        elif status == JobStatus.PENDING:
            self.completed_at = None
        if error is not None:
            self.last_error = error

    def mark_started(self, worker_id: str | None = None, now: datetime | None = None) -> None:
        self.worker_id = worker_id
        self.transition_to(JobStatus.RUNNING, now=now)

    def mark_completed(self, now: datetime | None = None) -> None:
        self.transition_to(JobStatus.COMPLETED, now=now)

    def mark_failed(self, error: str | None = None, now: datetime | None = None) -> None:
        self.transition_to(JobStatus.FAILED, error=error, now=now)

    def mark_dead(self, now: datetime | None = None) -> None:
        self.transition_to(JobStatus.DEAD, now=now)

    def can_retry(self) -> bool:
        return self.status.is_retryable and self.attempt < self.max_attempts

    def has_timed_out(self, now: datetime | None = None) -> bool:
        if self.started_at is None or self.status != JobStatus.RUNNING:
            return False
        elapsed = (now or utcnow()) - self.started_at
        return elapsed > timedelta(seconds=self.timeout_seconds)

    @property
    def duration(self) -> timedelta | None:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def spawn(self, **changes: Any) -> "Job":
        """Return a fresh PENDING copy with a new id (used for cron firings)."""
        fresh = replace(
            self,
            id=str(uuid.uuid4()),
            status=JobStatus.PENDING,
            created_at=utcnow(),
            scheduled_for=None,
            started_at=None,
            completed_at=None,
            attempt=0,
            worker_id=None,
            last_error=None,
            tags=list(self.tags),
            metadata=dict(self.metadata),
        )
        for key, value in changes.items():
            setattr(fresh, key, value)
        return fresh

    # ── Serialization ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "job_type": self.job_type,
            "payload": self.payload,
            "queue": self.queue,
            "priority": self.priority.value,
            "status": self.status.value,
            "tags": list(self.tags),
            "created_at": to_iso(self.created_at),
            "scheduled_for": to_iso(self.scheduled_for),
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "timeout_seconds": self.timeout_seconds,
            "worker_id": self.worker_id,
            "metadata": dict(self.metadata),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        try:
            return cls(
                id=data["id"],
                job_type=data["job_type"],
                payload=data.get("payload"),
                queue=data.get("queue", "default"),
                priority=JobPriority(data.get("priority", JobPriority.NORMAL.value)),
                status=JobStatus(data.get("status", JobStatus.PENDING.value)),
                tags=list(data.get("tags") or []),
                created_at=from_iso(data["created_at"]),
                scheduled_for=from_iso(data.get("scheduled_for")),
                started_at=from_iso(data.get("started_at")),
                completed_at=from_iso(data.get("completed_at")),
                attempt=int(data.get("attempt", 0)),
                max_attempts=int(data.get("max_attempts", 3)),
                timeout_seconds=int(data.get("timeout_seconds", 300)),
                worker_id=data.get("worker_id"),
                metadata=dict(data.get("metadata") or {}),
                last_error=data.get("last_error"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed job record: {e}", cause=e) from e

    def to_json(self) -> bytes:
        try:
            return json.dumps(self.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Job {self.id} payload is not JSON-serializable: {e}", cause=e
            ).with_context(job_id=self.id) from e

    @classmethod
    def from_json(cls, raw: bytes | str) -> "Job":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"Job record is not valid JSON: {e}", cause=e) from e
        if not isinstance(data, dict):
            raise DeserializationError("Job record is not a JSON object")
        return cls.from_dict(data)


@dataclass
class CronJob:
    """A recurring job template, keyed by the template's id."""

    id: str
    schedule: str
    job_data: dict[str, Any]
    enabled: bool = True
    timezone: str = "UTC"
    created_at: datetime = field(default_factory=utcnow)
    next_run: datetime | None = None
    last_run: datetime | None = None
    run_count: int = 0

    def template(self) -> Job:
        """Rebuild the stored template job."""
        return Job.from_dict(self.job_data)

    def is_due(self, now: datetime | None = None) -> bool:
        return self.enabled and self.next_run is not None and self.next_run <= (now or utcnow())

    def info(self) -> "CronJobInfo":
        return CronJobInfo(
            id=self.id,
            schedule=self.schedule,
            enabled=self.enabled,
            created_at=self.created_at,
            next_run=self.next_run,
            job_type=self.job_data.get("job_type", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schedule": self.schedule,
            "job_data": self.job_data,
            "enabled": self.enabled,
            "timezone": self.timezone,
            "created_at": to_iso(self.created_at),
            "next_run": to_iso(self.next_run),
            "last_run": to_iso(self.last_run),
            "run_count": self.run_count,
        }

    def to_json(self) -> bytes:
        try:
            return json.dumps(self.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cron job {self.id} is not JSON-serializable: {e}", cause=e) from e

    @classmethod
    def from_json(cls, raw: bytes | str) -> "CronJob":
        try:
            data = json.loads(raw)
            return cls(
                id=data["id"],
                schedule=data["schedule"],
                job_data=dict(data["job_data"]),
                enabled=bool(data.get("enabled", True)),
                timezone=data.get("timezone", "UTC"),
                created_at=from_iso(data["created_at"]),
                next_run=from_iso(data.get("next_run")),
                last_run=from_iso(data.get("last_run")),
                run_count=int(data.get("run_count", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed cron record: {e}", cause=e) from e


@dataclass(frozen=True)
class CronJobInfo:
    """Listing summary of a cron job."""

    id: str
    schedule: str
    enabled: bool
    created_at: datetime
    next_run: datetime | None
    job_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schedule": self.schedule,
            "enabled": self.enabled,
            "created_at": to_iso(self.created_at),
            "next_run": to_iso(self.next_run),
            "job_type": self.job_type,
        }


@dataclass
class QueueStats:
    """Point-in-time queue statistics, computed from the store's counters."""

    name: str
    total_pending: int = 0
    depth_by_priority: dict[JobPriority, int] = field(default_factory=dict)
    status_counts: dict[str, int] = field(default_factory=dict)
    scheduled: int = 0
    enqueued_total: int = 0
    is_healthy: bool = True

    def status_count(self, status: JobStatus | str) -> int:
        return self.status_counts.get(JobStatus(status).value, 0)

    def format(self) -> str:
        """Human-readable multi-line summary."""
        lines = [f"Queue '{self.name}':", f"  Pending: {self.total_pending}"]
        for priority in JobPriority.ordered():
            lines.append(f"    {priority.value}: {self.depth_by_priority.get(priority, 0)}")
        lines.append(f"  Scheduled: {self.scheduled}")
        lines.append(f"  Enqueued (lifetime): {self.enqueued_total}")
        lines.append("  Status counts:")
        for status, count in sorted(self.status_counts.items()):
            lines.append(f"    {status}: {count}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "total_pending": self.total_pending,
            "depth_by_priority": {p.value: n for p, n in self.depth_by_priority.items()},
            "status_counts": dict(self.status_counts),
            "scheduled": self.scheduled,
            "enqueued_total": self.enqueued_total,
            "is_healthy": self.is_healthy,
        }


@dataclass
class JobMetrics:
    """Lifetime outcome counters for a queue.

    ``counts`` maps a terminal status to how many times a job reached it;
    ``duration_ms`` maps completed/failed to the summed run time of those
    jobs in milliseconds. A job that fails and is later dead-lettered is
    counted under both statuses.
    """

    name: str
    counts: dict[str, int] = field(default_factory=dict)
    duration_ms: dict[str, int] = field(default_factory=dict)

    def count(self, status: JobStatus | str) -> int:
        return self.counts.get(JobStatus(status).value, 0)

    @property
    def total_processed(self) -> int:
        return sum(self.count(s) for s in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.DEAD))

    def average_duration_ms(self, status: JobStatus | str = JobStatus.COMPLETED) -> float | None:
        """Mean run time of jobs that ended in *status*, or ``None`` if there were none."""
        status = JobStatus(status)
        count = self.count(status)
        if not count:
            return None
        return self.duration_ms.get(status.value, 0) / count

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "job_counts": dict(self.counts),
            "total_processed": self.total_processed,
            "average_latency_ms": self.average_duration_ms(),
            "total_duration_ms": dict(self.duration_ms),
        }


@dataclass
class JobQuery:
    """Filters for :meth:`JobQueue.list_jobs`. Every set filter must match."""

    status: JobStatus | None = None
    queue: str | None = None
    job_type: str | None = None
    tags: list[str] = field(default_factory=list)
    created_after: datetime | None = None
    created_before: datetime | None = None
    worker_id: str | None = None
    offset: int = 0
    limit: int | None = None

    def with_status(self, status: JobStatus | str) -> "JobQuery":
        self.status = JobStatus(status)
        return self

    def with_queue(self, queue: str) -> "JobQuery":
        self.queue = queue
        return self

    def with_job_type(self, job_type: str) -> "JobQuery":
        self.job_type = job_type
        return self

    def with_tag(self, tag: str) -> "JobQuery":
        self.tags.append(tag)
        return self

    def with_limit(self, limit: int, offset: int = 0) -> "JobQuery":
        self.limit = limit
        self.offset = offset
        return self

    def matches(self, job: Job) -> bool:
        if self.status is not None and job.status != self.status:
            return False
        if self.queue is not None and job.queue != self.queue:
            return False
        if self.job_type is not None and job.job_type != self.job_type:
            return False
        if self.tags and not all(tag in job.tags for tag in self.tags):
            return False
        if self.created_after is not None and job.created_at < ensure_utc(self.created_after):
            return False
        if self.created_before is not None and job.created_at > ensure_utc(self.created_before):
            return False
        if self.worker_id is not None and job.worker_id != self.worker_id:
            return False
        return True
