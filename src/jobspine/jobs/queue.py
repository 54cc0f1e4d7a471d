"""Store-backed priority job queue.

Manifesto:
    Producers must be able to hand off work and forget about it; workers
    must never claim the same job twice. Per-priority Redis lists give
    O(1) push/pop with deterministic tier ordering, and ``RPOP``/``BRPOP``
    atomicity gives at-most-one claim per job id without locks. Deferred
    work lives in a single sorted set scored by due time.

Tags:
    jobspine, queue, redis, priority, delayed-jobs

Key layout (``ns = jobs:queue:{name}``)::

    {ns}/job:{id}            job record (JSON, TTL)
    {ns}/queue:high          ready list   ─┐
    {ns}/queue:normal        ready list    ├─ LPUSH in, RPOP/BRPOP out (FIFO)
    {ns}/queue:low           ready list   ─┘
    {ns}/scheduled           delayed set, score = due unix timestamp
    {ns}/status_counts       hash: status → count
    {ns}/stats               hash: enqueued → lifetime count
    {ns}/metrics             hash: terminal status → count, duration_ms:{status} → total ms
    {ns}/dead_letters        list of dead letters (bounded)

Job flow::

    enqueue ──┬── scheduled_for set ──► {ns}/scheduled ──promote──┐
              └── immediate ───────────────────────────────────────┴─► {ns}/queue:{priority}
                                                                          │
    dequeue ◄─────────────── RPOP high → normal → low ◄───────────────────┘
       │
       └─► status RUNNING ─► update_job_status ─► COMPLETED | FAILED ─► retry_job ─► delayed | DEAD
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta

import redis

from jobspine.core.errors import JobSpineError, StoreError, ValidationError
from jobspine.core.result import Err, Ok, Result
from jobspine.jobs.dead_letter import DEFAULT_MAX_SIZE, DeadLetterQueue
from jobspine.jobs.models import (
    Job,
    JobPriority,
    JobMetrics,
    JobQuery,
    JobStatus,
    QueueStats,
    ensure_utc,
    utcnow,
)
from jobspine.jobs.retry import ExponentialBackoff, RetryStrategy
from jobspine.jobs.store import decode, store_operation

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 86400
DEFAULT_SCHEDULED_BATCH_SIZE = 100
_SCAN_CHUNK = 500


class JobQueue:
    """Priority job queue in a Redis namespace.

    Example:
        >>> queue = JobQueue(redis.from_url("redis://localhost:6379/0"), "emails")
        >>> queue.enqueue(Job.create("send_email", {"to": "a@example.com"}))
        >>> match queue.dequeue(timeout=5, worker_id="worker-1"):
        ...     case Ok(None):
        ...         pass  # nothing to do
        ...     case Ok(job):
        ...         handle(job)
        ...         queue.update_job_status(job.id, JobStatus.COMPLETED)
        ...     case Err(error):
        ...         log.warning("store unavailable", error=str(error))
    """

    def __init__(
        self,
        client: redis.Redis,
        name: str = "default",
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        scheduled_batch_size: int = DEFAULT_SCHEDULED_BATCH_SIZE,
        retry_strategy: RetryStrategy | None = None,
        dead_letter_max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        if not name:
            raise ValidationError("Queue name must not be empty", field="name", value=name)
        if ttl_seconds < 1:
            raise ValidationError("ttl_seconds must be positive", field="ttl_seconds", value=ttl_seconds)

        self.client = client
        self.name = name
        self.namespace = f"jobs:queue:{name}"
        self.ttl_seconds = ttl_seconds
        self.scheduled_batch_size = scheduled_batch_size
        self.retry_strategy = retry_strategy or ExponentialBackoff()
        self.dead_letters = DeadLetterQueue(
            client, self.key("dead_letters"), max_size=dead_letter_max_size
        )

    # ── Keys ─────────────────────────────────────────────────────

    def key(self, suffix: str) -> str:
        return f"{self.namespace}/{suffix}"

    def job_key(self, job_id: str) -> str:
        return self.key(f"job:{job_id}")

    def priority_key(self, priority: JobPriority | str) -> str:
        return self.key(f"queue:{JobPriority(priority).value}")

    @property
    def scheduled_key(self) -> str:
        return self.key("scheduled")

    @property
    def status_counts_key(self) -> str:
        return self.key("status_counts")

    @property
    def stats_key(self) -> str:
        return self.key("stats")

    @property
    def metrics_key(self) -> str:
        return self.key("metrics")

    def _ready_keys(self) -> list[str]:
        return [self.priority_key(p) for p in JobPriority.ordered()]

    # ── Producer API ─────────────────────────────────────────────

    def enqueue(self, job: Job) -> Job:
        """Persist *job* and make it visible to workers (or defer it).

        The record write, the list/set insert and both counters go out in
        one MULTI/EXEC. Store failures raise :class:`StoreError`; nothing
        is retried here.

        Raises:
            ValidationError: A record with the same id already exists.
        """
        job.queue = self.name
        if job.scheduled_for is not None:
            job.scheduled_for = ensure_utc(job.scheduled_for)
        raw = job.to_json()
        key = self.job_key(job.id)

        with store_operation("enqueue", queue=self.name, job_id=job.id):
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(key)
                        if pipe.exists(key):
                            raise ValidationError(
                                f"Job {job.id} already exists in {self.name}",
                                field="id",
                                value=job.id,
                            )
                        pipe.multi()
                        pipe.setex(key, self.ttl_seconds, raw)
                        if job.scheduled_for is not None:
                            pipe.zadd(self.scheduled_key, {job.id: job.scheduled_for.timestamp()})
                        else:
                            pipe.lpush(self.priority_key(job.priority), job.id)
                        pipe.hincrby(self.status_counts_key, job.status.value, 1)
                        pipe.hincrby(self.stats_key, "enqueued", 1)
                        pipe.execute()
                        break
                    except redis.WatchError:
                        logger.debug(f"Concurrent write to job {job.id}; retrying enqueue")
                        continue

        if job.scheduled_for is not None:
            logger.debug(f"Deferred job {job.id} ({job.job_type}) until {job.scheduled_for.isoformat()}")
        else:
            logger.debug(f"Enqueued job {job.id} ({job.job_type}) on {self.name}:{job.priority.value}")
        return job

    # ── Consumer API ─────────────────────────────────────────────

    def dequeue(self, timeout: float = 0, *, worker_id: str | None = None) -> Result[Job | None]:
        """Claim the next ready job, highest priority first.

        Args:
            timeout: Seconds to block waiting for work. ``0`` makes a single
                non-blocking pass over the tiers.
            worker_id: Recorded on the claimed job.

        Returns:
            ``Ok(job)`` with the job moved to RUNNING, ``Ok(None)`` when no
            job became available, or ``Err(error)`` when the store failed.
            A store failure stops the pass; lower tiers are not tried. If
            the failure hits after the id was popped, the id is pushed back
            to the consuming end of its list so it is the next one out.
        """
        try:
            for list_key, job_id in self._pop_ids(timeout):
                try:
                    job = self._apply(
                        job_id,
                        lambda j: j.mark_started(worker_id),
                        operation="dequeue",
                    )
                except StoreError:
                    self._return_to_list(list_key, job_id)
                    raise
                if job is not None:
                    logger.debug(f"Dequeued job {job.id} ({job.job_type}) attempt {job.attempt}")
                    return Ok(job)
                logger.warning(f"Skipping job {job_id} on {self.name}: record expired")
        except JobSpineError as e:
            logger.error(f"Dequeue from {self.name} failed: {e}")
            return Err(e)
        return Ok(None)

    def _pop_ids(self, timeout: float) -> Iterator[tuple[str, str]]:
        """Yield ``(list_key, job_id)`` in priority order until the queue is drained or time runs out."""
        ready_keys = self._ready_keys()

        if timeout <= 0:
            for list_key in ready_keys:
                while True:
                    with store_operation("dequeue", queue=self.name, key=list_key):
                        job_id = self.client.rpop(list_key)
                    if job_id is None:
                        break
                    yield list_key, decode(job_id)
            return

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            with store_operation("dequeue", queue=self.name):
                popped = self.client.brpop(ready_keys, timeout=math.ceil(remaining))
            if popped is None:
                return
            yield decode(popped[0]), decode(popped[1])

    def _return_to_list(self, list_key: str, job_id: str) -> None:
        """Put a popped id back where ``RPOP``/``BRPOP`` will take it next."""
        with store_operation("requeue", queue=self.name, job_id=job_id, key=list_key):
            self.client.rpush(list_key, job_id)
        logger.warning(f"Returned job {job_id} to {list_key} after a store failure")

    # ── Records ──────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Job | None:
        with store_operation("get_job", queue=self.name, job_id=job_id):
            raw = self.client.get(self.job_key(job_id))
        if raw is None:
            return None
        return Job.from_json(raw)

    def save_job(self, job: Job) -> Job:
        """Overwrite the stored record and renew its TTL. Counters are untouched."""
        raw = job.to_json()
        with store_operation("save_job", queue=self.name, job_id=job.id):
            self.client.setex(self.job_key(job.id), self.ttl_seconds, raw)
        return job

    def delete_job(self, job_id: str) -> bool:
        """Remove a job record, its list/set entries and its status count."""
        job = self.get_job(job_id)
        if job is None:
            return False

        with store_operation("delete_job", queue=self.name, job_id=job_id):
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(self.job_key(job_id))
            pipe.lrem(self.priority_key(job.priority), 0, job_id)
            pipe.zrem(self.scheduled_key, job_id)
            pipe.hincrby(self.status_counts_key, job.status.value, -1)
            deleted, *_ = pipe.execute()
        return bool(deleted)

    def update_job_status(
        self,
        job_id: str,
        new_status: JobStatus | str,
        *,
        error: str | None = None,
    ) -> Job | None:
        """Transition a job and move its status count, atomically.

        Returns the updated job, or ``None`` when the record does not exist
        (never enqueued, or expired).
        """
        status = JobStatus(new_status)
        job = self._apply(
            job_id,
            lambda j: j.transition_to(status, error=error),
            operation="update_job_status",
        )
        if job is not None:
            logger.debug(f"Job {job_id} → {status.value}")
        return job

    def _apply(
        self,
        job_id: str,
        mutate: Callable[[Job], None],
        *,
        operation: str,
        extra: Callable[[redis.client.Pipeline, Job], None] | None = None,
    ) -> Job | None:
        """Read-modify-write a job record under WATCH.

        The record write and the status-count move (plus any *extra*
        commands) commit in one MULTI/EXEC; a concurrent write to the
        record restarts the cycle.
        """
        key = self.job_key(job_id)
        with store_operation(operation, queue=self.name, job_id=job_id):
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        if raw is None:
                            return None
                        job = Job.from_json(raw)
                        old_status = job.status
                        mutate(job)

                        pipe.multi()
                        pipe.setex(key, self.ttl_seconds, job.to_json())
                        if job.status != old_status:
                            pipe.hincrby(self.status_counts_key, old_status.value, -1)
                            pipe.hincrby(self.status_counts_key, job.status.value, 1)
                            if job.status.is_terminal:
                                self._record_outcome(pipe, job)
                        if extra is not None:
                            extra(pipe, job)
                        pipe.execute()
                        return job
                    except redis.WatchError:
                        logger.debug(f"Concurrent update on job {job_id}; retrying {operation}")
                        continue

    def _record_outcome(self, pipe: redis.client.Pipeline, job: Job) -> None:
        pipe.hincrby(self.metrics_key, job.status.value, 1)
        duration = job.duration
        if duration is not None and job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            pipe.hincrby(
                self.metrics_key,
                f"duration_ms:{job.status.value}",
                max(int(duration.total_seconds() * 1000), 0),
            )

    # ── Delayed jobs ─────────────────────────────────────────────

    def _due_ids(self, now: datetime | None) -> list[str]:
        cutoff = ensure_utc(now or utcnow()).timestamp()
        with store_operation("scan_scheduled", queue=self.name, key=self.scheduled_key):
            ids = self.client.zrangebyscore(
                self.scheduled_key, "-inf", cutoff, start=0, num=self.scheduled_batch_size
            )
        return [decode(job_id) for job_id in ids]

    def get_ready_scheduled_jobs(self, now: datetime | None = None) -> list[Job]:
        """Claim and return due delayed jobs without promoting them.

        Each due id is removed from the delayed set with its own ``ZREM``;
        only ids this caller actually removed are returned, so concurrent
        callers never both receive the same job. The caller owns what it
        gets back.
        """
        ids = self._due_ids(now)
        if not ids:
            return []

        with store_operation("claim_scheduled", queue=self.name, key=self.scheduled_key):
            pipe = self.client.pipeline(transaction=False)
            for job_id in ids:
                pipe.zrem(self.scheduled_key, job_id)
            removed = pipe.execute()

        jobs = []
        for job_id, was_removed in zip(ids, removed):
            if not was_removed:
                continue
            job = self.get_job(job_id)
            if job is None:
                logger.warning(f"Scheduled job {job_id} on {self.name} expired before it was due")
                continue
            jobs.append(job)
        return jobs

    def promote(self, job_id: str) -> Job | None:
        """Move one delayed job onto its priority list now, regardless of due time.

        Returns ``None`` if the id is not in the delayed set (already promoted
        or claimed elsewhere) or the record expired.
        """
        with store_operation("promote", queue=self.name, job_id=job_id):
            claimed = self.client.zrem(self.scheduled_key, job_id)
        if not claimed:
            return None

        def clear_schedule(job: Job) -> None:
            job.scheduled_for = None

        def push(pipe: redis.client.Pipeline, job: Job) -> None:
            pipe.lpush(self.priority_key(job.priority), job.id)

        job = self._apply(job_id, clear_schedule, operation="promote", extra=push)
        if job is None:
            logger.warning(f"Scheduled job {job_id} on {self.name} expired before promotion")
        return job

    def promote_due_jobs(self, now: datetime | None = None) -> list[Job]:
        """Promote up to ``scheduled_batch_size`` due delayed jobs."""
        promoted = []
        for job_id in self._due_ids(now):
            job = self.promote(job_id)
            if job is not None:
                promoted.append(job)
        if promoted:
            logger.info(f"Promoted {len(promoted)} scheduled job(s) on {self.name}")
        return promoted

    # ── Lifecycle helpers ────────────────────────────────────────

    def cancel_job(self, job_id: str) -> Job | None:
        """Cancel a pending or running job. Finished jobs are returned unchanged."""
        job = self.get_job(job_id)
        if job is None or job.status.is_terminal:
            return job

        def cancel(j: Job) -> None:
            if not j.status.is_terminal:
                j.transition_to(JobStatus.CANCELLED)

        def unlink(pipe: redis.client.Pipeline, j: Job) -> None:
            pipe.lrem(self.priority_key(j.priority), 0, j.id)
            pipe.zrem(self.scheduled_key, j.id)

        return self._apply(job_id, cancel, operation="cancel_job", extra=unlink)

    def retry_job(self, job_id: str, strategy: RetryStrategy | None = None) -> Job | None:
        """Re-defer a failed or timed-out job, or dead-letter it.

        The job runs again after ``strategy.next_delay`` if both its own
        ``max_attempts`` and the strategy allow it; otherwise it moves to
        DEAD and is pushed to :attr:`dead_letters`.

        Raises:
            ValidationError: The job is not in a retryable status.
        """
        strategy = strategy or self.retry_strategy
        job = self.get_job(job_id)
        if job is None:
            return None
        if not job.status.is_retryable:
            raise ValidationError(
                f"Job {job_id} is {job.status.value}; only failed or timed-out jobs can be retried",
                field="status",
                value=job.status.value,
            )

        retry_index = max(job.attempt - 1, 0)
        if job.can_retry() and strategy.should_retry(retry_index, job.last_error):
            run_at = utcnow() + timedelta(seconds=strategy.next_delay(retry_index))

            def reschedule(j: Job) -> None:
                j.transition_to(JobStatus.PENDING)
                j.scheduled_for = run_at
                j.worker_id = None

            def defer(pipe: redis.client.Pipeline, j: Job) -> None:
                pipe.zadd(self.scheduled_key, {j.id: run_at.timestamp()})

            retried = self._apply(job_id, reschedule, operation="retry_job", extra=defer)
            if retried is not None:
                logger.info(
                    f"Retrying job {job_id} ({retried.job_type}) at {run_at.isoformat()} "
                    f"after attempt {retried.attempt}/{retried.max_attempts}"
                )
            return retried

        dead = self._apply(job_id, lambda j: j.mark_dead(), operation="retry_job")
        if dead is not None:
            self.dead_letters.push(dead)
        return dead

    # ── Administration ───────────────────────────────────────────

    def _iter_job_keys(self) -> Iterator[bytes]:
        yield from self.client.scan_iter(match=self.job_key("*"), count=_SCAN_CHUNK)

    def list_jobs(self, query: JobQuery | None = None) -> list[Job]:
        """Jobs matching *query*, oldest first.

        Walks every job key with ``SCAN``; meant for administration, not
        for hot paths. A malformed record raises :class:`DeserializationError`.
        """
        query = query or JobQuery()
        jobs: list[Job] = []

        with store_operation("list_jobs", queue=self.name):
            keys = list(self._iter_job_keys())
            for start in range(0, len(keys), _SCAN_CHUNK):
                chunk = keys[start:start + _SCAN_CHUNK]
                for raw in self.client.mget(chunk):
                    if raw is None:
                        continue
                    job = Job.from_json(raw)
                    if query.matches(job):
                        jobs.append(job)

        jobs.sort(key=lambda j: j.created_at)
        end = None if query.limit is None else query.offset + query.limit
        return jobs[query.offset:end]

    def clear(self) -> int:
        """Delete every record, list, set and counter of this queue.

        Returns:
            Number of job records deleted.
        """
        deleted = 0
        with store_operation("clear", queue=self.name):
            keys = list(self._iter_job_keys())
            for start in range(0, len(keys), _SCAN_CHUNK):
                deleted += self.client.delete(*keys[start:start + _SCAN_CHUNK])
            self.client.delete(
                *self._ready_keys(),
                self.scheduled_key,
                self.status_counts_key,
                self.stats_key,
                self.metrics_key,
                self.dead_letters.key,
            )
        logger.info(f"Cleared queue {self.name}: {deleted} job record(s) deleted")
        return deleted

    def stats(self) -> QueueStats:
        """Compute queue statistics from list lengths and counter hashes."""
        priorities = JobPriority.ordered()
        with store_operation("stats", queue=self.name):
            pipe = self.client.pipeline(transaction=False)
            for priority in priorities:
                pipe.llen(self.priority_key(priority))
            pipe.zcard(self.scheduled_key)
            pipe.hgetall(self.status_counts_key)
            pipe.hget(self.stats_key, "enqueued")
            *depths, scheduled, raw_counts, enqueued = pipe.execute()

        depth_by_priority = {p: int(n) for p, n in zip(priorities, depths)}
        return QueueStats(
            name=self.name,
            total_pending=sum(depth_by_priority.values()),
            depth_by_priority=depth_by_priority,
            status_counts={decode(k): int(v) for k, v in raw_counts.items()},
            scheduled=int(scheduled),
            enqueued_total=int(enqueued or 0),
            is_healthy=True,
        )

    def metrics(self) -> JobMetrics:
        """Lifetime terminal-status counts and run durations for this queue."""
        with store_operation("metrics", queue=self.name, key=self.metrics_key):
            raw = self.client.hgetall(self.metrics_key)

        counts: dict[str, int] = {}
        duration_ms: dict[str, int] = {}
        for field_name, value in raw.items():
            name = decode(field_name)
            if name.startswith("duration_ms:"):
                duration_ms[name.removeprefix("duration_ms:")] = int(value)
            else:
                counts[name] = int(value)
        return JobMetrics(name=self.name, counts=counts, duration_ms=duration_ms)
