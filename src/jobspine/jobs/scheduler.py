"""Job scheduler - promotes delayed jobs and fires cron templates.

Manifesto:
    The queue owns the only delayed-job set; the scheduler is the poller
    that moves due entries onto the ready lists and turns recurring
    templates into fresh jobs. Each tick runs under a store lease so any
    number of scheduler processes can run against one store, and a failed
    tick is logged and survived rather than ending the loop.

Tags:
    jobspine, scheduling, cron, beat-as-poller, lease

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB SCHEDULER                                                                │
│                                                                               │
│   start() ──► daemon thread                                                   │
│                 while not stop_event.is_set():                                │
│                     run_once()  ──────────────────────────────┐               │
│                     stop_event.wait(check_interval)           │               │
│                                                               ▼               │
│   run_once()                                                                  │
│      ├── lock_manager.acquire()        (skip tick if another instance has it) │
│      ├── process_due_jobs()            queue.promote_due_jobs()               │
│      ├── process_cron_jobs()           template.spawn() ──► submitter(job)    │
│      └── lock_manager.release()                                               │
│                                                                               │
│   Producer API:  schedule(job, at) · cron(expr, template)                     │
│   Admin API:     enable_cron · disable_cron · remove_cron · get_cron_jobs     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import redis

from jobspine.core.errors import ScheduleError, ValidationError
from jobspine.jobs import cron as cron_eval
from jobspine.jobs.lock_manager import LockManager
from jobspine.jobs.models import CronJob, CronJobInfo, Job, ensure_utc, to_iso, utcnow
from jobspine.jobs.queue import JobQueue
from jobspine.jobs.store import decode, store_operation

if TYPE_CHECKING:
    from jobspine.core.config.settings import JobSpineSettings

logger = logging.getLogger(__name__)

Submitter = Callable[[Job], Any]


@dataclass
class SchedulerConfig:
    """Scheduler behaviour."""

    enabled: bool = True
    check_interval_seconds: float = 60.0
    max_scheduled_jobs: int = 10000
    timezone: str = "UTC"
    enable_cron: bool = True
    max_cron_jobs: int = 1000
    lock_ttl_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: JobSpineSettings) -> SchedulerConfig:
        return cls(
            enabled=settings.scheduler_enabled,
            check_interval_seconds=settings.scheduler_interval_seconds,
            timezone=settings.scheduler_timezone,
            enable_cron=settings.scheduler_cron_enabled,
            max_cron_jobs=settings.scheduler_max_cron_jobs,
            lock_ttl_seconds=settings.scheduler_lock_ttl_seconds,
        )

    @classmethod
    def development(cls) -> SchedulerConfig:
        """Fast ticks for local work."""
        return cls(check_interval_seconds=5.0, max_scheduled_jobs=1000, max_cron_jobs=100)

    @classmethod
    def production(cls) -> SchedulerConfig:
        return cls(check_interval_seconds=60.0, max_scheduled_jobs=100000, max_cron_jobs=1000)


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    tick_count: int = 0
    ticks_skipped: int = 0
    jobs_promoted: int = 0
    cron_fired: int = 0
    failures: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "ticks_skipped": self.ticks_skipped,
            "jobs_promoted": self.jobs_promoted,
            "cron_fired": self.cron_fired,
            "failures": self.failures,
            "last_tick": to_iso(self.last_tick),
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler."""

    healthy: bool
    running: bool
    instance_id: str
    cron_jobs: int = 0
    lock_holder: str | None = None
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "running": self.running,
            "instance_id": self.instance_id,
            "cron_jobs": self.cron_jobs,
            "lock_holder": self.lock_holder,
            "stats": self.stats.to_dict(),
        }


@dataclass
class TickResult:
    """Outcome of one :meth:`JobScheduler.run_once` call."""

    acquired: bool
    promoted: int = 0
    cron_fired: int = 0


class JobScheduler:
    """Polling scheduler for delayed and recurring jobs.

    Example:
        >>> queue = JobQueue(client, "default")
        >>> scheduler = JobScheduler(client, queue)
        >>> scheduler.cron("0 9 * * MON-FRI", Job.create("daily_report"))
        >>> scheduler.schedule(Job.create("reminder"), utcnow() + timedelta(hours=1))
        >>> scheduler.start()
        >>> # ... later ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        client: redis.Redis,
        queue: JobQueue,
        *,
        submitter: Submitter | None = None,
        config: SchedulerConfig | None = None,
        lock_manager: LockManager | None = None,
        key_prefix: str = "scheduler",
    ) -> None:
        """Initialize the scheduler.

        Args:
            client: Redis client for cron records and the tick lease
            queue: Queue that owns delayed jobs
            submitter: Receives each job built from a cron template
                (default: ``queue.enqueue``)
            config: Scheduler behaviour (default: :class:`SchedulerConfig`)
            lock_manager: Tick lease (default: ``{key_prefix}:lock``)
            key_prefix: Namespace for scheduler-global keys
        """
        self.client = client
        self.queue = queue
        self.submitter: Submitter = submitter or queue.enqueue
        self.config = config or SchedulerConfig()
        self.key_prefix = key_prefix
        self.lock_manager = lock_manager or LockManager(
            client,
            key=f"{key_prefix}:lock",
            ttl_seconds=self.config.lock_ttl_seconds,
        )

        self._stats = SchedulerStats()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # === Keys ===

    def cron_key(self, cron_id: str) -> str:
        return f"{self.key_prefix}:cron:{cron_id}"

    @property
    def cron_index_key(self) -> str:
        return f"{self.key_prefix}:cron_jobs"

    # === Lifecycle ===

    def start(self) -> None:
        """Start the tick loop in a daemon thread.

        Raises:
            ScheduleError: The scheduler is disabled in its config.
        """
        if not self.config.enabled:
            raise ScheduleError("Scheduler is disabled")
        if self.is_running:
            logger.warning("JobScheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="jobspine-scheduler")
        self._thread.start()

    def run_forever(self) -> None:
        """Run the tick loop in the calling thread until :meth:`stop`."""
        if not self.config.enabled:
            raise ScheduleError("Scheduler is disabled")
        self._stop_event.clear()
        self._loop()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop. A tick in progress is allowed to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        logger.info(
            f"Scheduler {self.lock_manager.instance_id} started on queue {self.queue.name} "
            f"(interval {self.config.check_interval_seconds}s)"
        )
        while not self._stop_event.is_set():
            try:
                result = self.run_once()
                if result.acquired and (result.promoted or result.cron_fired):
                    logger.info(f"Tick promoted {result.promoted} job(s), fired {result.cron_fired} cron job(s)")
            except Exception as e:
                self._stats.failures += 1
                self._stats.last_error = str(e)
                logger.exception(f"Scheduler tick failed: {e}")
            self._stop_event.wait(self.config.check_interval_seconds)
        logger.info(f"Scheduler {self.lock_manager.instance_id} stopped")

    # === Tick Processing ===

    def run_once(self) -> TickResult:
        """Run a single tick under the lease.

        Returns a result with ``acquired=False`` when another instance held
        the lease. Errors propagate to the caller.
        """
        self._stats.tick_count += 1
        self._stats.last_tick = utcnow()

        with self.lock_manager.hold() as acquired:
            if not acquired:
                self._stats.ticks_skipped += 1
                logger.debug("Tick skipped: lease held by another scheduler")
                return TickResult(acquired=False)

            promoted = self.process_due_jobs()
            fired = self.process_cron_jobs() if self.config.enable_cron else 0
        return TickResult(acquired=True, promoted=promoted, cron_fired=fired)

    def process_due_jobs(self) -> int:
        """Promote due delayed jobs onto their ready lists."""
        promoted = len(self.queue.promote_due_jobs())
        self._stats.jobs_promoted += promoted
        return promoted

    def execute_scheduled_job(self, job_id: str) -> Job | None:
        """Promote one delayed job immediately."""
        job = self.queue.promote(job_id)
        if job is not None:
            self._stats.jobs_promoted += 1
            logger.info(f"Executed scheduled job {job_id} ahead of time")
        return job

    # === Delayed Jobs ===

    def schedule(self, job: Job, execute_at: datetime) -> Job:
        """Defer *job* until *execute_at* through the queue's delayed set.

        Raises:
            ScheduleError: The delayed set already holds ``max_scheduled_jobs``.
        """
        with store_operation("schedule", queue=self.queue.name, job_id=job.id):
            pending = self.client.zcard(self.queue.scheduled_key)
        if pending >= self.config.max_scheduled_jobs:
            raise ScheduleError(
                f"Scheduled job limit reached ({self.config.max_scheduled_jobs})"
            ).with_context(queue=self.queue.name, job_id=job.id)

        job.scheduled_for = ensure_utc(execute_at)
        self.queue.enqueue(job)
        logger.info(f"Scheduled job {job.id} ({job.job_type}) for {job.scheduled_for.isoformat()}")
        return job

    # === Cron Jobs ===

    def calculate_next_run(self, schedule: str, from_: datetime, timezone: str | None = None) -> datetime:
        return cron_eval.next_occurrence(schedule, from_, timezone or self.config.timezone)

    def cron(self, schedule_expr: str, job_template: Job, *, timezone: str | None = None) -> CronJob:
        """Register *job_template* to fire on *schedule_expr*.

        The cron job id is the template's id; registering the same template
        again replaces the schedule.

        Raises:
            ScheduleError: Cron is disabled in the config.
            ValidationError: Invalid expression or timezone, or the cron job
                limit is reached.
        """
        if not self.config.enable_cron:
            raise ScheduleError("Cron scheduling is disabled")

        tz = timezone or self.config.timezone
        cron_eval.validate_cron_expression(schedule_expr)
        now = utcnow()
        next_run = self.calculate_next_run(schedule_expr, now, tz)

        with store_operation("cron", cron_id=job_template.id):
            pipe = self.client.pipeline(transaction=False)
            pipe.scard(self.cron_index_key)
            pipe.sismember(self.cron_index_key, job_template.id)
            count, exists = pipe.execute()
        if not exists and count >= self.config.max_cron_jobs:
            raise ValidationError(
                f"Cron job limit reached ({self.config.max_cron_jobs})",
                field="max_cron_jobs",
                value=count,
            )

        cron_job = CronJob(
            id=job_template.id,
            schedule=schedule_expr,
            job_data=job_template.to_dict(),
            timezone=tz,
            created_at=now,
            next_run=next_run,
        )
        with store_operation("cron", cron_id=cron_job.id):
            pipe = self.client.pipeline(transaction=True)
            pipe.set(self.cron_key(cron_job.id), cron_job.to_json())
            pipe.sadd(self.cron_index_key, cron_job.id)
            pipe.execute()

        logger.info(
            f"Registered cron job {cron_job.id} ({job_template.job_type}) "
            f"'{schedule_expr}' next run {next_run.isoformat()}"
        )
        return cron_job

    def _cron_ids(self) -> list[str]:
        with store_operation("cron_index", key=self.cron_index_key):
            return sorted(decode(member) for member in self.client.smembers(self.cron_index_key))

    def get_cron_job(self, cron_id: str) -> CronJob | None:
        with store_operation("get_cron_job", cron_id=cron_id):
            raw = self.client.get(self.cron_key(cron_id))
        if raw is None:
            return None
        return CronJob.from_json(raw)

    def _advance_cron(self, cron_id: str, now: datetime) -> CronJob | None:
        """Record a firing on the stored cron job.

        Only ``last_run``, ``run_count`` and ``next_run`` change; a
        concurrent enable/disable is kept. Returns ``None`` without writing
        when the record was removed while the job was being submitted.
        """
        key = self.cron_key(cron_id)
        with store_operation("advance_cron", cron_id=cron_id):
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        if raw is None:
                            return None
                        cron_job = CronJob.from_json(raw)
                        cron_job.last_run = now
                        cron_job.run_count += 1
                        cron_job.next_run = self.calculate_next_run(
                            cron_job.schedule, now, cron_job.timezone
                        )
                        pipe.multi()
                        pipe.set(key, cron_job.to_json())
                        pipe.execute()
                        return cron_job
                    except redis.WatchError:
                        continue

    def process_cron_jobs(self, now: datetime | None = None) -> int:
        """Fire every enabled cron job whose ``next_run`` has passed.

        Index entries whose record is gone are dropped. A firing that fails
        is logged and retried on the next tick.

        Returns:
            Number of jobs handed to the submitter.
        """
        now = ensure_utc(now or utcnow())
        fired = 0

        for cron_id in self._cron_ids():
            cron_job = self.get_cron_job(cron_id)
            if cron_job is None:
                with store_operation("cron_index", cron_id=cron_id):
                    self.client.srem(self.cron_index_key, cron_id)
                logger.warning(f"Removed stale cron index entry {cron_id}")
                continue
            if not cron_job.is_due(now):
                continue

            try:
                template = cron_job.template()
                job = template.spawn(metadata={**template.metadata, "cron_id": cron_id})
                self.submitter(job)
            except Exception as e:
                self._stats.failures += 1
                self._stats.last_error = str(e)
                logger.exception(f"Cron job {cron_id} failed to fire: {e}")
                continue

            fired += 1
            cron_job = self._advance_cron(cron_id, now)
            if cron_job is None:
                logger.info(f"Cron job {cron_id} was removed while firing job {job.id}")
                continue
            logger.info(f"Fired cron job {cron_id} → job {job.id}; next run {cron_job.next_run.isoformat()}")

        self._stats.cron_fired += fired
        return fired

    def _set_cron_enabled(self, cron_id: str, enabled: bool) -> bool:
        key = self.cron_key(cron_id)
        with store_operation("update_cron", cron_id=cron_id):
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        if raw is None:
                            return False
                        cron_job = CronJob.from_json(raw)
                        cron_job.enabled = enabled
                        if enabled:
                            cron_job.next_run = self.calculate_next_run(
                                cron_job.schedule, utcnow(), cron_job.timezone
                            )
                        pipe.multi()
                        pipe.set(key, cron_job.to_json())
                        pipe.execute()
                        break
                    except redis.WatchError:
                        continue
        logger.info(f"{'Enabled' if enabled else 'Disabled'} cron job {cron_id}")
        return True

    def enable_cron(self, cron_id: str) -> bool:
        return self._set_cron_enabled(cron_id, True)

    def disable_cron(self, cron_id: str) -> bool:
        return self._set_cron_enabled(cron_id, False)

    def remove_cron(self, cron_id: str) -> bool:
        with store_operation("remove_cron", cron_id=cron_id):
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(self.cron_key(cron_id))
            pipe.srem(self.cron_index_key, cron_id)
            deleted, _ = pipe.execute()
        if deleted:
            logger.info(f"Removed cron job {cron_id}")
        return bool(deleted)

    def get_cron_jobs(self) -> list[CronJobInfo]:
        infos = []
        for cron_id in self._cron_ids():
            cron_job = self.get_cron_job(cron_id)
            if cron_job is not None:
                infos.append(cron_job.info())
        return infos

    # === Health & Stats ===

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()

    def health(self) -> SchedulerHealth:
        with store_operation("health", key=self.cron_index_key):
            cron_count = int(self.client.scard(self.cron_index_key))
        return SchedulerHealth(
            healthy=self.config.enabled and (self.is_running or self._stats.tick_count > 0),
            running=self.is_running,
            instance_id=self.lock_manager.instance_id,
            cron_jobs=cron_count,
            lock_holder=self.lock_manager.get_lock_holder(),
            stats=self._stats,
        )
