"""
Job queue and scheduler.

Usage:
    from jobspine.jobs import Job, JobPriority, JobQueue, JobScheduler

    queue = JobQueue(client, "default")
    queue.enqueue(Job.create("send_email", {"to": "a@example.com"}, priority=JobPriority.HIGH))

    scheduler = JobScheduler(client, queue)
    scheduler.cron("*/15 * * * *", Job.create("sync_inventory"))
    scheduler.start()
"""

from jobspine.jobs.cron import is_valid_cron_expression, next_occurrence, validate_cron_expression
from jobspine.jobs.dead_letter import DeadLetter, DeadLetterQueue
from jobspine.jobs.lock_manager import LockManager
from jobspine.jobs.models import (
    CronJob,
    CronJobInfo,
    Job,
    JobMetrics,
    JobPriority,
    JobQuery,
    JobStatus,
    QueueStats,
)
from jobspine.jobs.queue import JobQueue
from jobspine.jobs.retry import ConstantBackoff, ExponentialBackoff, NoRetry, RetryStrategy
from jobspine.jobs.scheduler import (
    JobScheduler,
    SchedulerConfig,
    SchedulerHealth,
    SchedulerStats,
    TickResult,
)

__all__ = [
    "ConstantBackoff",
    "CronJob",
    "CronJobInfo",
    "DeadLetter",
    "DeadLetterQueue",
    "ExponentialBackoff",
    "Job",
    "JobMetrics",
    "JobPriority",
    "JobQuery",
    "JobQueue",
    "JobScheduler",
    "JobStatus",
    "LockManager",
    "NoRetry",
    "QueueStats",
    "RetryStrategy",
    "SchedulerConfig",
    "SchedulerHealth",
    "SchedulerStats",
    "TickResult",
    "is_valid_cron_expression",
    "next_occurrence",
    "validate_cron_expression",
]
