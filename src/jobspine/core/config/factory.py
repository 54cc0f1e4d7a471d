"""
Factory functions that create store-backed components from settings.

Each factory takes a :class:`~jobspine.core.config.settings.JobSpineSettings`
so that the CLI, the scheduler process and tests wire things the same way.

Tags:
    jobspine, configuration, factory-pattern, redis
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis

if TYPE_CHECKING:
    from jobspine.jobs.queue import JobQueue
    from jobspine.jobs.scheduler import JobScheduler

    from .settings import JobSpineSettings


def create_redis_client(settings: JobSpineSettings) -> redis.Redis:
    """Create a :class:`redis.Redis` client from *settings.redis_url*.

    Responses are left as bytes; job records are JSON documents that the
    queue decodes itself.
    """
    return redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
    )


def create_job_queue(settings: JobSpineSettings, client: redis.Redis | None = None) -> JobQueue:
    """Create the :class:`~jobspine.jobs.queue.JobQueue` named by *settings.queue_name*."""
    from jobspine.jobs.queue import JobQueue
    from jobspine.jobs.retry import retry_strategy_from_settings

    client = client if client is not None else create_redis_client(settings)
    return JobQueue(
        client,
        settings.queue_name,
        ttl_seconds=settings.job_ttl_seconds,
        scheduled_batch_size=settings.scheduled_batch_size,
        retry_strategy=retry_strategy_from_settings(settings),
        dead_letter_max_size=settings.dead_letter_max_size,
    )


def create_scheduler(settings: JobSpineSettings, queue: JobQueue) -> JobScheduler:
    """Create a :class:`~jobspine.jobs.scheduler.JobScheduler` bound to *queue*."""
    from jobspine.jobs.lock_manager import LockManager
    from jobspine.jobs.scheduler import JobScheduler, SchedulerConfig

    config = SchedulerConfig.from_settings(settings)
    lock_manager = LockManager(
        queue.client,
        key=f"{settings.scheduler_key_prefix}:lock",
        ttl_seconds=settings.scheduler_lock_ttl_seconds,
    )
    return JobScheduler(
        queue.client,
        queue,
        config=config,
        lock_manager=lock_manager,
        key_prefix=settings.scheduler_key_prefix,
    )
