"""Fixtures for queue and scheduler tests."""

import pytest

from jobspine.jobs.queue import JobQueue
from jobspine.jobs.retry import ConstantBackoff
from jobspine.jobs.scheduler import JobScheduler, SchedulerConfig


@pytest.fixture
def queue(redis_client) -> JobQueue:
    return JobQueue(redis_client, "default", retry_strategy=ConstantBackoff(max_retries=2, delay=30.0))


@pytest.fixture
def scheduler(redis_client, queue) -> JobScheduler:
    return JobScheduler(
        redis_client,
        queue,
        config=SchedulerConfig(check_interval_seconds=0.05, max_scheduled_jobs=10, max_cron_jobs=3),
    )
