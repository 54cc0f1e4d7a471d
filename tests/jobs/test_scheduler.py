"""Tests for jobspine.jobs.scheduler.JobScheduler."""

import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from jobspine.core.errors import ScheduleError, ValidationError
from jobspine.core.result import Ok
from jobspine.jobs.models import Job, JobStatus, utcnow
from jobspine.jobs.scheduler import JobScheduler, SchedulerConfig


class TestSchedule:
    def test_schedule_defers_through_queue(self, scheduler, queue):
        job = Job.create("reminder")
        at = utcnow() + timedelta(hours=1)
        scheduler.schedule(job, at)

        assert queue.stats().scheduled == 1
        assert queue.get_job(job.id).scheduled_for == at
        assert queue.dequeue() == Ok(None)

    def test_capacity(self, scheduler):
        at = utcnow() + timedelta(hours=1)
        for _ in range(scheduler.config.max_scheduled_jobs):
            scheduler.schedule(Job.create("a"), at)
        with pytest.raises(ScheduleError):
            scheduler.schedule(Job.create("a"), at)

    def test_execute_scheduled_job(self, scheduler, queue):
        job = scheduler.schedule(Job.create("a"), utcnow() + timedelta(days=1))
        assert scheduler.execute_scheduled_job(job.id).id == job.id
        assert queue.dequeue().unwrap().id == job.id
        assert scheduler.execute_scheduled_job(job.id) is None


class TestTick:
    def test_run_once_promotes_due_jobs(self, scheduler, queue):
        job = queue.enqueue(Job.create("a", scheduled_for=utcnow() - timedelta(seconds=1)))

        result = scheduler.run_once()
        assert result.acquired
        assert result.promoted == 1
        assert queue.dequeue().unwrap().id == job.id
        assert scheduler.stats.jobs_promoted == 1
        assert scheduler.stats.tick_count == 1

    def test_run_once_releases_lease(self, scheduler):
        scheduler.run_once()
        assert not scheduler.lock_manager.is_locked()

    def test_lease_is_exclusive_across_schedulers(self, redis_client, scheduler, queue):
        other = JobScheduler(redis_client, queue)
        queue.enqueue(Job.create("a", scheduled_for=utcnow() - timedelta(seconds=1)))

        assert other.lock_manager.acquire()
        result = scheduler.run_once()
        assert result.acquired is False
        assert scheduler.stats.ticks_skipped == 1
        assert queue.stats().scheduled == 1

        other.lock_manager.release()
        assert scheduler.run_once().promoted == 1

    def test_start_and_stop(self, scheduler, queue):
        job = queue.enqueue(Job.create("a", scheduled_for=utcnow() - timedelta(seconds=1)))
        scheduler.start()
        try:
            assert scheduler.is_running
            deadline = time.monotonic() + 5
            while queue.stats().scheduled and time.monotonic() < deadline:
                time.sleep(0.02)
        finally:
            scheduler.stop()
        assert not scheduler.is_running
        assert queue.dequeue().unwrap().id == job.id
        assert scheduler.health().stats.tick_count >= 1

    def test_start_when_disabled(self, redis_client, queue):
        scheduler = JobScheduler(redis_client, queue, config=SchedulerConfig(enabled=False))
        with pytest.raises(ScheduleError):
            scheduler.start()

    def test_loop_survives_failed_tick(self, scheduler):
        calls = []

        def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        scheduler.process_due_jobs = flaky
        scheduler.start()
        try:
            deadline = time.monotonic() + 5
            while scheduler.stats.tick_count < 2 and time.monotonic() < deadline:
                time.sleep(0.02)
            assert scheduler.is_running
        finally:
            scheduler.stop()
        assert scheduler.stats.failures == 1
        assert scheduler.stats.last_error == "boom"


class TestCron:
    def test_register(self, scheduler):
        template = Job.create("report", {"day": "today"})
        cron_job = scheduler.cron("*/5 * * * *", template)

        assert cron_job.id == template.id
        assert cron_job.next_run > utcnow()
        assert cron_job.next_run.minute % 5 == 0
        assert scheduler.get_cron_job(template.id) == cron_job
        infos = scheduler.get_cron_jobs()
        assert [i.id for i in infos] == [template.id]
        assert infos[0].job_type == "report"

    def test_invalid_expression(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.cron("* * *", Job.create("a"))
        assert scheduler.get_cron_jobs() == []

    def test_invalid_timezone(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.cron("* * * * *", Job.create("a"), timezone="Nowhere/City")

    def test_cron_disabled(self, redis_client, queue):
        scheduler = JobScheduler(redis_client, queue, config=SchedulerConfig(enable_cron=False))
        with pytest.raises(ScheduleError):
            scheduler.cron("* * * * *", Job.create("a"))

    def test_capacity(self, scheduler):
        templates = [Job.create("a") for _ in range(scheduler.config.max_cron_jobs)]
        for template in templates:
            scheduler.cron("* * * * *", template)
        with pytest.raises(ValidationError):
            scheduler.cron("* * * * *", Job.create("a"))
        scheduler.cron("0 * * * *", templates[0])
        assert scheduler.get_cron_job(templates[0].id).schedule == "0 * * * *"

    def test_fires_due_cron_job(self, scheduler, queue):
        template = Job.create("report", {"x": 1}, metadata={"owner": "ops"})
        scheduler.cron("* * * * *", template)
        later = utcnow() + timedelta(minutes=2)

        assert scheduler.process_cron_jobs(now=later) == 1
        job = queue.dequeue().unwrap()
        assert job.id != template.id
        assert job.job_type == "report"
        assert job.payload == {"x": 1}
        assert job.status == JobStatus.RUNNING
        assert job.metadata == {"owner": "ops", "cron_id": template.id}

        cron_job = scheduler.get_cron_job(template.id)
        assert cron_job.run_count == 1
        assert cron_job.last_run == later
        assert cron_job.next_run > later
        assert scheduler.process_cron_jobs(now=later) == 0

    def test_not_due_yet(self, scheduler, queue):
        scheduler.cron("* * * * *", Job.create("a"))
        assert scheduler.process_cron_jobs(now=utcnow() - timedelta(minutes=5)) == 0
        assert queue.dequeue() == Ok(None)

    def test_custom_submitter(self, redis_client, queue):
        submitter = MagicMock()
        scheduler = JobScheduler(redis_client, queue, submitter=submitter)
        scheduler.cron("* * * * *", Job.create("a"))

        scheduler.process_cron_jobs(now=utcnow() + timedelta(minutes=2))
        submitter.assert_called_once()
        assert submitter.call_args.args[0].job_type == "a"
        assert queue.stats().enqueued_total == 0

    def test_failed_submit_is_retried_next_tick(self, redis_client, queue):
        submitter = MagicMock(side_effect=[RuntimeError("broker down"), None])
        scheduler = JobScheduler(redis_client, queue, submitter=submitter)
        template = Job.create("a")
        before = scheduler.cron("* * * * *", template)
        later = utcnow() + timedelta(minutes=2)

        assert scheduler.process_cron_jobs(now=later) == 0
        assert scheduler.stats.failures == 1
        assert scheduler.get_cron_job(template.id).next_run == before.next_run

        assert scheduler.process_cron_jobs(now=later) == 1
        assert submitter.call_count == 2

    def test_stale_index_entry_is_removed(self, scheduler, redis_client):
        template = Job.create("a")
        scheduler.cron("* * * * *", template)
        redis_client.delete(scheduler.cron_key(template.id))

        assert scheduler.process_cron_jobs(now=utcnow() + timedelta(minutes=2)) == 0
        assert not redis_client.sismember(scheduler.cron_index_key, template.id)

    def test_disable_during_firing_is_kept(self, scheduler, queue):
        """A disable that lands while the job is being submitted is not undone."""
        template = Job.create("a")
        scheduler.cron("* * * * *", template)

        def submit_then_disable(job):
            queue.enqueue(job)
            scheduler.disable_cron(job.metadata["cron_id"])

        scheduler.submitter = submit_then_disable
        later = utcnow() + timedelta(minutes=2)
        assert scheduler.process_cron_jobs(now=later) == 1

        cron_job = scheduler.get_cron_job(template.id)
        assert cron_job.enabled is False
        assert cron_job.run_count == 1
        assert cron_job.last_run == later
        assert scheduler.process_cron_jobs(now=later + timedelta(minutes=5)) == 0

    def test_remove_during_firing_is_kept(self, scheduler, queue, redis_client):
        """A cron job removed while its job is being submitted stays removed."""
        template = Job.create("a")
        scheduler.cron("* * * * *", template)

        def submit_then_remove(job):
            queue.enqueue(job)
            scheduler.remove_cron(job.metadata["cron_id"])

        scheduler.submitter = submit_then_remove
        assert scheduler.process_cron_jobs(now=utcnow() + timedelta(minutes=2)) == 1

        assert not redis_client.exists(scheduler.cron_key(template.id))
        assert scheduler.get_cron_job(template.id) is None
        assert scheduler.get_cron_jobs() == []
        assert queue.stats().total_pending == 1

    def test_disable_and_enable(self, scheduler, queue):
        template = Job.create("a")
        scheduler.cron("* * * * *", template)

        assert scheduler.disable_cron(template.id) is True
        assert scheduler.get_cron_job(template.id).enabled is False
        assert scheduler.process_cron_jobs(now=utcnow() + timedelta(minutes=2)) == 0

        assert scheduler.enable_cron(template.id) is True
        cron_job = scheduler.get_cron_job(template.id)
        assert cron_job.enabled
        assert cron_job.next_run > utcnow()

    def test_enable_missing(self, scheduler):
        assert scheduler.enable_cron("missing") is False
        assert scheduler.disable_cron("missing") is False

    def test_remove(self, scheduler):
        template = Job.create("a")
        scheduler.cron("* * * * *", template)
        assert scheduler.remove_cron(template.id) is True
        assert scheduler.get_cron_jobs() == []
        assert scheduler.remove_cron(template.id) is False

    def test_cron_fires_from_tick(self, scheduler, queue, redis_client):
        template = Job.create("a")
        scheduler.cron("* * * * *", template)
        cron_job = scheduler.get_cron_job(template.id)
        cron_job.next_run = utcnow() - timedelta(seconds=1)
        redis_client.set(scheduler.cron_key(template.id), cron_job.to_json())

        assert scheduler.run_once().cron_fired == 1
        assert queue.stats().total_pending == 1


class TestHealth:
    def test_health(self, scheduler):
        scheduler.cron("* * * * *", Job.create("a"))
        health = scheduler.health()
        assert health.running is False
        assert health.cron_jobs == 1
        assert health.lock_holder is None
        assert health.to_dict()["instance_id"] == scheduler.lock_manager.instance_id

    def test_reset_stats(self, scheduler):
        scheduler.run_once()
        scheduler.reset_stats()
        assert scheduler.stats.tick_count == 0
