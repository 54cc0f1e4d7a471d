"""Tests for the dead-letter queue."""

import pytest

from jobspine.core.errors import DeserializationError
from jobspine.jobs.dead_letter import DeadLetter, DeadLetterQueue
from jobspine.jobs.models import Job


@pytest.fixture
def dlq(redis_client) -> DeadLetterQueue:
    return DeadLetterQueue(redis_client, "test/dead_letters", max_size=3)


class TestDeadLetterQueue:
    def test_push_and_list_newest_first(self, dlq):
        first = Job.create("a")
        second = Job.create("b")
        dlq.push(first, "one")
        dlq.push(second, "two")

        entries = dlq.list()
        assert [e.job.id for e in entries] == [second.id, first.id]
        assert [e.error for e in entries] == ["two", "one"]
        assert len(dlq) == 2

    def test_error_defaults_to_last_error(self, dlq):
        job = Job.create("a")
        job.mark_started()
        job.mark_failed("timeout")
        entry = dlq.push(job)
        assert entry.error == "timeout"
        assert entry.attempts == 1

    def test_bounded(self, dlq):
        jobs = [Job.create(f"job{n}") for n in range(5)]
        for job in jobs:
            dlq.push(job)
        assert len(dlq) == 3
        assert [e.job.job_type for e in dlq.list()] == ["job4", "job3", "job2"]

    def test_list_limit(self, dlq):
        for n in range(3):
            dlq.push(Job.create(f"job{n}"))
        assert len(dlq.list(limit=2)) == 2

    def test_clear(self, dlq):
        dlq.push(Job.create("a"))
        dlq.push(Job.create("b"))
        assert dlq.clear() == 2
        assert dlq.is_empty()

    def test_rejects_zero_size(self, redis_client):
        with pytest.raises(ValueError):
            DeadLetterQueue(redis_client, "k", max_size=0)


def test_malformed_entry():
    with pytest.raises(DeserializationError):
        DeadLetter.from_json(b'{"id": "x"}')
