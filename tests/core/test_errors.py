"""Tests for jobspine.core.errors module."""

import redis

from jobspine.core.errors import (
    CronJobNotFoundError,
    DeserializationError,
    ErrorCategory,
    ErrorContext,
    JobNotFoundError,
    JobSpineError,
    ParseError,
    ScheduleError,
    SerializationError,
    StoreError,
    TransientError,
    ValidationError,
)


class TestJobSpineError:
    """Test the base error."""

    def test_defaults(self):
        error = JobSpineError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        cause = redis.ConnectionError("refused")
        error = StoreError("enqueue failed", cause=cause)
        assert error.cause is cause
        assert error.__cause__ is cause

    def test_with_context_sets_known_fields(self):
        error = StoreError("x").with_context(queue="default", job_id="j1", attempt=2)
        assert error.context.queue == "default"
        assert error.context.job_id == "j1"
        assert error.context.metadata == {"attempt": 2}

    def test_to_dict(self):
        error = StoreError("lost", cause=OSError("reset"), retry_after=5).with_context(key="k")
        data = error.to_dict()
        assert data["error_type"] == "StoreError"
        assert data["category"] == "STORE"
        assert data["retryable"] is True
        assert data["retry_after"] == 5
        assert data["context"] == {"key": "k"}
        assert data["cause"] == "reset"

    def test_repr(self):
        assert repr(ScheduleError("off")) == "ScheduleError('off', category=ORCHESTRATION)"


class TestHierarchy:
    """Error families and their retry semantics."""

    def test_store_error_is_transient(self):
        error = StoreError("down")
        assert isinstance(error, TransientError)
        assert error.retryable is True
        assert error.category == ErrorCategory.STORE

    def test_parse_errors_not_retryable(self):
        for cls in (SerializationError, DeserializationError):
            error = cls("bad")
            assert isinstance(error, ParseError)
            assert error.retryable is False
            assert error.category == ErrorCategory.PARSE

    def test_validation_error_fields(self):
        error = ValidationError("bad cron", field="schedule", value="* *")
        data = error.to_dict()
        assert data["field"] == "schedule"
        assert data["value"] == "'* *'"
        assert error.retryable is False

    def test_retryable_override(self):
        assert StoreError("x", retryable=False).retryable is False

    def test_not_found_errors(self):
        job_error = JobNotFoundError("j1")
        assert job_error.job_id == "j1"
        assert job_error.context.job_id == "j1"
        assert job_error.category == ErrorCategory.NOT_FOUND

        cron_error = CronJobNotFoundError("c1")
        assert "c1" in str(cron_error)
        assert cron_error.context.cron_id == "c1"


class TestErrorContext:
    def test_error_context_to_dict_skips_empty(self):
        assert ErrorContext().to_dict() == {}
        assert ErrorContext(cron_id="c", metadata={"n": 1}).to_dict() == {"cron_id": "c", "n": 1}
