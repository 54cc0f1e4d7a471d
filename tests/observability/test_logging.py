"""Tests for structured logging configuration."""

import json
import logging

import pytest
import structlog

from jobspine.observability import logging as jobspine_logging
from jobspine.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    """Undo global logging configuration after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setattr(jobspine_logging, "_configured", False)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("jobspine").setLevel(logging.NOTSET)
    clear_context()
    structlog.reset_defaults()


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line[line.index("{"):]) for line in text.splitlines() if "{" in line]


class TestConfigureLogging:
    def test_marks_configured(self):
        assert jobspine_logging._configured is False
        configure_logging(level="WARNING", force=True)
        assert jobspine_logging._configured is True
        assert logging.getLogger("jobspine").level == logging.WARNING

    def test_second_call_is_noop(self):
        configure_logging(level="ERROR")
        configure_logging(level="DEBUG")
        assert logging.getLogger("jobspine").level == logging.ERROR

    def test_force_reconfigures(self):
        configure_logging(level="ERROR")
        configure_logging(level="DEBUG", force=True)
        assert logging.getLogger("jobspine").level == logging.DEBUG

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("JOBSPINE_LOG_LEVEL", "debug")
        configure_logging()
        assert logging.getLogger("jobspine").level == logging.DEBUG

    def test_json_output(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        get_logger("jobspine.test").info("scheduler_tick", promoted=3)

        events = _json_lines(capsys.readouterr().err)
        assert len(events) == 1
        event = events[0]
        assert event["event"] == "scheduler_tick"
        assert event["promoted"] == 3
        assert event["level"] == "info"
        assert event["logger"] == "jobspine.test"
        assert "timestamp" in event

    def test_level_filters_events(self, capsys):
        configure_logging(level="WARNING", format="json", force=True)
        get_logger("jobspine.test").info("hidden")
        assert _json_lines(capsys.readouterr().err) == []

    def test_bound_context_is_merged(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        bind_context(instance_id="sched-1")
        get_logger("jobspine.test").info("scheduler_started")

        event = _json_lines(capsys.readouterr().err)[0]
        assert event["instance_id"] == "sched-1"

        clear_context()
        get_logger("jobspine.test").info("scheduler_stopped")
        assert "instance_id" not in _json_lines(capsys.readouterr().err)[0]

    def test_library_loggers_routed(self, capsys):
        configure_logging(level="INFO", format="console", force=True)
        logging.getLogger("jobspine.jobs.queue").info("Cleared queue default")
        assert "Cleared queue default" in capsys.readouterr().err
