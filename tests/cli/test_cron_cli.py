"""Tests for ``jobspine cron`` commands."""

import json

from jobspine.cli.app import app
from jobspine.jobs.queue import JobQueue
from jobspine.jobs.scheduler import JobScheduler


def scheduler_for(client) -> JobScheduler:
    return JobScheduler(client, JobQueue(client))


class TestCronCommands:
    def test_add_and_list(self, runner, fake_store):
        result = runner.invoke(app, ["cron", "add", "0 9 * * MON-FRI", "daily_report", "--payload", '{"x": 1}'])
        assert result.exit_code == 0
        assert "Registered" in result.output

        infos = scheduler_for(fake_store).get_cron_jobs()
        assert len(infos) == 1
        assert infos[0].schedule == "0 9 * * MON-FRI"
        assert infos[0].job_type == "daily_report"

        result = runner.invoke(app, ["cron", "list", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["id"] == infos[0].id

    def test_add_invalid_expression(self, runner, fake_store):
        result = runner.invoke(app, ["cron", "add", "* * *", "a"])
        assert result.exit_code == 1
        assert "VALIDATION" in result.output
        assert scheduler_for(fake_store).get_cron_jobs() == []

    def test_add_with_timezone(self, runner, fake_store):
        result = runner.invoke(app, ["cron", "add", "0 9 * * *", "a", "--tz", "Europe/Berlin"])
        assert result.exit_code == 0
        cron_id = scheduler_for(fake_store).get_cron_jobs()[0].id
        assert scheduler_for(fake_store).get_cron_job(cron_id).timezone == "Europe/Berlin"

    def test_disable_enable_remove(self, runner, fake_store):
        runner.invoke(app, ["cron", "add", "* * * * *", "a"])
        cron_id = scheduler_for(fake_store).get_cron_jobs()[0].id

        assert runner.invoke(app, ["cron", "disable", cron_id]).exit_code == 0
        assert scheduler_for(fake_store).get_cron_job(cron_id).enabled is False
        assert runner.invoke(app, ["cron", "enable", cron_id]).exit_code == 0
        assert scheduler_for(fake_store).get_cron_job(cron_id).enabled is True
        assert runner.invoke(app, ["cron", "remove", cron_id]).exit_code == 0
        assert scheduler_for(fake_store).get_cron_jobs() == []

    def test_unknown_id(self, runner):
        for command in ("enable", "disable", "remove"):
            result = runner.invoke(app, ["cron", command, "missing"])
            assert result.exit_code == 1
            assert "Cron job not found" in result.output

    def test_list_empty(self, runner):
        result = runner.invoke(app, ["cron", "list"])
        assert result.exit_code == 0
        assert "No items." in result.output


class TestNext:
    def test_next_json(self, runner):
        result = runner.invoke(app, ["cron", "next", "0 * * * *", "--count", "3", "--json"])
        assert result.exit_code == 0
        runs = json.loads(result.stdout)
        assert len(runs) == 3
        assert all(run.endswith(":00:00+00:00") for run in runs)

    def test_next_invalid(self, runner):
        result = runner.invoke(app, ["cron", "next", "not a cron"])
        assert result.exit_code == 1
