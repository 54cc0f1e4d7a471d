"""Fixtures for CLI tests: every command talks to one in-memory Redis."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def fake_store(redis_client):
    with patch("jobspine.cli.utils.create_redis_client", return_value=redis_client):
        yield redis_client


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("jobspine.cli.app.configure_logging") as configure:
        yield configure
