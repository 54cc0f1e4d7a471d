"""
Shared pytest fixtures and configuration for jobspine tests.

Every store-backed test runs against ``fakeredis``; each test gets its own
in-memory server so no state leaks between tests.
"""

from collections.abc import Generator
from pathlib import Path

import fakeredis
import pytest

from jobspine.core.config import clear_settings_cache


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests without explicit markers as unit tests."""
    for item in items:
        test_path = item.path.relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Settings are cached per process; reset around every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """A client on a fresh in-memory server (bytes responses, like production)."""
    return fakeredis.FakeRedis(server=redis_server)
