"""Helpers shared by the store-backed components."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis

from jobspine.core.errors import StoreError


@contextmanager
def store_operation(operation: str, **context: Any) -> Iterator[None]:
    """Translate ``redis`` exceptions raised inside the block into :class:`StoreError`.

    Usage:
        with store_operation("enqueue", queue=self.name, job_id=job.id):
            pipe.execute()
    """
    try:
        yield
    except redis.RedisError as e:
        raise StoreError(f"{operation} failed: {e}", cause=e).with_context(
            operation=operation, **context
        ) from e


def decode(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value
