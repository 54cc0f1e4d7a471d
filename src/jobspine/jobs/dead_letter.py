"""Dead-letter queue - jobs that exhausted their retries.

ARCHITECTURE
────────────
::

    DeadLetterQueue(client, key, max_size)
      ├── .push(job, error)   ─ LPUSH + LTRIM in one MULTI/EXEC
      ├── .list(limit)        ─ newest first
      ├── len(dlq)            ─ LLEN
      └── .clear()            ─ DEL

    DeadLetter                 ─ entry data model

The list is bounded: once ``max_size`` entries are stored, each push drops
the oldest entry. Entries have no TTL; operators inspect and clear them.

Example::

    dlq = DeadLetterQueue(client, "jobs:queue:default/dead_letters")
    dlq.push(job, "Connection timeout")
    for entry in dlq.list(limit=10):
        print(entry.job.id, entry.error)
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import redis

from jobspine.core.errors import DeserializationError
from jobspine.jobs.models import Job, from_iso, to_iso, utcnow
from jobspine.jobs.store import store_operation

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10000


@dataclass
class DeadLetter:
    """A job that will not be retried again, with its final error."""

    job: Job
    error: str | None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    @property
    def attempts(self) -> int:
        return self.job.attempt

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job": self.job.to_dict(),
            "error": self.error,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_json(cls, raw: bytes | str) -> "DeadLetter":
        try:
            data = json.loads(raw)
            return cls(
                id=data["id"],
                job=Job.from_dict(data["job"]),
                error=data.get("error"),
                created_at=from_iso(data["created_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed dead-letter entry: {e}", cause=e) from e


class DeadLetterQueue:
    """Bounded, store-backed list of dead letters."""

    def __init__(self, client: redis.Redis, key: str, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.client = client
        self.key = key
        self.max_size = max_size

    def push(self, job: Job, error: str | None = None) -> DeadLetter:
        """Store *job* as a dead letter, dropping the oldest entry when full."""
        entry = DeadLetter(job=job, error=error if error is not None else job.last_error)
        raw = json.dumps(entry.to_dict()).encode("utf-8")

        with store_operation("dead_letter_push", key=self.key, job_id=job.id):
            pipe = self.client.pipeline(transaction=True)
            pipe.lpush(self.key, raw)
            pipe.ltrim(self.key, 0, self.max_size - 1)
            pipe.execute()

        logger.warning(f"Job {job.id} ({job.job_type}) moved to dead letters after {job.attempt} attempt(s)")
        return entry

    def list(self, limit: int | None = None) -> list[DeadLetter]:
        """Entries, newest first."""
        end = -1 if limit is None else max(limit, 1) - 1
        with store_operation("dead_letter_list", key=self.key):
            raw_entries = self.client.lrange(self.key, 0, end)
        return [DeadLetter.from_json(raw) for raw in raw_entries]

    def clear(self) -> int:
        """Delete every entry; return how many there were."""
        with store_operation("dead_letter_clear", key=self.key):
            pipe = self.client.pipeline(transaction=True)
            pipe.llen(self.key)
            pipe.delete(self.key)
            count, _ = pipe.execute()
        return int(count)

    def __len__(self) -> int:
        with store_operation("dead_letter_len", key=self.key):
            return int(self.client.llen(self.key))

    def is_empty(self) -> bool:
        return len(self) == 0
