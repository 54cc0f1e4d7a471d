"""Store-backed lease for the scheduler tick.

Manifesto:
    Several scheduler processes may run against one store. Each tick is
    guarded by a short-lived lease so only one instance promotes delayed
    jobs and fires cron templates at a time. The lease expires on its own,
    so a crashed holder never blocks the others for longer than the TTL.

Lease protocol::

    acquire:  SET {key} {instance_id} NX PX {ttl}
              held by us already?  WATCH/GET/compare → PEXPIRE (refresh)
    release:  WATCH/GET/compare → DEL   (never deletes another holder's lease)

Tags:
    jobspine, scheduling, distributed-locks, TTL, redis
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import redis

from jobspine.jobs.store import decode, store_operation

logger = logging.getLogger(__name__)

DEFAULT_LOCK_KEY = "scheduler:lock"
DEFAULT_LOCK_TTL_SECONDS = 30.0


class LockManager:
    """Distributed lease held by one scheduler instance at a time.

    Example:
        >>> manager = LockManager(client, instance_id="scheduler-1")
        >>> if manager.acquire():
        ...     try:
        ...         run_tick()
        ...     finally:
        ...         manager.release()
        ... else:
        ...     print("Another instance holds the lease")
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key: str = DEFAULT_LOCK_KEY,
        ttl_seconds: float = DEFAULT_LOCK_TTL_SECONDS,
        instance_id: str | None = None,
    ) -> None:
        """Initialize lock manager.

        Args:
            client: Redis client
            key: Lease key
            ttl_seconds: Lease expiry
            instance_id: Unique identifier for this scheduler instance.
                        Auto-generated if not provided.
        """
        self.client = client
        self.key = key
        self.ttl_ms = max(int(ttl_seconds * 1000), 1)
        self.instance_id = instance_id or str(uuid4())

    def acquire(self) -> bool:
        """Take the lease, or refresh it if this instance already holds it.

        Returns:
            True if this instance holds the lease afterwards.
        """
        with store_operation("lock_acquire", key=self.key):
            if self.client.set(self.key, self.instance_id, nx=True, px=self.ttl_ms):
                logger.debug(f"Acquired lease {self.key} as {self.instance_id}")
                return True
            if self._compare_and(lambda pipe: pipe.pexpire(self.key, self.ttl_ms)):
                logger.debug(f"Refreshed lease {self.key} as {self.instance_id}")
                return True

        logger.debug(f"Lease {self.key} held by another instance")
        return False

    def release(self) -> bool:
        """Release the lease if this instance holds it.

        Returns:
            True if released, False if not held
        """
        with store_operation("lock_release", key=self.key):
            released = self._compare_and(lambda pipe: pipe.delete(self.key))
        if released:
            logger.debug(f"Released lease {self.key}")
        return released

    def _compare_and(self, command) -> bool:
        """Run *command* in MULTI/EXEC only while the lease value is our instance id."""
        with self.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    pipe.watch(self.key)
                    if decode(pipe.get(self.key)) != self.instance_id:
                        return False
                    pipe.multi()
                    command(pipe)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    continue

    def is_locked(self) -> bool:
        """Check if the lease is held (by any instance)."""
        with store_operation("lock_check", key=self.key):
            return bool(self.client.exists(self.key))

    def get_lock_holder(self) -> str | None:
        """Instance id holding the lease, or None."""
        with store_operation("lock_check", key=self.key):
            return decode(self.client.get(self.key))

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Acquire for the duration of a block; yields whether it was acquired.

        Usage:
            with manager.hold() as acquired:
                if acquired:
                    run_tick()
        """
        acquired = self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
