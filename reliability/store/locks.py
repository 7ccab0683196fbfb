"""
Per-incident mutual exclusion.

Operations on the same incident are serialized; operations on distinct
incidents never wait on each other.
"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID
import structlog
import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from reliability.errors import TransientError


logger = structlog.get_logger()


class IncidentLockManager(ABC):
    """Hands out an exclusive hold on one incident id."""

    @abstractmethod
    def hold(self, incident_id: UUID) -> "AsyncIterator[None]":
        """Async context manager held for the duration of one mutation."""

    async def close(self) -> None:
        """Release any held resources."""


class LocalIncidentLocks(IncidentLockManager):
    """One asyncio.Lock per incident id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, incident_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(incident_id, asyncio.Lock())
        self._users[incident_id] = self._users.get(incident_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[incident_id] -= 1
            if self._users[incident_id] == 0:
                del self._users[incident_id]
                del self._locks[incident_id]

    @property
    def tracked(self) -> int:
        """Number of incident ids currently locked or awaited."""
        return len(self._locks)


class RedisIncidentLocks(IncidentLockManager):
    """Lease locks in Redis, for deployments with several API processes."""

    KEY_PREFIX = "reliability:incident-lock:"

    def __init__(
        self,
        redis_url: str,
        lease_seconds: float = 120.0,
        wait_seconds: float = 30.0,
        client: Optional[redis.Redis] = None,
    ):
        self._client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self.lease_seconds = lease_seconds
        self.wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, incident_id: UUID) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"{self.KEY_PREFIX}{incident_id}",
            timeout=self.lease_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise TransientError(f"Lock backend unavailable for incident {incident_id}: {e}") from e
        if not acquired:
            raise TransientError(f"Timed out waiting for lock on incident {incident_id}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lease expired while held; the version check on save still guards the write
                logger.warning(
                    "Incident lock lease expired before release",
                    incident_id=str(incident_id),
                    error=str(e),
                )

    async def close(self) -> None:
        await self._client.aclose()
