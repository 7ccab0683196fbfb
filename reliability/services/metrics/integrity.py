"""
Integrity sources.
The count of eligible resources and of those failing the integrity predicate
(e.g. missing required derivatives) comes from outside this subsystem.
"""
from abc import ABC, abstractmethod
from typing import Optional
import httpx
import structlog
from pydantic import BaseModel, Field

from reliability.config import settings


logger = structlog.get_logger()


class IntegritySnapshot(BaseModel):
    """Eligible resources and how many of them currently fail the integrity check."""
    eligible: int = Field(0, ge=0)
    invalid: int = Field(0, ge=0)


class IntegritySource(ABC):
    @abstractmethod
    async def snapshot(self) -> IntegritySnapshot:
        """Current integrity counts."""

    async def close(self) -> None:
        """Release any held resources."""


class StaticIntegritySource(IntegritySource):
    """Fixed counts. For tests and deployments without an integrity feed."""

    def __init__(self, eligible: int = 0, invalid: int = 0):
        self._snapshot = IntegritySnapshot(eligible=eligible, invalid=invalid)

    async def snapshot(self) -> IntegritySnapshot:
        return self._snapshot


class HttpIntegritySource(IntegritySource):
    """Reads counts from the asset service's integrity endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.integrity_service_url
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.integrity_timeout_seconds,
            transport=transport,
        )

    async def snapshot(self) -> IntegritySnapshot:
        response = await self._client.get(self.url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"integrity endpoint returned {type(data).__name__}, expected an object")
        return IntegritySnapshot(
            eligible=int(data.get("eligible") or 0),
            invalid=int(data.get("invalid") or 0),
        )

    async def close(self) -> None:
        await self._client.aclose()
