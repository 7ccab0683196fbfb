"""
Incident Store interface.
The single shared mutable resource of the subsystem.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from reliability.models import Incident, IncidentCreate


class IncidentStore(ABC):
    """
    Durable record of detected incidents.

    Implementations check every snapshot they hand out against the lifecycle
    invariants and every save against the stored predecessor. `save` is a
    compare-and-swap on `version`: it succeeds only when the stored version
    equals `expected_version`, and bumps it by one.
    """

    @abstractmethod
    async def add(self, data: IncidentCreate) -> Incident:
        """Append a new open incident. Detector path only."""

    @abstractmethod
    async def get(self, incident_id: UUID) -> Incident:
        """Fetch one incident. Raises IncidentNotFoundError."""

    @abstractmethod
    async def list_open(self, limit: int = 50, offset: int = 0) -> list[Incident]:
        """Open incidents, most recently detected first."""

    @abstractmethod
    async def save(self, incident: Incident, expected_version: int) -> Incident:
        """
        Persist a new snapshot of an existing incident.

        Raises IncidentNotFoundError, StaleIncidentError or InvariantViolation.
        """

    @abstractmethod
    async def list_resolved_between(self, start: datetime, end: datetime) -> list[Incident]:
        """Incidents whose resolved_at falls in [start, end]."""

    @abstractmethod
    async def list_escalated_between(self, start: datetime, end: datetime) -> list[Incident]:
        """Incidents whose escalated_at falls in [start, end]."""

    @abstractmethod
    async def count_detected_between(self, start: datetime, end: datetime) -> int:
        """Number of incidents whose detected_at falls in [start, end]."""

    @abstractmethod
    async def count_open(self) -> int:
        """Number of currently open incidents."""

    async def close(self) -> None:
        """Release any held resources."""
