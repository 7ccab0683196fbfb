"""
In-memory Incident Store.
Used for development, tests and single-process deployments.
"""
import asyncio
from datetime import datetime
from uuid import UUID
import structlog

from reliability.errors import IncidentNotFoundError, StaleIncidentError
from reliability.models import (
    Incident,
    IncidentCreate,
    assert_consistent,
    assert_transition,
    utc_now,
)
from reliability.store.base import IncidentStore


logger = structlog.get_logger()


class InMemoryIncidentStore(IncidentStore):
    """Dict-backed store. Hands out copies so callers never alias stored state."""

    def __init__(self):
        self._incidents: dict[UUID, Incident] = {}
        self._guard = asyncio.Lock()

    async def add(self, data: IncidentCreate) -> Incident:
        incident = Incident(
            severity=data.severity,
            title=data.title,
            description=data.description,
            source_type=data.source_type,
            source_id=data.source_id,
            retryable=data.retryable,
            detected_at=data.detected_at or utc_now(),
        )
        async with self._guard:
            self._incidents[incident.id] = incident

        logger.info(
            "Incident recorded",
            incident_id=str(incident.id),
            severity=incident.severity.value,
            source_type=incident.source_type.value,
        )
        return incident.model_copy(deep=True)

    async def insert(self, incident: Incident) -> Incident:
        """Store a fully-formed snapshot as is. For seeding and tests."""
        async with self._guard:
            self._incidents[incident.id] = incident.model_copy(deep=True)
        return incident

    async def get(self, incident_id: UUID) -> Incident:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return assert_consistent(incident.model_copy(deep=True))

    async def list_open(self, limit: int = 50, offset: int = 0) -> list[Incident]:
        open_incidents = sorted(
            (i for i in self._incidents.values() if i.is_open),
            key=lambda i: i.detected_at,
            reverse=True,
        )
        return [
            assert_consistent(i.model_copy(deep=True))
            for i in open_incidents[offset:offset + limit]
        ]

    async def save(self, incident: Incident, expected_version: int) -> Incident:
        async with self._guard:
            current = self._incidents.get(incident.id)
            if current is None:
                raise IncidentNotFoundError(incident.id)
            if current.version != expected_version:
                raise StaleIncidentError(incident.id, expected_version)

            assert_transition(current, incident)

            stored = incident.model_copy(update={"version": expected_version + 1}, deep=True)
            self._incidents[incident.id] = stored

        return stored.model_copy(deep=True)

    async def list_resolved_between(self, start: datetime, end: datetime) -> list[Incident]:
        return [
            assert_consistent(i.model_copy(deep=True))
            for i in self._incidents.values()
            if i.resolved_at is not None and start <= i.resolved_at <= end
        ]

    async def list_escalated_between(self, start: datetime, end: datetime) -> list[Incident]:
        return [
            assert_consistent(i.model_copy(deep=True))
            for i in self._incidents.values()
            if i.escalated_at is not None and start <= i.escalated_at <= end
        ]

    async def count_detected_between(self, start: datetime, end: datetime) -> int:
        return sum(1 for i in self._incidents.values() if start <= i.detected_at <= end)

    async def count_open(self) -> int:
        return sum(1 for i in self._incidents.values() if i.is_open)
