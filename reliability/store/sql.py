"""
SQL-backed Incident Store.
SQLAlchemy async; version-column compare-and-swap for linearizable updates.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID
import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reliability.database import session_scope
from reliability.database.tables import IncidentRecord
from reliability.errors import IncidentNotFoundError, StaleIncidentError
from reliability.models import (
    Incident,
    IncidentCreate,
    IncidentStatus,
    assert_consistent,
    assert_transition,
    utc_now,
)
from reliability.store.base import IncidentStore


logger = structlog.get_logger()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC. Drivers without timezone support return naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLIncidentStore(IncidentStore):
    """Incident store on a relational database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def add(self, data: IncidentCreate) -> Incident:
        incident = Incident(
            severity=data.severity,
            title=data.title,
            description=data.description,
            source_type=data.source_type,
            source_id=data.source_id,
            retryable=data.retryable,
            detected_at=_as_utc(data.detected_at) or utc_now(),
        )
        await self.insert(incident)

        logger.info(
            "Incident recorded",
            incident_id=str(incident.id),
            severity=incident.severity.value,
            source_type=incident.source_type.value,
        )
        return incident

    async def insert(self, incident: Incident) -> Incident:
        """Store a fully-formed snapshot as is. For seeding and tests."""
        async with session_scope(self._session_factory) as session:
            session.add(IncidentRecord(id=incident.id, **self._to_values(incident)))
        return incident

    async def get(self, incident_id: UUID) -> Incident:
        async with self._session_factory() as session:
            record = await session.get(IncidentRecord, incident_id)
            if record is None:
                raise IncidentNotFoundError(incident_id)
            return self._to_model(record)

    async def list_open(self, limit: int = 50, offset: int = 0) -> list[Incident]:
        query = (
            select(IncidentRecord)
            .where(IncidentRecord.status == IncidentStatus.OPEN.value)
            .order_by(IncidentRecord.detected_at.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            records = (await session.scalars(query)).all()
            return [self._to_model(r) for r in records]

    async def save(self, incident: Incident, expected_version: int) -> Incident:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(IncidentRecord, incident.id)
                if record is None:
                    raise IncidentNotFoundError(incident.id)
                if record.version != expected_version:
                    raise StaleIncidentError(incident.id, expected_version)

                assert_transition(self._to_model(record), incident)

                values = self._to_values(incident)
                values["version"] = expected_version + 1

                result = await session.execute(
                    update(IncidentRecord)
                    .where(
                        IncidentRecord.id == incident.id,
                        IncidentRecord.version == expected_version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise StaleIncidentError(incident.id, expected_version)

        return incident.model_copy(update={"version": expected_version + 1})

    async def list_resolved_between(self, start: datetime, end: datetime) -> list[Incident]:
        query = select(IncidentRecord).where(
            IncidentRecord.resolved_at.is_not(None),
            IncidentRecord.resolved_at >= _as_utc(start),
            IncidentRecord.resolved_at <= _as_utc(end),
        )
        async with self._session_factory() as session:
            records = (await session.scalars(query)).all()
            return [self._to_model(r) for r in records]

    async def list_escalated_between(self, start: datetime, end: datetime) -> list[Incident]:
        query = select(IncidentRecord).where(
            IncidentRecord.escalated_at.is_not(None),
            IncidentRecord.escalated_at >= _as_utc(start),
            IncidentRecord.escalated_at <= _as_utc(end),
        )
        async with self._session_factory() as session:
            records = (await session.scalars(query)).all()
            return [self._to_model(r) for r in records]

    async def count_detected_between(self, start: datetime, end: datetime) -> int:
        query = select(func.count()).select_from(IncidentRecord).where(
            IncidentRecord.detected_at >= _as_utc(start),
            IncidentRecord.detected_at <= _as_utc(end),
        )
        async with self._session_factory() as session:
            return int(await session.scalar(query) or 0)

    async def count_open(self) -> int:
        query = select(func.count()).select_from(IncidentRecord).where(
            IncidentRecord.status == IncidentStatus.OPEN.value
        )
        async with self._session_factory() as session:
            return int(await session.scalar(query) or 0)

    @staticmethod
    def _to_values(incident: Incident) -> dict[str, Any]:
        return {
            "severity": incident.severity.value,
            "title": incident.title,
            "description": incident.description,
            "source_type": incident.source_type.value,
            "source_id": incident.source_id,
            "retryable": incident.retryable,
            "status": incident.status.value,
            "detected_at": _as_utc(incident.detected_at),
            "resolved_at": _as_utc(incident.resolved_at),
            "resolution_kind": incident.resolution_kind.value,
            "repair_attempts": incident.repair_attempts,
            "last_repair_attempt_at": _as_utc(incident.last_repair_attempt_at),
            "linked_ticket_id": incident.linked_ticket_id,
            "escalated_at": _as_utc(incident.escalated_at),
            "version": incident.version,
        }

    @staticmethod
    def _to_model(record: IncidentRecord) -> Incident:
        incident = Incident(
            id=record.id,
            severity=record.severity,
            title=record.title,
            description=record.description,
            source_type=record.source_type,
            source_id=record.source_id,
            retryable=record.retryable,
            status=record.status,
            detected_at=_as_utc(record.detected_at),
            resolved_at=_as_utc(record.resolved_at),
            resolution_kind=record.resolution_kind,
            repair_attempts=record.repair_attempts,
            last_repair_attempt_at=_as_utc(record.last_repair_attempt_at),
            linked_ticket_id=record.linked_ticket_id,
            escalated_at=_as_utc(record.escalated_at),
            version=record.version,
        )
        return assert_consistent(incident)
