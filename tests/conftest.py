"""
Shared fixtures: fake repair invoker and ticket gateway, a fixed clock, and
services wired over the in-memory store.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

import pytest

from reliability.config import Settings
from reliability.errors import TicketGatewayError
from reliability.models import (
    Incident,
    IncidentSeverity,
    IncidentStatus,
    ResolutionKind,
    SourceType,
    TicketContext,
    TicketReference,
)
from reliability.services import ReliabilityServices
from reliability.services.escalation import TicketGateway
from reliability.services.metrics import StaticIntegritySource
from reliability.services.repair import RepairInvoker, RepairOutcome
from reliability.store import InMemoryIncidentStore, LocalIncidentLocks


NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


# ─── Fakes ───────────────────────────────────────────────────────


class FakeRepairInvoker(RepairInvoker):
    """Returns queued outcomes in order, then `default`. Records every call."""

    def __init__(
        self,
        outcomes: Optional[list[RepairOutcome]] = None,
        default: Optional[RepairOutcome] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ) -> None:
        self.outcomes = list(outcomes or [])
        self.default = default or RepairOutcome(success=False, message="still broken")
        self.delay = delay
        self.error = error
        self.calls: list[Any] = []
        self.closed = False

    async def invoke(self, incident: Incident) -> RepairOutcome:
        self.calls.append(incident.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default

    async def close(self) -> None:
        self.closed = True


class FakeTicketGateway(TicketGateway):
    """Issues sequential ticket ids, or raises the configured error."""

    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.created: list[TicketContext] = []
        self.closed = False

    async def create(self, context: TicketContext) -> TicketReference:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.created.append(context)
        return TicketReference(
            id=f"TCK-{len(self.created)}",
            incident_id=context.incident_id,
            source_id=context.source_id,
        )

    async def close(self) -> None:
        self.closed = True


# ─── Helpers ─────────────────────────────────────────────────────


def _make_incident(**overrides: Any) -> Incident:
    defaults: dict[str, Any] = {
        "id": uuid4(),
        "severity": IncidentSeverity.ERROR,
        "title": "Asset stuck in uploading state",
        "source_type": SourceType.ASSET,
        "source_id": "asset-1",
        "detected_at": NOW - timedelta(hours=2),
    }
    defaults.update(overrides)
    return Incident(**defaults)


def _make_resolved(
    kind: ResolutionKind = ResolutionKind.MANUAL,
    detected_at: datetime = NOW - timedelta(hours=2),
    minutes: float = 60,
    **overrides: Any,
) -> Incident:
    return _make_incident(
        status=IncidentStatus.RESOLVED,
        detected_at=detected_at,
        resolved_at=detected_at + timedelta(minutes=minutes),
        resolution_kind=kind,
        **overrides,
    )


def _fixed_clock(at: datetime = NOW):
    return lambda: at


# ─── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        ticket_desk_url=None,
        repair_timeout_seconds=1.0,
        ticket_timeout_seconds=1.0,
        chronic_failure_threshold=3,
        bulk_max_concurrency=4,
        bulk_max_batch_size=10,
    )


@pytest.fixture
def store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore()


@pytest.fixture
def locks() -> LocalIncidentLocks:
    return LocalIncidentLocks()


@pytest.fixture
def invoker() -> FakeRepairInvoker:
    return FakeRepairInvoker()


@pytest.fixture
def gateway() -> FakeTicketGateway:
    return FakeTicketGateway()


@pytest.fixture
def services(store, invoker, gateway, locks, test_settings) -> ReliabilityServices:
    return ReliabilityServices.assemble(
        store=store,
        invoker=invoker,
        gateway=gateway,
        locks=locks,
        integrity_source=StaticIntegritySource(eligible=200, invalid=3),
        config=test_settings,
    )
