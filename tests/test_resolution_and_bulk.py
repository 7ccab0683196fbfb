"""
Tests for manual resolution and the Bulk Action Coordinator.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from reliability.errors import BulkRequestError, ReasonCode
from reliability.models import (
    BulkAction,
    IncidentStatus,
    OperationOutcome,
    ResolutionKind,
)
from reliability.services.repair import RepairOutcome
from reliability.services.resolution import IncidentResolver
from tests.conftest import NOW, _fixed_clock, _make_incident, _make_resolved


# ─── Manual resolution ───────────────────────────────────────────


class TestResolve:
    @pytest.mark.asyncio
    async def test_manual_resolution(self, store, locks):
        incident = await store.insert(_make_incident())
        resolver = IncidentResolver(store, locks, clock=_fixed_clock())

        result = await resolver.resolve(incident.id)

        assert result.ok
        assert result.resolved
        saved = await store.get(incident.id)
        assert saved.status == IncidentStatus.RESOLVED
        assert saved.resolution_kind == ResolutionKind.MANUAL
        assert saved.resolved_at == NOW

    @pytest.mark.asyncio
    async def test_already_resolved(self, store, locks):
        incident = await store.insert(_make_resolved(ResolutionKind.AUTO_RECOVERED))
        resolver = IncidentResolver(store, locks, clock=_fixed_clock())

        result = await resolver.resolve(incident.id)

        assert result.outcome == OperationOutcome.CONFLICT
        assert result.code == ReasonCode.ALREADY_RESOLVED
        assert result.reason == "already resolved"
        assert (await store.get(incident.id)).resolution_kind == ResolutionKind.AUTO_RECOVERED

    @pytest.mark.asyncio
    async def test_escalated_requires_ticket(self, store, locks):
        incident = await store.insert(_make_incident())
        resolver = IncidentResolver(store, locks, clock=_fixed_clock())

        result = await resolver.resolve(incident.id, ResolutionKind.ESCALATED)

        assert result.code == ReasonCode.NO_LINKED_TICKET
        assert (await store.get(incident.id)).is_open

    @pytest.mark.asyncio
    async def test_escalated_resolution_keeps_ticket(self, store, locks):
        incident = await store.insert(_make_incident(linked_ticket_id="TCK-3", escalated_at=NOW))
        resolver = IncidentResolver(store, locks, clock=_fixed_clock())

        result = await resolver.resolve(incident.id, ResolutionKind.ESCALATED)

        assert result.ok
        saved = await store.get(incident.id)
        assert saved.resolution_kind == ResolutionKind.ESCALATED
        assert saved.linked_ticket_id == "TCK-3"

    @pytest.mark.asyncio
    async def test_auto_recovered_cannot_be_requested(self, store, locks):
        incident = await store.insert(_make_incident())
        resolver = IncidentResolver(store, locks)

        result = await resolver.resolve(incident.id, ResolutionKind.AUTO_RECOVERED)

        assert result.code == ReasonCode.INVALID_RESOLUTION
        assert (await store.get(incident.id)).is_open

    @pytest.mark.asyncio
    async def test_missing_incident(self, store, locks):
        result = await IncidentResolver(store, locks).resolve(uuid4())
        assert result.outcome == OperationOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_incident_with_invalid_kind(self, store, locks):
        result = await IncidentResolver(store, locks).resolve(uuid4(), ResolutionKind.AUTO_RECOVERED)

        assert result.outcome == OperationOutcome.NOT_FOUND
        assert result.code == ReasonCode.NOT_FOUND


# ─── Bulk actions ────────────────────────────────────────────────


class TestRunBulk:
    @pytest.mark.asyncio
    async def test_mixed_batch_reports_every_id(self, services, store):
        open_incident = await store.insert(_make_incident())
        resolved = await store.insert(_make_resolved())
        missing = uuid4()

        report = await services.bulk.run_bulk(
            "resolve", [str(open_incident.id), str(resolved.id), str(missing)]
        )

        assert report.action == BulkAction.RESOLVE
        by_id = {item.id: item for item in report.results}
        assert len(by_id) == 3
        assert by_id[str(open_incident.id)].ok
        assert by_id[str(resolved.id)].code == ReasonCode.ALREADY_RESOLVED
        assert by_id[str(resolved.id)].error == "already resolved"
        assert by_id[str(missing)].code == ReasonCode.NOT_FOUND
        assert by_id[str(missing)].error == "not found"
        assert report.succeeded_count == 1
        assert report.failed_count == 2
        assert report.counts_by_code == {"already_resolved": 1, "not_found": 1}

    @pytest.mark.asyncio
    async def test_duplicate_ids_run_once(self, services, store, invoker):
        incident = await store.insert(_make_incident())

        report = await services.bulk.run_bulk(
            BulkAction.ATTEMPT_REPAIR, [str(incident.id), str(incident.id)]
        )

        assert len(report.results) == 1
        assert len(invoker.calls) == 1
        assert (await store.get(incident.id)).repair_attempts == 1

    @pytest.mark.asyncio
    async def test_unparseable_id_is_not_found(self, services):
        report = await services.bulk.run_bulk("resolve", ["not-an-id"])

        assert report.results[0].id == "not-an-id"
        assert report.results[0].outcome == OperationOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_failed_item_does_not_stop_the_batch(self, services, store, invoker):
        incidents = [await store.insert(_make_incident()) for _ in range(3)]
        invoker.outcomes = [
            RepairOutcome(success=True),
            RepairOutcome(success=False, message="derivative missing"),
            RepairOutcome(success=True),
        ]

        report = await services.bulk.run_bulk(
            "attempt_repair", [str(i.id) for i in incidents]
        )

        assert report.succeeded_count == 2
        assert report.failed_count == 1
        assert report.counts_by_code == {"repair_failed": 1}
        for incident in incidents:
            assert (await store.get(incident.id)).repair_attempts == 1

    @pytest.mark.asyncio
    async def test_create_ticket_reports_ticket_ids(self, services, store):
        first = await store.insert(_make_incident())
        ticketed = await store.insert(_make_incident(linked_ticket_id="TCK-50", escalated_at=NOW))

        report = await services.bulk.run_bulk("create_ticket", [str(first.id), str(ticketed.id)])

        by_id = {item.id: item for item in report.results}
        assert by_id[str(first.id)].ok
        assert by_id[str(first.id)].ticket_id == "TCK-1"
        assert by_id[str(ticketed.id)].code == ReasonCode.TICKET_EXISTS
        assert by_id[str(ticketed.id)].ticket_id == "TCK-50"

    @pytest.mark.asyncio
    async def test_invariant_violation_is_isolated(self, services, store):
        healthy = await store.insert(_make_incident())
        broken = await store.insert(
            _make_incident(status=IncidentStatus.RESOLVED, resolution_kind=ResolutionKind.MANUAL)
        )

        report = await services.bulk.run_bulk("resolve", [str(broken.id), str(healthy.id)])

        by_id = {item.id: item for item in report.results}
        assert by_id[str(broken.id)].code == ReasonCode.INVARIANT_VIOLATION
        assert by_id[str(healthy.id)].ok

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, services, store):
        healthy = await store.insert(_make_incident())
        failing = await store.insert(_make_incident())

        original_get = store.get

        async def flaky_get(incident_id):
            if incident_id == failing.id:
                raise RuntimeError("connection reset")
            return await original_get(incident_id)

        store.get = flaky_get
        report = await services.bulk.run_bulk("resolve", [str(failing.id), str(healthy.id)])

        by_id = {item.id: item for item in report.results}
        assert by_id[str(failing.id)].code == ReasonCode.INTERNAL_ERROR
        assert by_id[str(failing.id)].error == "connection reset"
        assert by_id[str(healthy.id)].ok

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, services):
        with pytest.raises(BulkRequestError):
            await services.bulk.run_bulk("delete", [str(uuid4())])

    @pytest.mark.asyncio
    async def test_oversized_batch_rejected(self, services):
        # test_settings caps batches at 10
        with pytest.raises(BulkRequestError):
            await services.bulk.run_bulk("resolve", [str(uuid4()) for _ in range(11)])

    @pytest.mark.asyncio
    async def test_empty_batch(self, services):
        report = await services.bulk.run_bulk("resolve", [])
        assert report.results == []
        assert report.succeeded_count == 0


# ─── Resolved incidents stay resolved ────────────────────────────


class TestNoResurrection:
    @pytest.mark.asyncio
    async def test_later_actions_leave_resolution_untouched(self, services, store):
        incident = await store.insert(
            _make_resolved(ResolutionKind.MANUAL, repair_attempts=2, last_repair_attempt_at=NOW)
        )
        before = await store.get(incident.id)

        await services.orchestrator.attempt_repair(incident.id)
        await services.escalation.create_ticket(incident.id)
        await services.resolver.resolve(incident.id)
        for action in BulkAction:
            await services.bulk.run_bulk(action, [str(incident.id)])

        after = await store.get(incident.id)
        assert after.resolved_at == before.resolved_at
        assert after.resolution_kind == before.resolution_kind
        assert after.repair_attempts == before.repair_attempts
        assert after.version == before.version
        assert services.invoker.calls == []
        assert services.gateway.created == []
