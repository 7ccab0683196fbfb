"""
Tests for the Repair Orchestrator and the HTTP Repair Invoker.
"""

from __future__ import annotations

import asyncio
import json
from uuid import uuid4

import httpx
import pytest

from reliability.errors import InvariantViolation, ReasonCode, RepairInvocationError
from reliability.models import (
    IncidentStatus,
    OperationOutcome,
    ResolutionKind,
    SourceType,
)
from reliability.services.escalation import EscalationPolicy
from reliability.services.repair import (
    HttpRepairInvoker,
    RepairOrchestrator,
    RepairOutcome,
)
from reliability.services.repair.invoker import MESSAGE_NO_SOURCE, MESSAGE_NO_STRATEGY
from tests.conftest import NOW, FakeRepairInvoker, _fixed_clock, _make_incident, _make_resolved


def _orchestrator(store, invoker, locks, timeout_seconds: float = 1.0) -> RepairOrchestrator:
    return RepairOrchestrator(
        store,
        invoker,
        locks,
        policy=EscalationPolicy(chronic_threshold=3),
        timeout_seconds=timeout_seconds,
        clock=_fixed_clock(),
    )


# ─── Orchestrator ────────────────────────────────────────────────


class TestAttemptRepair:
    @pytest.mark.asyncio
    async def test_failed_attempt_is_counted(self, store, locks):
        incident = await store.insert(_make_incident())
        orchestrator = _orchestrator(store, FakeRepairInvoker(), locks)

        result = await orchestrator.attempt_repair(incident.id)

        assert result.outcome == OperationOutcome.FAILURE
        assert result.code == ReasonCode.REPAIR_FAILED
        assert result.reason == "still broken"
        saved = await store.get(incident.id)
        assert saved.repair_attempts == 1
        assert saved.last_repair_attempt_at == NOW
        assert saved.status == IncidentStatus.OPEN
        assert saved.resolution_kind == ResolutionKind.NONE

    @pytest.mark.asyncio
    async def test_successful_attempt_auto_recovers(self, store, locks):
        incident = await store.insert(_make_incident())
        invoker = FakeRepairInvoker(
            outcomes=[RepairOutcome(success=True, changes=["status: uploading -> ready"])]
        )
        orchestrator = _orchestrator(store, invoker, locks)

        result = await orchestrator.attempt_repair(incident.id)

        assert result.ok
        assert result.code is None
        assert result.changes == ["status: uploading -> ready"]
        saved = await store.get(incident.id)
        assert saved.status == IncidentStatus.RESOLVED
        assert saved.resolution_kind == ResolutionKind.AUTO_RECOVERED
        assert saved.resolved_at == NOW
        assert saved.repair_attempts == 1

    @pytest.mark.asyncio
    async def test_missing_incident(self, store, locks):
        orchestrator = _orchestrator(store, FakeRepairInvoker(), locks)

        result = await orchestrator.attempt_repair(uuid4())

        assert result.outcome == OperationOutcome.NOT_FOUND
        assert result.code == ReasonCode.NOT_FOUND
        assert result.reason == "not found"

    @pytest.mark.asyncio
    async def test_resolved_incident_is_not_repaired(self, store, locks):
        incident = await store.insert(_make_resolved())
        invoker = FakeRepairInvoker()
        orchestrator = _orchestrator(store, invoker, locks)

        result = await orchestrator.attempt_repair(incident.id)

        assert result.outcome == OperationOutcome.CONFLICT
        assert result.code == ReasonCode.ALREADY_RESOLVED
        assert result.reason == "already resolved"
        assert invoker.calls == []
        assert (await store.get(incident.id)).repair_attempts == 0

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self, store, locks):
        incident = await store.insert(_make_incident())
        invoker = FakeRepairInvoker(delay=0.5, default=RepairOutcome(success=True))
        orchestrator = _orchestrator(store, invoker, locks, timeout_seconds=0.05)

        result = await orchestrator.attempt_repair(incident.id)

        assert result.outcome == OperationOutcome.FAILURE
        assert result.code == ReasonCode.REPAIR_TIMEOUT
        saved = await store.get(incident.id)
        assert saved.repair_attempts == 1
        assert saved.is_open

    @pytest.mark.asyncio
    async def test_invoker_error_counts_as_failed_attempt(self, store, locks):
        incident = await store.insert(_make_incident())
        invoker = FakeRepairInvoker(error=RepairInvocationError("Repair service returned 503"))
        orchestrator = _orchestrator(store, invoker, locks)

        result = await orchestrator.attempt_repair(incident.id)

        assert result.code == ReasonCode.REPAIR_FAILED
        assert result.reason == "Repair service returned 503"
        assert (await store.get(incident.id)).repair_attempts == 1

    @pytest.mark.asyncio
    async def test_third_failure_suggests_escalation(self, store, locks):
        incident = await store.insert(_make_incident(severity="info"))
        orchestrator = _orchestrator(store, FakeRepairInvoker(), locks)

        results = [await orchestrator.attempt_repair(incident.id) for _ in range(3)]

        assert [r.escalation_suggested for r in results] == [False, False, True]
        assert (await store.get(incident.id)).repair_attempts == 3

    @pytest.mark.asyncio
    async def test_invariant_violation_propagates(self, store, locks):
        broken = await store.insert(
            _make_incident(status=IncidentStatus.RESOLVED, resolution_kind=ResolutionKind.MANUAL)
        )
        orchestrator = _orchestrator(store, FakeRepairInvoker(), locks)

        with pytest.raises(InvariantViolation):
            await orchestrator.attempt_repair(broken.id)


class TestConcurrentRepair:
    @pytest.mark.asyncio
    async def test_concurrent_failures_are_both_counted(self, store, locks):
        incident = await store.insert(_make_incident())
        orchestrator = _orchestrator(store, FakeRepairInvoker(delay=0.01), locks)

        await asyncio.gather(
            orchestrator.attempt_repair(incident.id),
            orchestrator.attempt_repair(incident.id),
        )

        assert (await store.get(incident.id)).repair_attempts == 2

    @pytest.mark.asyncio
    async def test_concurrent_successes_resolve_once(self, store, locks):
        incident = await store.insert(_make_incident())
        invoker = FakeRepairInvoker(delay=0.01, default=RepairOutcome(success=True))
        orchestrator = _orchestrator(store, invoker, locks)

        results = await asyncio.gather(
            orchestrator.attempt_repair(incident.id),
            orchestrator.attempt_repair(incident.id),
        )

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["conflict", "success"]
        assert len(invoker.calls) == 1
        saved = await store.get(incident.id)
        assert saved.repair_attempts == 1
        assert saved.resolution_kind == ResolutionKind.AUTO_RECOVERED

    @pytest.mark.asyncio
    async def test_lost_version_race_is_retried(self, store, locks):
        incident = await store.insert(_make_incident())
        orchestrator = _orchestrator(store, FakeRepairInvoker(), locks)

        # Another writer records an attempt between our read and our save
        original_save = store.save
        raced = False

        async def racing_save(updated, expected_version):
            nonlocal raced
            if not raced:
                raced = True
                current = await store.get(incident.id)
                await original_save(
                    current.model_copy(
                        update={"repair_attempts": 1, "last_repair_attempt_at": NOW}
                    ),
                    expected_version=current.version,
                )
            return await original_save(updated, expected_version)

        store.save = racing_save
        result = await orchestrator.attempt_repair(incident.id)

        assert result.outcome == OperationOutcome.FAILURE
        saved = await store.get(incident.id)
        assert saved.repair_attempts == 2
        assert saved.version == 2


# ─── HTTP invoker ────────────────────────────────────────────────


class TestHttpRepairInvoker:
    @pytest.mark.asyncio
    async def test_asset_is_reconciled(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"resolved": True, "changes": ["requeued thumbnail"]})

        invoker = HttpRepairInvoker("http://repair.test", 5, transport=httpx.MockTransport(handler))
        incident = _make_incident(source_type=SourceType.ASSET, source_id="asset-42")

        outcome = await invoker.invoke(incident)
        await invoker.close()

        assert outcome.success
        assert outcome.changes == ["requeued thumbnail"]
        assert seen["path"] == "/v1/assets/asset-42/reconcile"
        assert seen["body"]["incident_id"] == str(incident.id)
        assert seen["body"]["dispatch_retry"] is False

    @pytest.mark.asyncio
    async def test_job_retry_follows_retryable_flag(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/jobs/job-3/retry"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"resolved": False, "message": "job still failing"})

        invoker = HttpRepairInvoker("http://repair.test", 5, transport=httpx.MockTransport(handler))

        retryable = await invoker.invoke(
            _make_incident(source_type=SourceType.JOB, source_id="job-3", retryable=True)
        )
        pinned = await invoker.invoke(
            _make_incident(source_type=SourceType.JOB, source_id="job-3", retryable=False)
        )
        await invoker.close()

        assert [b["dispatch_retry"] for b in bodies] == [True, False]
        assert not retryable.success
        assert retryable.message == "job still failing"
        assert not pinned.success

    @pytest.mark.asyncio
    async def test_no_strategy_makes_no_call(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        invoker = HttpRepairInvoker("http://repair.test", 5, transport=httpx.MockTransport(handler))

        scheduler = await invoker.invoke(_make_incident(source_type=SourceType.SCHEDULER))
        no_source = await invoker.invoke(_make_incident(source_type=SourceType.ASSET, source_id=None))
        await invoker.close()

        assert not scheduler.success
        assert scheduler.message == MESSAGE_NO_STRATEGY
        assert not no_source.success
        assert no_source.message == MESSAGE_NO_SOURCE

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        invoker = HttpRepairInvoker(
            "http://repair.test", 5,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )

        with pytest.raises(RepairInvocationError, match="503"):
            await invoker.invoke(_make_incident())
        await invoker.close()

    @pytest.mark.asyncio
    async def test_unreachable_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        invoker = HttpRepairInvoker("http://repair.test", 5, transport=httpx.MockTransport(handler))

        with pytest.raises(RepairInvocationError, match="unreachable"):
            await invoker.invoke(_make_incident())
        await invoker.close()
