"""
Manual resolution of incidents by an operator.
"""
from typing import Callable
from uuid import UUID
import structlog

from reliability.errors import (
    IncidentConflictError,
    IncidentNotFoundError,
    InvariantViolation,
    ReasonCode,
)
from reliability.models import (
    Incident,
    IncidentStatus,
    OperationOutcome,
    ResolutionKind,
    ResolveResult,
    outcome_for,
    utc_now,
)
from reliability.services.mutation import (
    REASON_ALREADY_RESOLVED,
    REASON_NOT_FOUND,
    commit_mutation,
    report_violation,
)
from reliability.store import IncidentLockManager, IncidentStore
from reliability.telemetry.metrics import MANUAL_RESOLUTIONS


logger = structlog.get_logger()

# Kinds an operator may choose; auto_recovered belongs to the repair orchestrator
OPERATOR_RESOLUTIONS = frozenset({ResolutionKind.MANUAL, ResolutionKind.ESCALATED})


class IncidentResolver:
    """Closes open incidents without a further repair attempt."""

    def __init__(
        self,
        store: IncidentStore,
        locks: IncidentLockManager,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.locks = locks
        self.clock = clock

    async def resolve(
        self,
        incident_id: UUID,
        kind: ResolutionKind = ResolutionKind.MANUAL,
    ) -> ResolveResult:
        async with self.locks.hold(incident_id):
            try:
                incident = await self.store.get(incident_id)
            except IncidentNotFoundError:
                return self._result(incident_id, ReasonCode.NOT_FOUND, REASON_NOT_FOUND)
            except InvariantViolation as e:
                report_violation(e)
                raise

            if kind not in OPERATOR_RESOLUTIONS:
                return self._result(
                    incident_id,
                    ReasonCode.INVALID_RESOLUTION,
                    f"resolution '{kind.value}' cannot be set by an operator",
                    incident=incident,
                )

            resolved_at = self.clock()
            try:
                saved = await commit_mutation(
                    self.store,
                    incident,
                    lambda current: self._close(current, kind, resolved_at),
                )
            except IncidentConflictError as e:
                return self._result(incident_id, e.code, e.reason, incident=incident)
            except InvariantViolation as e:
                report_violation(e)
                raise

        MANUAL_RESOLUTIONS.labels(resolution_kind=kind.value).inc()
        logger.info(
            "Incident resolved",
            incident_id=str(incident_id),
            resolution_kind=kind.value,
            repair_attempts=saved.repair_attempts,
            ticketed=saved.is_ticketed,
        )

        return ResolveResult(
            incident_id=str(incident_id),
            outcome=OperationOutcome.SUCCESS,
            incident=saved,
            resolved=True,
        )

    @staticmethod
    def _close(incident: Incident, kind: ResolutionKind, resolved_at) -> Incident:
        if not incident.is_open:
            raise IncidentConflictError(REASON_ALREADY_RESOLVED, ReasonCode.ALREADY_RESOLVED)
        if kind == ResolutionKind.ESCALATED and not incident.is_ticketed:
            raise IncidentConflictError(
                "no linked ticket to resolve through",
                ReasonCode.NO_LINKED_TICKET,
            )
        return incident.model_copy(
            update={
                "status": IncidentStatus.RESOLVED,
                "resolved_at": resolved_at,
                "resolution_kind": kind,
            }
        )

    @staticmethod
    def _result(incident_id, code: ReasonCode, reason: str, incident=None) -> ResolveResult:
        return ResolveResult(
            incident_id=str(incident_id),
            outcome=outcome_for(code),
            code=code,
            reason=reason,
            incident=incident,
        )
