"""
Repair Orchestrator.
Drives repair attempts for one incident: eligibility, invoker call, attempt
bookkeeping and auto-resolution.
"""
import asyncio
import time
from typing import Callable, Optional
from uuid import UUID
import structlog

from reliability.config import settings
from reliability.errors import (
    IncidentConflictError,
    IncidentNotFoundError,
    InvariantViolation,
    ReasonCode,
    RepairInvocationError,
)
from reliability.models import (
    Incident,
    IncidentStatus,
    OperationOutcome,
    RepairResult,
    ResolutionKind,
    utc_now,
)
from reliability.services.escalation.policy import EscalationPolicy
from reliability.services.mutation import (
    REASON_ALREADY_RESOLVED,
    REASON_NOT_FOUND,
    commit_mutation,
    report_violation,
)
from reliability.services.repair.invoker import RepairInvoker, RepairOutcome
from reliability.store import IncidentLockManager, IncidentStore
from reliability.telemetry.metrics import EXTERNAL_CALL_LATENCY, REPAIR_ATTEMPTS


logger = structlog.get_logger()


class RepairOrchestrator:
    """Runs repair attempts with per-incident serialization."""

    def __init__(
        self,
        store: IncidentStore,
        invoker: RepairInvoker,
        locks: IncidentLockManager,
        policy: Optional[EscalationPolicy] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.invoker = invoker
        self.locks = locks
        self.policy = policy or EscalationPolicy()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.repair_timeout_seconds
        )
        self.clock = clock

    async def attempt_repair(self, incident_id: UUID) -> RepairResult:
        """
        Make one repair attempt.

        Always counts the attempt when the incident was open; resolves it as
        auto_recovered only when the repair service reports success. A
        timed-out or failed call counts as a failed attempt.
        """
        async with self.locks.hold(incident_id):
            try:
                incident = await self.store.get(incident_id)
            except IncidentNotFoundError:
                return RepairResult(
                    incident_id=str(incident_id),
                    outcome=OperationOutcome.NOT_FOUND,
                    code=ReasonCode.NOT_FOUND,
                    reason=REASON_NOT_FOUND,
                )
            except InvariantViolation as e:
                report_violation(e)
                raise

            if not incident.is_open:
                logger.info(
                    "Repair skipped, incident already resolved",
                    incident_id=str(incident_id),
                    resolution_kind=incident.resolution_kind.value,
                )
                return RepairResult(
                    incident_id=str(incident_id),
                    outcome=OperationOutcome.CONFLICT,
                    code=ReasonCode.ALREADY_RESOLVED,
                    reason=REASON_ALREADY_RESOLVED,
                    incident=incident,
                )

            outcome, failure_code = await self._invoke(incident)
            attempted_at = self.clock()

            try:
                saved = await commit_mutation(
                    self.store,
                    incident,
                    lambda current: self._record_attempt(current, outcome.success, attempted_at),
                )
            except IncidentConflictError as e:
                logger.warning(
                    "Repair attempt could not be recorded",
                    incident_id=str(incident_id),
                    reason=e.reason,
                )
                return RepairResult(
                    incident_id=str(incident_id),
                    outcome=OperationOutcome.CONFLICT,
                    code=e.code,
                    reason=e.reason,
                    changes=outcome.changes,
                )
            except InvariantViolation as e:
                report_violation(e)
                raise

        result_outcome = OperationOutcome.SUCCESS if outcome.success else OperationOutcome.FAILURE
        REPAIR_ATTEMPTS.labels(
            source_type=saved.source_type.value,
            outcome=result_outcome.value,
        ).inc()

        logger.info(
            "Repair attempted",
            incident_id=str(incident_id),
            source_type=saved.source_type.value,
            outcome=result_outcome.value,
            repair_attempts=saved.repair_attempts,
            resolved=not saved.is_open,
        )

        return RepairResult(
            incident_id=str(incident_id),
            outcome=result_outcome,
            code=failure_code,
            reason=None if outcome.success else (outcome.message or "repair did not resolve the incident"),
            incident=saved,
            changes=outcome.changes,
            escalation_suggested=self.policy.should_create_ticket(saved),
        )

    async def _invoke(self, incident: Incident) -> tuple[RepairOutcome, Optional[ReasonCode]]:
        """Call the repair service under a timeout. Never raises for expected failures."""
        started = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(
                self.invoker.invoke(incident),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Repair call timed out",
                incident_id=str(incident.id),
                timeout_seconds=self.timeout_seconds,
            )
            return RepairOutcome(success=False, message="repair timed out"), ReasonCode.REPAIR_TIMEOUT
        except RepairInvocationError as e:
            logger.warning(
                "Repair call failed",
                incident_id=str(incident.id),
                error=str(e),
            )
            return RepairOutcome(success=False, message=str(e)), ReasonCode.REPAIR_FAILED
        finally:
            EXTERNAL_CALL_LATENCY.labels(target="repair").observe(time.perf_counter() - started)

        return outcome, None if outcome.success else ReasonCode.REPAIR_FAILED

    @staticmethod
    def _record_attempt(incident: Incident, success: bool, attempted_at) -> Incident:
        if not incident.is_open:
            raise IncidentConflictError(REASON_ALREADY_RESOLVED, ReasonCode.ALREADY_RESOLVED)

        changes = {
            "repair_attempts": incident.repair_attempts + 1,
            "last_repair_attempt_at": attempted_at,
        }
        if success:
            changes.update(
                status=IncidentStatus.RESOLVED,
                resolved_at=attempted_at,
                resolution_kind=ResolutionKind.AUTO_RECOVERED,
            )
        return incident.model_copy(update=changes)
