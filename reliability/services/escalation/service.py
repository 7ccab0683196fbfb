"""
Escalation Service.
Links an incident to a support ticket, at most once.
"""
import asyncio
import time
from typing import Callable, Optional, Union
from uuid import UUID
import structlog

from reliability.config import settings
from reliability.errors import (
    DuplicateTicketError,
    IncidentConflictError,
    IncidentNotFoundError,
    InvariantViolation,
    ReasonCode,
    TicketGatewayError,
)
from reliability.models import (
    Incident,
    OperationOutcome,
    TicketResult,
    outcome_for,
    utc_now,
)
from reliability.services.escalation.gateway import TicketGateway, build_ticket_context
from reliability.services.mutation import (
    REASON_INCIDENT_RESOLVED,
    REASON_NOT_FOUND,
    REASON_TICKET_EXISTS,
    commit_mutation,
    report_violation,
)
from reliability.store import IncidentLockManager, IncidentStore
from reliability.telemetry.metrics import EXTERNAL_CALL_LATENCY, TICKET_REQUESTS


logger = structlog.get_logger()


class EscalationService:
    """
    Creates support tickets for incidents.

    Escalation is orthogonal to resolution: linking a ticket never changes
    status or resolution_kind. The chronic-failure threshold is not enforced
    here; operators may escalate at any attempt count.
    """

    def __init__(
        self,
        store: IncidentStore,
        gateway: TicketGateway,
        locks: IncidentLockManager,
        timeout_seconds: Optional[float] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.gateway = gateway
        self.locks = locks
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.ticket_timeout_seconds
        )
        self.clock = clock

    async def create_ticket(self, incident_id: UUID) -> TicketResult:
        """Create a ticket for an open incident unless one is already linked."""
        async with self.locks.hold(incident_id):
            try:
                incident = await self.store.get(incident_id)
            except IncidentNotFoundError:
                return self._result(incident_id, ReasonCode.NOT_FOUND, REASON_NOT_FOUND)
            except InvariantViolation as e:
                report_violation(e)
                raise

            if not incident.is_open:
                return self._result(
                    incident_id, ReasonCode.ALREADY_RESOLVED, REASON_INCIDENT_RESOLVED,
                    incident=incident,
                )
            if incident.is_ticketed:
                return self._result(
                    incident_id, ReasonCode.TICKET_EXISTS, REASON_TICKET_EXISTS,
                    incident=incident, ticket_id=incident.linked_ticket_id,
                )

            context = build_ticket_context(incident)
            started = time.perf_counter()
            try:
                ticket = await asyncio.wait_for(
                    self.gateway.create(context),
                    timeout=self.timeout_seconds,
                )
            except DuplicateTicketError as e:
                return await self._adopt_existing(incident, e)
            except asyncio.TimeoutError:
                logger.warning(
                    "Ticket creation timed out",
                    incident_id=str(incident_id),
                    timeout_seconds=self.timeout_seconds,
                )
                return self._result(
                    incident_id, ReasonCode.GATEWAY_TIMEOUT, "ticket desk timed out",
                    incident=incident,
                )
            except TicketGatewayError as e:
                logger.warning(
                    "Ticket creation failed",
                    incident_id=str(incident_id),
                    error=e.reason,
                )
                return self._result(
                    incident_id, ReasonCode.GATEWAY_ERROR, e.reason,
                    incident=incident,
                )
            finally:
                EXTERNAL_CALL_LATENCY.labels(target="ticket_desk").observe(
                    time.perf_counter() - started
                )

            saved = await self._link(incident, ticket.id)
            if isinstance(saved, TicketResult):
                return saved

        TICKET_REQUESTS.labels(outcome=OperationOutcome.SUCCESS.value).inc()
        logger.info(
            "Ticket created for incident",
            incident_id=str(incident_id),
            ticket_id=ticket.id,
            priority=context.priority.value,
            repair_attempts=saved.repair_attempts,
        )

        return TicketResult(
            incident_id=str(incident_id),
            outcome=OperationOutcome.SUCCESS,
            incident=saved,
            created=True,
            ticket_id=ticket.id,
        )

    async def _adopt_existing(self, incident: Incident, error: DuplicateTicketError) -> TicketResult:
        """The desk already tracks this source; link its ticket instead of creating one."""
        logger.info(
            "Ticket desk reported an existing ticket",
            incident_id=str(incident.id),
            existing_ticket_id=error.existing_ticket_id,
            reason=error.reason,
        )
        if error.existing_ticket_id is None:
            return self._result(
                incident.id, ReasonCode.TICKET_EXISTS, REASON_TICKET_EXISTS,
                incident=incident,
            )

        saved = await self._link(incident, error.existing_ticket_id)
        if isinstance(saved, TicketResult):
            return saved

        return self._result(
            incident.id, ReasonCode.TICKET_EXISTS, REASON_TICKET_EXISTS,
            incident=saved, ticket_id=error.existing_ticket_id,
        )

    async def _link(self, incident: Incident, ticket_id: str) -> Union[Incident, TicketResult]:
        """Store the ticket link. Returns the saved incident, or a conflict result."""
        linked_at = self.clock()

        def mutate(current: Incident) -> Incident:
            if not current.is_open:
                raise IncidentConflictError(REASON_INCIDENT_RESOLVED, ReasonCode.ALREADY_RESOLVED)
            if current.is_ticketed:
                raise IncidentConflictError(REASON_TICKET_EXISTS, ReasonCode.TICKET_EXISTS)
            return current.model_copy(
                update={"linked_ticket_id": ticket_id, "escalated_at": linked_at}
            )

        try:
            return await commit_mutation(self.store, incident, mutate)
        except IncidentConflictError as e:
            logger.warning(
                "Ticket created but link could not be stored",
                incident_id=str(incident.id),
                ticket_id=ticket_id,
                reason=e.reason,
            )
            return self._result(incident.id, e.code, e.reason, ticket_id=ticket_id)
        except InvariantViolation as e:
            report_violation(e)
            raise

    @staticmethod
    def _result(
        incident_id,
        code: ReasonCode,
        reason: str,
        incident: Optional[Incident] = None,
        ticket_id: Optional[str] = None,
    ) -> TicketResult:
        outcome = outcome_for(code)
        TICKET_REQUESTS.labels(outcome=outcome.value).inc()
        return TicketResult(
            incident_id=str(incident_id),
            outcome=outcome,
            code=code,
            reason=reason,
            incident=incident,
            created=False,
            ticket_id=ticket_id,
        )
