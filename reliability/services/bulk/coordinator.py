"""
Bulk Action Coordinator.
Fans a set of incident IDs out into single-incident operations and aggregates
one report entry per requested ID.
"""
import asyncio
from typing import Iterable, Optional, Union
from uuid import UUID
import structlog

from reliability.config import settings
from reliability.errors import BulkRequestError, InvariantViolation, ReasonCode
from reliability.models import (
    BulkAction,
    BulkItemResult,
    BulkReport,
    OperationOutcome,
    OperationResult,
    TicketResult,
    parse_incident_id,
)
from reliability.services.escalation import EscalationService
from reliability.services.mutation import REASON_NOT_FOUND
from reliability.services.repair import RepairOrchestrator
from reliability.services.resolution import IncidentResolver
from reliability.telemetry.metrics import BULK_RUNS


logger = structlog.get_logger()


class BulkActionCoordinator:
    """
    Runs one action over many incidents.

    Items are isolated: a failure on one ID never stops the others and nothing
    is rolled back. Distinct incidents run concurrently up to a bound; the
    single-incident services hold the per-incident lock, so the batch itself
    takes no global lock.
    """

    def __init__(
        self,
        orchestrator: RepairOrchestrator,
        escalation: EscalationService,
        resolver: IncidentResolver,
        max_concurrency: Optional[int] = None,
        max_batch_size: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.escalation = escalation
        self.resolver = resolver
        self.max_concurrency = max_concurrency or settings.bulk_max_concurrency
        self.max_batch_size = max_batch_size or settings.bulk_max_batch_size

    async def run_bulk(
        self,
        action: Union[BulkAction, str],
        incident_ids: Iterable[Union[str, UUID]],
    ) -> BulkReport:
        try:
            action = BulkAction(action)
        except ValueError as e:
            raise BulkRequestError(f"Unknown bulk action: {action}") from e

        # Set semantics, first occurrence order
        requested = list(dict.fromkeys(str(raw).strip() for raw in incident_ids))
        if len(requested) > self.max_batch_size:
            raise BulkRequestError(
                f"Bulk request has {len(requested)} incidents, limit is {self.max_batch_size}"
            )

        BULK_RUNS.labels(action=action.value).inc()
        logger.info("Bulk action started", action=action.value, incident_count=len(requested))

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(raw_id: str) -> BulkItemResult:
            async with semaphore:
                return await self._run_item(action, raw_id)

        results = await asyncio.gather(*(run_one(raw_id) for raw_id in requested))
        report = BulkReport.from_results(action, list(results))

        logger.info(
            "Bulk action finished",
            action=action.value,
            succeeded=report.succeeded_count,
            failed=report.failed_count,
            counts_by_code=report.counts_by_code,
        )
        return report

    async def _run_item(self, action: BulkAction, raw_id: str) -> BulkItemResult:
        incident_id = parse_incident_id(raw_id)
        if incident_id is None:
            return BulkItemResult(
                id=raw_id,
                ok=False,
                outcome=OperationOutcome.NOT_FOUND,
                code=ReasonCode.NOT_FOUND,
                error=REASON_NOT_FOUND,
            )

        try:
            result = await self._dispatch(action, incident_id)
        except InvariantViolation as e:
            # Already logged critical by the service; surfaced per item so the batch completes
            return BulkItemResult(
                id=raw_id,
                ok=False,
                outcome=OperationOutcome.FAILURE,
                code=ReasonCode.INVARIANT_VIOLATION,
                error=e.detail,
            )
        except Exception as e:
            logger.exception(
                "Bulk item failed unexpectedly",
                action=action.value,
                incident_id=raw_id,
            )
            return BulkItemResult(
                id=raw_id,
                ok=False,
                outcome=OperationOutcome.FAILURE,
                code=ReasonCode.INTERNAL_ERROR,
                error=str(e) or e.__class__.__name__,
            )

        return BulkItemResult(
            id=raw_id,
            ok=result.ok,
            outcome=result.outcome,
            code=result.code,
            error=result.reason if not result.ok else None,
            ticket_id=result.ticket_id if isinstance(result, TicketResult) else None,
        )

    async def _dispatch(self, action: BulkAction, incident_id: UUID) -> OperationResult:
        if action == BulkAction.ATTEMPT_REPAIR:
            return await self.orchestrator.attempt_repair(incident_id)
        if action == BulkAction.CREATE_TICKET:
            return await self.escalation.create_ticket(incident_id)
        return await self.resolver.resolve(incident_id)
