"""
Compare-and-swap write helper shared by the mutating services.
"""
from typing import Callable
import structlog

from reliability.errors import InvariantViolation, StaleIncidentError
from reliability.models import Incident
from reliability.store import IncidentStore
from reliability.telemetry.metrics import INVARIANT_VIOLATIONS


logger = structlog.get_logger()

MAX_SAVE_ATTEMPTS = 3

# Reason strings shown to operators
REASON_NOT_FOUND = "not found"
REASON_ALREADY_RESOLVED = "already resolved"
REASON_INCIDENT_RESOLVED = "incident resolved"
REASON_TICKET_EXISTS = "ticket already exists"


async def commit_mutation(
    store: IncidentStore,
    incident: Incident,
    mutate: Callable[[Incident], Incident],
    max_attempts: int = MAX_SAVE_ATTEMPTS,
) -> Incident:
    """
    Apply `mutate` to the latest snapshot and save it in a single write.

    `mutate` must be pure: on a lost compare-and-swap it is re-applied to the
    freshly read snapshot. It raises IncidentConflictError when the change no
    longer applies to that snapshot.
    """
    current = incident
    for attempt in range(1, max_attempts + 1):
        updated = mutate(current)
        try:
            return await store.save(updated, expected_version=current.version)
        except StaleIncidentError:
            logger.warning(
                "Incident changed concurrently, re-reading",
                incident_id=str(incident.id),
                expected_version=current.version,
                attempt=attempt,
            )
            current = await store.get(incident.id)

    raise StaleIncidentError(incident.id, current.version)


def report_violation(error: InvariantViolation) -> None:
    """Log a stored-state invariant violation loudly before it propagates."""
    INVARIANT_VIOLATIONS.inc()
    logger.critical(
        "Incident invariant violated",
        incident_id=str(error.incident_id),
        detail=error.detail,
    )
