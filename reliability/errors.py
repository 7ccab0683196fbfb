"""
Error taxonomy for incident operations.

NotFound, Conflict and Transient errors are expected conditions: the services
catch them and turn them into structured results with a ReasonCode. Only
InvariantViolation crosses the service boundary as a hard failure.
"""
from enum import Enum
from typing import Optional


class ReasonCode(str, Enum):
    """Machine-readable reason attached to every non-success result."""
    NOT_FOUND = "not_found"
    ALREADY_RESOLVED = "already_resolved"
    TICKET_EXISTS = "ticket_exists"
    NO_LINKED_TICKET = "no_linked_ticket"
    INVALID_RESOLUTION = "invalid_resolution"
    REPAIR_FAILED = "repair_failed"
    REPAIR_TIMEOUT = "repair_timeout"
    GATEWAY_ERROR = "gateway_error"
    GATEWAY_TIMEOUT = "gateway_timeout"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    INVARIANT_VIOLATION = "invariant_violation"
    INTERNAL_ERROR = "internal_error"


# Codes that mean "the operation was not applicable", not "something broke"
CONFLICT_CODES = frozenset({
    ReasonCode.ALREADY_RESOLVED,
    ReasonCode.TICKET_EXISTS,
    ReasonCode.NO_LINKED_TICKET,
    ReasonCode.INVALID_RESOLUTION,
    ReasonCode.CONCURRENT_MODIFICATION,
})

TRANSIENT_CODES = frozenset({
    ReasonCode.REPAIR_FAILED,
    ReasonCode.REPAIR_TIMEOUT,
    ReasonCode.GATEWAY_ERROR,
    ReasonCode.GATEWAY_TIMEOUT,
})


class ReliabilityError(Exception):
    """Base class for incident subsystem errors."""


class IncidentNotFoundError(ReliabilityError):
    """Referenced incident does not exist."""

    def __init__(self, incident_id):
        self.incident_id = incident_id
        super().__init__(f"Incident not found: {incident_id}")


class IncidentConflictError(ReliabilityError):
    """Operation is not valid in the incident's current state."""

    def __init__(self, reason: str, code: ReasonCode):
        self.reason = reason
        self.code = code
        super().__init__(reason)


class StaleIncidentError(IncidentConflictError):
    """Compare-and-swap on the incident version lost against another writer."""

    def __init__(self, incident_id, expected_version: int):
        self.incident_id = incident_id
        self.expected_version = expected_version
        super().__init__(
            f"Incident {incident_id} changed since version {expected_version}",
            ReasonCode.CONCURRENT_MODIFICATION,
        )


class TransientError(ReliabilityError):
    """External collaborator failed or timed out; safe to retry later."""


class RepairInvocationError(TransientError):
    """Repair service call failed."""


class TicketGatewayError(TransientError):
    """Ticket desk rejected the request or could not be reached."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DuplicateTicketError(TicketGatewayError):
    """Ticket desk reports a ticket already exists for this incident or asset."""

    def __init__(self, reason: str, existing_ticket_id: Optional[str] = None):
        self.existing_ticket_id = existing_ticket_id
        super().__init__(reason)


class InvariantViolation(ReliabilityError):
    """
    Stored incident state breaks a lifecycle invariant.

    Indicates a store bug or an out-of-band write. Never coerced.
    """

    def __init__(self, incident_id, detail: str):
        self.incident_id = incident_id
        self.detail = detail
        super().__init__(f"Invariant violated for incident {incident_id}: {detail}")


class BulkRequestError(ReliabilityError, ValueError):
    """Bulk request is malformed (unknown action, oversized batch)."""
