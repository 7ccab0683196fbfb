# Models package
from reliability.models.incident import (
    Incident,
    IncidentCreate,
    IncidentSummary,
    IncidentSeverity,
    IncidentStatus,
    ResolutionKind,
    SourceType,
    assert_consistent,
    assert_transition,
    assume_utc,
    parse_incident_id,
    utc_now,
)
from reliability.models.ticket import (
    TicketContext,
    TicketPriority,
    TicketReference,
)
from reliability.models.results import (
    BulkAction,
    BulkItemResult,
    BulkReport,
    MetricsWindow,
    OperationOutcome,
    OperationResult,
    ReliabilityReport,
    RepairResult,
    ResolveResult,
    TicketResult,
    outcome_for,
)

__all__ = [
    # Incident
    "Incident",
    "IncidentCreate",
    "IncidentSummary",
    "IncidentSeverity",
    "IncidentStatus",
    "ResolutionKind",
    "SourceType",
    "assert_consistent",
    "assert_transition",
    "assume_utc",
    "parse_incident_id",
    "utc_now",
    # Ticket
    "TicketContext",
    "TicketPriority",
    "TicketReference",
    # Results
    "BulkAction",
    "BulkItemResult",
    "BulkReport",
    "MetricsWindow",
    "OperationOutcome",
    "OperationResult",
    "ReliabilityReport",
    "RepairResult",
    "ResolveResult",
    "TicketResult",
    "outcome_for",
]
