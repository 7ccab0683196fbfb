"""
Result models for incident operations.
Every expected outcome (success, transient failure, conflict, not found) comes back
as one of these instead of an exception.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from reliability.errors import CONFLICT_CODES, ReasonCode
from reliability.models.incident import Incident, assume_utc, utc_now


class OperationOutcome(str, Enum):
    """Outcome of a single-incident operation."""
    SUCCESS = "success"
    FAILURE = "failure"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


def outcome_for(code: Optional[ReasonCode]) -> OperationOutcome:
    """Map a reason code onto its outcome bucket."""
    if code is None:
        return OperationOutcome.SUCCESS
    if code == ReasonCode.NOT_FOUND:
        return OperationOutcome.NOT_FOUND
    if code in CONFLICT_CODES:
        return OperationOutcome.CONFLICT
    return OperationOutcome.FAILURE


class OperationResult(BaseModel):
    """Common shape of single-incident operation results."""
    incident_id: str
    outcome: OperationOutcome
    code: Optional[ReasonCode] = None
    reason: Optional[str] = Field(None, description="Human-readable explanation when nothing happened")
    incident: Optional[Incident] = Field(None, description="Incident snapshot after the operation")

    @property
    def ok(self) -> bool:
        return self.outcome == OperationOutcome.SUCCESS


class RepairResult(OperationResult):
    """Result of one repair attempt."""
    changes: list[Any] = Field(default_factory=list, description="Changes reported by the repair service")
    escalation_suggested: bool = False


class TicketResult(OperationResult):
    """Result of a create-ticket request."""
    created: bool = False
    ticket_id: Optional[str] = None


class ResolveResult(OperationResult):
    """Result of a manual resolution."""
    resolved: bool = False


class BulkAction(str, Enum):
    """Actions accepted by the bulk endpoint."""
    ATTEMPT_REPAIR = "attempt_repair"
    CREATE_TICKET = "create_ticket"
    RESOLVE = "resolve"


class BulkItemResult(BaseModel):
    """Per-incident entry in a bulk report."""
    id: str
    ok: bool
    outcome: OperationOutcome
    code: Optional[ReasonCode] = None
    error: Optional[str] = None
    ticket_id: Optional[str] = None


class BulkReport(BaseModel):
    """Aggregated report of a bulk run. One entry per requested ID."""
    action: BulkAction
    results: list[BulkItemResult] = Field(default_factory=list)
    succeeded_count: int = 0
    failed_count: int = 0
    counts_by_code: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_results(cls, action: BulkAction, results: list[BulkItemResult]) -> "BulkReport":
        counts: dict[str, int] = {}
        for item in results:
            if item.code is not None:
                counts[item.code.value] = counts.get(item.code.value, 0) + 1

        succeeded = sum(1 for item in results if item.ok)
        return cls(
            action=action,
            results=results,
            succeeded_count=succeeded,
            failed_count=len(results) - succeeded,
            counts_by_code=counts,
        )


class MetricsWindow(BaseModel):
    """Closed time range [start, end] for reliability metrics."""
    start: datetime
    end: datetime

    normalize_bounds = field_validator("start", "end")(assume_utc)

    @model_validator(mode="after")
    def check_order(self) -> "MetricsWindow":
        if self.start > self.end:
            raise ValueError("window start must not be after window end")
        return self

    @classmethod
    def trailing(cls, hours: float = 24, end: Optional[datetime] = None) -> "MetricsWindow":
        end = end or utc_now()
        return cls(start=end - timedelta(hours=hours), end=end)


class ReliabilityReport(BaseModel):
    """Time-windowed reliability statistics. Computed, never persisted."""
    window_start: datetime
    window_end: datetime

    # Integrity
    eligible_count: int = 0
    invalid_count: int = 0
    integrity_rate_percent: float = 100.0
    integrity_available: bool = Field(True, description="False when the integrity source could not be read")

    # MTTR
    resolved_count_in_window: int = 0
    mttr_minutes_avg: Optional[float] = Field(None, description="Absent when nothing resolved in window")

    # Recovery success
    auto_recovered_count_in_window: int = 0
    recovery_rate_percent: float = 0.0
    recovery_rate_no_data: bool = True

    # Ticket escalation
    detected_count_in_window: int = 0
    escalated_count_in_window: int = 0
    escalation_rate_percent: float = 0.0
    escalation_rate_no_data: bool = True
    unresolved_count: int = 0

    computed_at: datetime = Field(default_factory=utc_now)
