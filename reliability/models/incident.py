"""
Incident model for the operations center.
Represents a system-detected problem (stalled upload, failed derivative, failed job)
and its repair/resolution state.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, Field, field_validator
from uuid import UUID, uuid4

from reliability.errors import InvariantViolation


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_incident_id(raw: Union[str, UUID]) -> Optional[UUID]:
    """Parse an incident identifier, returning None when it cannot exist."""
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw).strip())
    except (ValueError, AttributeError):
        return None


class IncidentSeverity(str, Enum):
    """Severity levels for incidents."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SourceType(str, Enum):
    """Kind of resource an incident is tied to."""
    ASSET = "asset"
    JOB = "job"
    SCHEDULER = "scheduler"
    QUEUE = "queue"
    OTHER = "other"


class IncidentStatus(str, Enum):
    """Status states for incident lifecycle."""
    OPEN = "open"
    RESOLVED = "resolved"


class ResolutionKind(str, Enum):
    """How an incident was resolved. Set exactly once."""
    NONE = "none"
    AUTO_RECOVERED = "auto_recovered"
    MANUAL = "manual"
    ESCALATED = "escalated"


class Incident(BaseModel):
    """
    Core incident model.

    Created open by the external detector. Mutated only by the repair
    orchestrator (attempt metadata, auto-resolution), the escalation service
    (ticket link) and manual resolution. Never reopened.
    """
    id: UUID = Field(default_factory=uuid4, description="Unique incident identifier")
    severity: IncidentSeverity = Field(..., description="Incident severity level")
    title: str = Field(..., max_length=500, description="Human-readable incident title")
    description: Optional[str] = Field(None, description="Detailed incident description")

    # Affected resource
    source_type: SourceType = Field(..., description="Kind of affected resource")
    source_id: Optional[str] = Field(None, description="Affected resource identifier")
    retryable: bool = Field(default=True, description="Whether the source job may be re-dispatched")

    # Lifecycle
    status: IncidentStatus = Field(default=IncidentStatus.OPEN)
    detected_at: datetime = Field(default_factory=utc_now, description="When the detector raised it")
    resolved_at: Optional[datetime] = None
    resolution_kind: ResolutionKind = Field(default=ResolutionKind.NONE)

    # Repair tracking
    repair_attempts: int = Field(default=0, ge=0)
    last_repair_attempt_at: Optional[datetime] = None

    # Escalation
    linked_ticket_id: Optional[str] = None
    escalated_at: Optional[datetime] = None

    # Optimistic concurrency
    version: int = Field(default=0, ge=0)

    normalize_timestamps = field_validator(
        "detected_at", "resolved_at", "last_repair_attempt_at", "escalated_at"
    )(assume_utc)

    @property
    def is_open(self) -> bool:
        return self.status == IncidentStatus.OPEN

    @property
    def is_ticketed(self) -> bool:
        return self.linked_ticket_id is not None

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "severity": "error",
                "title": "Asset stuck in uploading state",
                "description": "Upload finished 2h ago but the asset never left 'uploading'",
                "source_type": "asset",
                "source_id": "9b2f0c7e-5d1a-4c2e-8f7a-0c1d2e3f4a5b",
                "retryable": True,
                "status": "open",
                "detected_at": "2026-01-05T05:00:00Z",
                "repair_attempts": 2,
                "last_repair_attempt_at": "2026-01-05T06:00:00Z",
                "linked_ticket_id": None,
                "version": 2,
            }
        }
    }


class IncidentCreate(BaseModel):
    """Schema used by the detector to append a new incident."""
    severity: IncidentSeverity
    title: str
    description: Optional[str] = None
    source_type: SourceType
    source_id: Optional[str] = None
    retryable: bool = True
    detected_at: Optional[datetime] = None

    normalize_detected_at = field_validator("detected_at")(assume_utc)


class IncidentSummary(BaseModel):
    """Lightweight incident summary for the open-incident listing."""
    id: UUID
    severity: IncidentSeverity
    title: str
    source_type: SourceType
    source_id: Optional[str]
    status: IncidentStatus
    detected_at: datetime
    repair_attempts: int
    last_repair_attempt_at: Optional[datetime]
    linked_ticket_id: Optional[str]
    escalation_suggested: bool = False

    model_config = {"from_attributes": True}


def assert_consistent(incident: Incident) -> Incident:
    """Check a single snapshot against the lifecycle invariants."""
    resolved = incident.resolved_at is not None

    if resolved != (incident.status == IncidentStatus.RESOLVED):
        raise InvariantViolation(
            incident.id,
            f"status={incident.status.value} but resolved_at={incident.resolved_at}",
        )
    if resolved != (incident.resolution_kind != ResolutionKind.NONE):
        raise InvariantViolation(
            incident.id,
            f"resolution_kind={incident.resolution_kind.value} with resolved_at={incident.resolved_at}",
        )
    if incident.repair_attempts == 0 and incident.last_repair_attempt_at is not None:
        raise InvariantViolation(incident.id, "last_repair_attempt_at set with zero attempts")
    if incident.repair_attempts > 0 and incident.last_repair_attempt_at is None:
        raise InvariantViolation(incident.id, "repair attempts recorded without a timestamp")
    if (incident.linked_ticket_id is None) != (incident.escalated_at is None):
        raise InvariantViolation(incident.id, "linked_ticket_id and escalated_at disagree")
    return incident


def assert_transition(before: Incident, after: Incident) -> None:
    """Check that `after` is a legal successor of the stored `before` snapshot."""
    assert_consistent(after)

    if after.id != before.id:
        raise InvariantViolation(before.id, f"id changed to {after.id}")
    if after.detected_at != before.detected_at:
        raise InvariantViolation(before.id, "detected_at is immutable")
    if after.repair_attempts < before.repair_attempts:
        raise InvariantViolation(
            before.id,
            f"repair_attempts decreased {before.repair_attempts} -> {after.repair_attempts}",
        )
    if before.linked_ticket_id is not None and after.linked_ticket_id != before.linked_ticket_id:
        raise InvariantViolation(before.id, "linked_ticket_id cannot change once set")

    if before.status == IncidentStatus.RESOLVED:
        if after.status != IncidentStatus.RESOLVED:
            raise InvariantViolation(before.id, "resolved incidents cannot be reopened")
        if after.resolved_at != before.resolved_at or after.resolution_kind != before.resolution_kind:
            raise InvariantViolation(before.id, "resolution fields are immutable")
        if after.repair_attempts != before.repair_attempts:
            raise InvariantViolation(before.id, "repair_attempts changed after resolution")
