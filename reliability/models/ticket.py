"""
Support ticket models.
Tickets live in the external ticket desk; only the creation hand-off is modeled here.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID

from reliability.models.incident import IncidentSeverity, SourceType


class TicketPriority(str, Enum):
    """Ticket desk priority levels."""
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


TICKET_SOURCE = "operations_incident"


class TicketContext(BaseModel):
    """Incident context handed to the ticket desk when escalating."""
    incident_id: UUID
    subject: str
    description: str
    priority: TicketPriority
    severity: IncidentSeverity
    source_type: SourceType
    source_id: Optional[str] = None
    repair_attempts: int = 0
    last_repair_attempt_at: Optional[datetime] = None
    detected_at: datetime
    source: str = Field(default=TICKET_SOURCE)


class TicketReference(BaseModel):
    """Ticket as returned by the ticket desk."""
    id: str
    status: str = "open"
    incident_id: Optional[UUID] = None
    source_id: Optional[str] = None
