"""
Escalation Policy.
Advisory rules for when an incident should be turned into a support ticket.
Pure functions over incident state; nothing here mutates or enforces.
"""
from typing import Optional

from reliability.config import settings
from reliability.models import (
    Incident,
    IncidentSeverity,
    IncidentStatus,
    TicketPriority,
)


CHRONIC_FAILURE_THRESHOLD = 3

# Failed attempts after which a warning-level incident warrants a ticket
WARNING_TICKET_AFTER_ATTEMPTS = 2

SEVERITY_PRIORITY = {
    IncidentSeverity.CRITICAL: TicketPriority.P0,
    IncidentSeverity.ERROR: TicketPriority.P1,
}


def is_chronic_failure(
    repair_attempts: int,
    status: IncidentStatus,
    threshold: int = CHRONIC_FAILURE_THRESHOLD,
) -> bool:
    """Automated repair is unlikely to succeed further without a human."""
    return status == IncidentStatus.OPEN and repair_attempts >= threshold


def ticket_priority(severity: IncidentSeverity) -> TicketPriority:
    return SEVERITY_PRIORITY.get(severity, TicketPriority.P2)


class EscalationPolicy:
    """Decides whether an open incident should be surfaced for ticket creation."""

    def __init__(self, chronic_threshold: Optional[int] = None):
        self.chronic_threshold = chronic_threshold or settings.chronic_failure_threshold

    def is_chronic(self, incident: Incident) -> bool:
        return is_chronic_failure(
            incident.repair_attempts,
            incident.status,
            self.chronic_threshold,
        )

    def should_create_ticket_by_severity(self, incident: Incident) -> bool:
        """
        Severity rules:
        - info: never
        - warning: only after repeated failed repairs
        - error, critical: immediately
        """
        if incident.severity in (IncidentSeverity.ERROR, IncidentSeverity.CRITICAL):
            return True
        if incident.severity == IncidentSeverity.WARNING:
            return incident.repair_attempts >= WARNING_TICKET_AFTER_ATTEMPTS
        return False

    def should_create_ticket(self, incident: Incident) -> bool:
        """Suggest a ticket for open, unticketed incidents that are chronic or severe."""
        if not incident.is_open or incident.is_ticketed:
            return False
        return self.is_chronic(incident) or self.should_create_ticket_by_severity(incident)
