# Escalation package
from reliability.services.escalation.policy import (
    CHRONIC_FAILURE_THRESHOLD,
    EscalationPolicy,
    is_chronic_failure,
    ticket_priority,
)
from reliability.services.escalation.gateway import (
    HttpTicketGateway,
    TicketGateway,
    build_ticket_context,
)
from reliability.services.escalation.service import EscalationService

__all__ = [
    "CHRONIC_FAILURE_THRESHOLD",
    "EscalationPolicy",
    "is_chronic_failure",
    "ticket_priority",
    "HttpTicketGateway",
    "TicketGateway",
    "build_ticket_context",
    "EscalationService",
]
