"""
Ticket Gateway.
Hands an incident over to the support ticket desk.
"""
from abc import ABC, abstractmethod
from typing import Optional
import httpx
import structlog
from pydantic import ValidationError

from reliability.config import settings
from reliability.errors import DuplicateTicketError, TicketGatewayError
from reliability.models import Incident, TicketContext, TicketReference
from reliability.services.escalation.policy import ticket_priority


logger = structlog.get_logger()

# Reason fragments the ticket desk uses for its own duplicate detection
DUPLICATE_MARKERS = ("duplicate", "already exists")


def build_ticket_context(incident: Incident) -> TicketContext:
    """Subject, description and priority for an incident's support ticket."""
    source_label = incident.source_type.value.capitalize()
    subject = f"{source_label} processing: {incident.title}"

    lines = [
        "Created from Operations Center incident.",
        "",
        f"Incident: {incident.title}",
    ]
    if incident.description:
        lines.append(f"Details: {incident.description}")
    lines.append("")
    lines.append(f"Source: {incident.source_type.value} {incident.source_id or '(none)'}")
    lines.append(f"Severity: {incident.severity.value}")
    lines.append(f"Detected at: {incident.detected_at.isoformat()}")
    lines.append(f"Repair attempts: {incident.repair_attempts}")
    if incident.last_repair_attempt_at:
        lines.append(f"Last repair attempt: {incident.last_repair_attempt_at.isoformat()}")

    return TicketContext(
        incident_id=incident.id,
        subject=subject,
        description="\n".join(lines),
        priority=ticket_priority(incident.severity),
        severity=incident.severity,
        source_type=incident.source_type,
        source_id=incident.source_id,
        repair_attempts=incident.repair_attempts,
        last_repair_attempt_at=incident.last_repair_attempt_at,
        detected_at=incident.detected_at,
    )


class TicketGateway(ABC):
    """Creates support tickets."""

    @abstractmethod
    async def create(self, context: TicketContext) -> TicketReference:
        """
        Create a ticket.

        Raises DuplicateTicketError when the desk already has one for this
        incident or asset, TicketGatewayError on any other failure.
        """

    async def close(self) -> None:
        """Release any held resources."""


class HttpTicketGateway(TicketGateway):
    """Ticket gateway for the support desk's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.ticket_desk_url
        self.timeout = timeout if timeout is not None else settings.ticket_timeout_seconds

        token = api_token or settings.ticket_desk_api_token
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        self._client = None
        if self.base_url:
            self._client = httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=self.timeout,
                headers=headers,
                transport=transport,
            )

    async def create(self, context: TicketContext) -> TicketReference:
        if self._client is None:
            logger.warning("Ticket desk not configured, cannot escalate")
            raise TicketGatewayError("ticket desk not configured")

        try:
            response = await self._client.post(
                "/api/v1/tickets",
                json={
                    "type": "internal",
                    "assigned_team": "engineering",
                    "subject": context.subject,
                    "description": context.description,
                    "severity": context.priority.value,
                    "metadata": context.model_dump(mode="json"),
                },
            )
        except httpx.HTTPError as e:
            raise TicketGatewayError(f"ticket desk unreachable: {e}") from e

        data = self._json_body(response)
        reason = str(data.get("error") or data.get("detail") or "")

        if response.status_code == 409 or self._is_duplicate(reason):
            existing = data.get("ticket_id")
            raise DuplicateTicketError(
                reason or "ticket already exists",
                existing_ticket_id=str(existing) if existing else None,
            )

        if response.is_error:
            raise TicketGatewayError(
                reason or f"ticket desk returned {response.status_code}"
            )

        ticket_id = data.get("id") or data.get("ticket_id")
        if not ticket_id:
            raise TicketGatewayError("ticket desk response missing ticket id")

        try:
            return TicketReference(
                id=str(ticket_id),
                status=str(data.get("status") or "open"),
                incident_id=context.incident_id,
                source_id=context.source_id,
            )
        except ValidationError as e:
            raise TicketGatewayError(f"unreadable ticket desk response: {e}") from e

    @staticmethod
    def _is_duplicate(reason: str) -> bool:
        lowered = reason.lower()
        return any(marker in lowered for marker in DUPLICATE_MARKERS)

    @staticmethod
    def _json_body(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
