"""
Repair Invoker.
Asks the asset pipeline / job dispatcher to repair the resource behind an incident.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional
import httpx
import structlog
from pydantic import BaseModel, Field

from reliability.config import settings
from reliability.errors import RepairInvocationError
from reliability.models import Incident, SourceType


logger = structlog.get_logger()

# Constants
MESSAGE_NO_STRATEGY = "No automated repair strategy for this source type"
MESSAGE_NO_SOURCE = "Incident has no source resource to repair"


class RepairOutcome(BaseModel):
    """What the repair service reported."""
    success: bool
    changes: list[Any] = Field(default_factory=list)
    message: Optional[str] = None


class RepairInvoker(ABC):
    """Opaque repair call against an incident's source resource."""

    @abstractmethod
    async def invoke(self, incident: Incident) -> RepairOutcome:
        """
        Attempt a repair.

        Returns the outcome when the repair service answered; raises
        RepairInvocationError when it could not be reached or errored.
        """

    async def close(self) -> None:
        """Release any held resources."""


class HttpRepairInvoker(RepairInvoker):
    """Repair invoker backed by the platform's internal repair API."""

    # Source types with an automated strategy, and the route that applies it
    ROUTES = {
        SourceType.ASSET: "/v1/assets/{source_id}/reconcile",
        SourceType.JOB: "/v1/jobs/{source_id}/retry",
    }

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.repair_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.repair_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    async def invoke(self, incident: Incident) -> RepairOutcome:
        route = self.ROUTES.get(incident.source_type)
        if route is None:
            return RepairOutcome(success=False, message=MESSAGE_NO_STRATEGY)
        if not incident.source_id:
            return RepairOutcome(success=False, message=MESSAGE_NO_SOURCE)

        payload = {
            "incident_id": str(incident.id),
            "incident_title": incident.title,
            # Jobs are only re-dispatched when the detector marked them retryable
            "dispatch_retry": incident.source_type == SourceType.JOB and incident.retryable,
        }

        try:
            response = await self._client.post(
                route.format(source_id=incident.source_id),
                json=payload,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise RepairInvocationError(
                f"Repair service returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RepairInvocationError(f"Repair service unreachable: {e}") from e
        except ValueError as e:
            raise RepairInvocationError("Repair service returned invalid JSON") from e

        outcome = RepairOutcome(
            success=bool(data.get("resolved", False)),
            changes=data.get("changes") or [],
            message=data.get("message"),
        )

        logger.debug(
            "Repair service answered",
            incident_id=str(incident.id),
            source_type=incident.source_type.value,
            success=outcome.success,
            change_count=len(outcome.changes),
        )

        return outcome

    async def close(self) -> None:
        await self._client.aclose()
