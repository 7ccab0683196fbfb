"""
Operations Center API - FastAPI application for incident repair and escalation.
Exposes the open-incident listing, single and bulk incident actions, and the
reliability metrics.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field, ValidationError
from starlette.responses import Response

from reliability import __version__
from reliability.config import settings
from reliability.database import check_database_connection
from reliability.errors import (
    BulkRequestError,
    IncidentNotFoundError,
    InvariantViolation,
    ReasonCode,
    TransientError,
)
from reliability.models import (
    BulkReport,
    Incident,
    IncidentCreate,
    IncidentSummary,
    MetricsWindow,
    OperationOutcome,
    OperationResult,
    ReliabilityReport,
    ResolutionKind,
    parse_incident_id,
)
from reliability.services import ReliabilityServices, build_services
from reliability.services.mutation import REASON_NOT_FOUND, report_violation
from reliability.telemetry import setup_logging


logger = structlog.get_logger()

STATUS_BY_OUTCOME = {
    OperationOutcome.SUCCESS: 200,
    OperationOutcome.FAILURE: 200,
    OperationOutcome.CONFLICT: 409,
    OperationOutcome.NOT_FOUND: 404,
}


class ResolveRequest(BaseModel):
    """Body of a manual resolution request."""
    resolution: ResolutionKind = ResolutionKind.MANUAL


class BulkRequest(BaseModel):
    """Body of a bulk action request."""
    action: str = Field(..., description="attempt_repair, create_ticket or resolve")
    incident_ids: list[str] = Field(default_factory=list)


def _services(request: Request) -> ReliabilityServices:
    return request.app.state.services


def _respond(result: OperationResult) -> JSONResponse:
    """Expected outcomes map onto status codes; the body always carries the result."""
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=STATUS_BY_OUTCOME[result.outcome],
    )


def _not_found(incident_id: str) -> JSONResponse:
    return JSONResponse(
        content={
            "incident_id": incident_id,
            "outcome": OperationOutcome.NOT_FOUND.value,
            "code": ReasonCode.NOT_FOUND.value,
            "reason": REASON_NOT_FOUND,
        },
        status_code=404,
    )


def create_app(services: Optional[ReliabilityServices] = None) -> FastAPI:
    """Build the API. Injected services are used as is and left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        owned = services is None
        if owned:
            setup_logging(settings)
        logger.info("Starting Operations Center API", environment=settings.app_env)
        app.state.services = services or await build_services(settings)
        yield
        # Shutdown
        logger.info("Shutting down Operations Center API")
        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="Operations Center",
        description="Incident repair orchestration, ticket escalation and reliability metrics",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvariantViolation)
    async def invariant_violation_handler(request: Request, exc: InvariantViolation):
        return JSONResponse(
            status_code=500,
            content={
                "code": ReasonCode.INVARIANT_VIOLATION.value,
                "incident_id": str(exc.incident_id),
                "detail": exc.detail,
            },
        )

    @app.exception_handler(TransientError)
    async def transient_error_handler(request: Request, exc: TransientError):
        logger.warning("Request failed on a transient error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(BulkRequestError)
    async def bulk_request_error_handler(request: Request, exc: BulkRequestError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    # Health checks
    @app.get("/health")
    async def health_check():
        """Basic health check."""
        return {"status": "healthy", "service": "operations-center"}

    @app.get("/health/ready")
    async def readiness_check(request: Request):
        """Readiness check including the database when one is configured."""
        engine = _services(request).engine
        checks = {"store": True if engine is None else await check_database_connection(engine)}

        all_healthy = all(checks.values())
        return JSONResponse(
            content={"status": "ready" if all_healthy else "not_ready", "checks": checks},
            status_code=200 if all_healthy else 503,
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    # Detector append
    @app.post("/api/v1/incidents", response_model=Incident, status_code=201)
    async def create_incident(incident_data: IncidentCreate, request: Request):
        """Record a newly detected incident."""
        return await _services(request).store.add(incident_data)

    # Open incidents
    @app.get("/api/v1/incidents", response_model=list[IncidentSummary])
    async def list_incidents(
        request: Request,
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        """List open incidents, most recently detected first."""
        services = _services(request)
        incidents = await services.store.list_open(limit=limit, offset=offset)
        return [
            IncidentSummary(
                **incident.model_dump(),
                escalation_suggested=services.policy.should_create_ticket(incident),
            )
            for incident in incidents
        ]

    @app.post("/api/v1/incidents/bulk", response_model=BulkReport)
    async def bulk_action(body: BulkRequest, request: Request):
        """Apply one action to many incidents. Every requested ID gets an entry."""
        return await _services(request).bulk.run_bulk(body.action, body.incident_ids)

    @app.get("/api/v1/incidents/{incident_id}", response_model=Incident)
    async def get_incident(incident_id: str, request: Request):
        """Get incident details by ID."""
        parsed = parse_incident_id(incident_id)
        if parsed is None:
            raise HTTPException(status_code=404, detail="Incident not found")

        try:
            return await _services(request).store.get(parsed)
        except IncidentNotFoundError:
            raise HTTPException(status_code=404, detail="Incident not found")
        except InvariantViolation as e:
            report_violation(e)
            raise

    @app.post("/api/v1/incidents/{incident_id}/repair")
    async def attempt_repair(incident_id: str, request: Request):
        """Make one repair attempt."""
        parsed = parse_incident_id(incident_id)
        if parsed is None:
            return _not_found(incident_id)
        return _respond(await _services(request).orchestrator.attempt_repair(parsed))

    @app.post("/api/v1/incidents/{incident_id}/ticket")
    async def create_ticket(incident_id: str, request: Request):
        """Escalate to a support ticket, at most once per incident."""
        parsed = parse_incident_id(incident_id)
        if parsed is None:
            return _not_found(incident_id)
        return _respond(await _services(request).escalation.create_ticket(parsed))

    @app.post("/api/v1/incidents/{incident_id}/resolve")
    async def resolve_incident(
        incident_id: str,
        request: Request,
        body: Optional[ResolveRequest] = None,
    ):
        """Resolve an open incident by hand."""
        parsed = parse_incident_id(incident_id)
        if parsed is None:
            return _not_found(incident_id)
        kind = body.resolution if body else ResolutionKind.MANUAL
        return _respond(await _services(request).resolver.resolve(parsed, kind))

    # Reliability metrics
    @app.get("/api/v1/reliability/metrics", response_model=ReliabilityReport)
    async def reliability_metrics(
        request: Request,
        window_hours: Optional[float] = Query(None, gt=0),
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        """Reliability statistics for a trailing window or an explicit [start, end] range."""
        aggregator = _services(request).metrics

        if start is not None or end is not None:
            if start is None or end is None:
                raise HTTPException(status_code=422, detail="start and end must be given together")
            try:
                window = MetricsWindow(start=start, end=end)
            except ValidationError:
                raise HTTPException(status_code=422, detail="window start must not be after window end")
        elif window_hours is not None:
            window = MetricsWindow.trailing(window_hours, end=aggregator.clock())
        else:
            window = None

        return await aggregator.compute_metrics(window)

    return app


app = create_app()
