"""
Service wiring.
Builds the store, adapters and services from settings.
"""
from dataclasses import dataclass, field
from typing import Optional
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from reliability.config import Settings, settings as default_settings
from reliability.database import build_engine, build_session_factory, close_database, init_database
from reliability.services.bulk import BulkActionCoordinator
from reliability.services.escalation import (
    EscalationPolicy,
    EscalationService,
    HttpTicketGateway,
    TicketGateway,
)
from reliability.services.metrics import (
    HttpIntegritySource,
    IntegritySource,
    ReliabilityMetricsAggregator,
)
from reliability.services.repair import HttpRepairInvoker, RepairInvoker, RepairOrchestrator
from reliability.services.resolution import IncidentResolver
from reliability.store import (
    IncidentLockManager,
    IncidentStore,
    InMemoryIncidentStore,
    LocalIncidentLocks,
    RedisIncidentLocks,
    SQLIncidentStore,
)


logger = structlog.get_logger()


@dataclass
class ReliabilityServices:
    """Everything the API and CLI need, sharing one store and one lock manager."""
    store: IncidentStore
    locks: IncidentLockManager
    invoker: RepairInvoker
    gateway: TicketGateway
    policy: EscalationPolicy
    orchestrator: RepairOrchestrator
    escalation: EscalationService
    resolver: IncidentResolver
    bulk: BulkActionCoordinator
    metrics: ReliabilityMetricsAggregator
    integrity_source: Optional[IntegritySource] = None
    engine: Optional[AsyncEngine] = field(default=None, repr=False)

    @classmethod
    def assemble(
        cls,
        store: IncidentStore,
        invoker: RepairInvoker,
        gateway: TicketGateway,
        locks: Optional[IncidentLockManager] = None,
        integrity_source: Optional[IntegritySource] = None,
        config: Optional[Settings] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> "ReliabilityServices":
        config = config or default_settings
        locks = locks or LocalIncidentLocks()
        policy = EscalationPolicy(config.chronic_failure_threshold)

        orchestrator = RepairOrchestrator(
            store,
            invoker,
            locks,
            policy=policy,
            timeout_seconds=config.repair_timeout_seconds,
        )
        escalation = EscalationService(
            store,
            gateway,
            locks,
            timeout_seconds=config.ticket_timeout_seconds,
        )
        resolver = IncidentResolver(store, locks)
        bulk = BulkActionCoordinator(
            orchestrator,
            escalation,
            resolver,
            max_concurrency=config.bulk_max_concurrency,
            max_batch_size=config.bulk_max_batch_size,
        )
        metrics = ReliabilityMetricsAggregator(
            store,
            integrity_source=integrity_source,
            default_window_hours=config.metrics_window_hours,
        )

        return cls(
            store=store,
            locks=locks,
            invoker=invoker,
            gateway=gateway,
            policy=policy,
            orchestrator=orchestrator,
            escalation=escalation,
            resolver=resolver,
            bulk=bulk,
            metrics=metrics,
            integrity_source=integrity_source,
            engine=engine,
        )

    async def close(self) -> None:
        await self.invoker.close()
        await self.gateway.close()
        if self.integrity_source is not None:
            await self.integrity_source.close()
        await self.locks.close()
        await self.store.close()
        await close_database(self.engine)


async def build_services(config: Optional[Settings] = None) -> ReliabilityServices:
    """Build the service container for the configured backends."""
    config = config or default_settings

    engine = None
    if config.store_backend == "sql":
        engine = build_engine(config.pg_database_url, echo=config.debug)
        await init_database(engine)
        store: IncidentStore = SQLIncidentStore(build_session_factory(engine))
    elif config.store_backend == "memory":
        store = InMemoryIncidentStore()
    else:
        raise ValueError(f"Unknown store backend: {config.store_backend}")

    if config.lock_backend == "redis":
        locks: IncidentLockManager = RedisIncidentLocks(
            config.redis_connection_url,
            lease_seconds=config.lock_lease_seconds,
            wait_seconds=config.lock_wait_seconds,
        )
    elif config.lock_backend == "local":
        locks = LocalIncidentLocks()
    else:
        raise ValueError(f"Unknown lock backend: {config.lock_backend}")

    integrity_source = None
    if config.integrity_service_url:
        integrity_source = HttpIntegritySource(config.integrity_service_url)

    services = ReliabilityServices.assemble(
        store=store,
        invoker=HttpRepairInvoker(config.repair_service_url, config.repair_timeout_seconds),
        gateway=HttpTicketGateway(
            config.ticket_desk_url,
            config.ticket_desk_api_token,
            config.ticket_timeout_seconds,
        ),
        locks=locks,
        integrity_source=integrity_source,
        config=config,
        engine=engine,
    )

    logger.info(
        "Reliability services ready",
        store_backend=config.store_backend,
        lock_backend=config.lock_backend,
        ticket_desk_configured=bool(config.ticket_desk_url),
    )
    return services
