"""
Reliability Metrics Aggregator.
Read-only statistics over the incident store for a time window.
"""
from typing import Callable, Iterable, Optional
import httpx
import structlog

from reliability.config import settings
from reliability.models import (
    Incident,
    MetricsWindow,
    ReliabilityReport,
    ResolutionKind,
    utc_now,
)
from reliability.services.metrics.integrity import IntegritySnapshot, IntegritySource
from reliability.store import IncidentStore


logger = structlog.get_logger()


def integrity_rate(eligible: int, invalid: int) -> float:
    """Percentage of eligible resources passing the integrity check. 100 when nothing is eligible."""
    if eligible <= 0:
        return 100.0
    invalid = min(max(invalid, 0), eligible)
    return round(100.0 * (eligible - invalid) / eligible, 2)


def rate_percent(numerator: int, denominator: int) -> tuple[float, bool]:
    """(rate, no_data). A zero denominator gives (0.0, True), never NaN."""
    if denominator <= 0:
        return 0.0, True
    return round(100.0 * numerator / denominator, 2), False


def mean_minutes_to_resolve(incidents: Iterable[Incident]) -> Optional[float]:
    """Mean of resolved_at - detected_at in minutes. None when nothing was resolved."""
    durations = [
        (i.resolved_at - i.detected_at).total_seconds() / 60.0
        for i in incidents
        if i.resolved_at is not None
    ]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 2)


class ReliabilityMetricsAggregator:
    """Computes the ReliabilityReport on demand. Never mutates the store."""

    def __init__(
        self,
        store: IncidentStore,
        integrity_source: Optional[IntegritySource] = None,
        default_window_hours: Optional[int] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.integrity_source = integrity_source
        self.default_window_hours = default_window_hours or settings.metrics_window_hours
        self.clock = clock

    def default_window(self) -> MetricsWindow:
        return MetricsWindow.trailing(self.default_window_hours, end=self.clock())

    async def compute_metrics(self, window: Optional[MetricsWindow] = None) -> ReliabilityReport:
        window = window or self.default_window()

        integrity, integrity_available = await self._integrity()
        resolved = await self.store.list_resolved_between(window.start, window.end)
        escalated = await self.store.list_escalated_between(window.start, window.end)
        detected_count = await self.store.count_detected_between(window.start, window.end)
        unresolved_count = await self.store.count_open()

        auto_recovered = sum(
            1 for i in resolved if i.resolution_kind == ResolutionKind.AUTO_RECOVERED
        )
        recovery_rate, recovery_no_data = rate_percent(auto_recovered, len(resolved))
        escalation_rate, escalation_no_data = rate_percent(len(escalated), detected_count)

        report = ReliabilityReport(
            window_start=window.start,
            window_end=window.end,
            eligible_count=integrity.eligible,
            invalid_count=min(integrity.invalid, integrity.eligible),
            integrity_rate_percent=integrity_rate(integrity.eligible, integrity.invalid),
            integrity_available=integrity_available,
            resolved_count_in_window=len(resolved),
            mttr_minutes_avg=mean_minutes_to_resolve(resolved),
            auto_recovered_count_in_window=auto_recovered,
            recovery_rate_percent=recovery_rate,
            recovery_rate_no_data=recovery_no_data,
            detected_count_in_window=detected_count,
            escalated_count_in_window=len(escalated),
            escalation_rate_percent=escalation_rate,
            escalation_rate_no_data=escalation_no_data,
            unresolved_count=unresolved_count,
            computed_at=self.clock(),
        )

        logger.debug(
            "Reliability metrics computed",
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            resolved=report.resolved_count_in_window,
            unresolved=report.unresolved_count,
        )
        return report

    async def _integrity(self) -> tuple[IntegritySnapshot, bool]:
        """Integrity counts and whether the source answered."""
        if self.integrity_source is None:
            return IntegritySnapshot(), True

        try:
            snapshot = await self.integrity_source.snapshot()
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.error("Integrity source unavailable", error=str(e))
            return IntegritySnapshot(), False

        if snapshot.invalid > snapshot.eligible:
            logger.warning(
                "Integrity source reported more invalid than eligible resources",
                eligible=snapshot.eligible,
                invalid=snapshot.invalid,
            )
        return snapshot, True
