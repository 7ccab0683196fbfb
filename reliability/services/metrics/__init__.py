# Metrics package
from reliability.services.metrics.aggregator import (
    ReliabilityMetricsAggregator,
    integrity_rate,
    mean_minutes_to_resolve,
    rate_percent,
)
from reliability.services.metrics.integrity import (
    HttpIntegritySource,
    IntegritySnapshot,
    IntegritySource,
    StaticIntegritySource,
)

__all__ = [
    "ReliabilityMetricsAggregator",
    "integrity_rate",
    "mean_minutes_to_resolve",
    "rate_percent",
    "HttpIntegritySource",
    "IntegritySnapshot",
    "IntegritySource",
    "StaticIntegritySource",
]
