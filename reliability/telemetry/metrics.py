"""
Prometheus counters for incident operations.
"""
from prometheus_client import Counter, Histogram


REPAIR_ATTEMPTS = Counter(
    "reliability_repair_attempts_total",
    "Repair attempts by outcome",
    ["source_type", "outcome"]
)
TICKET_REQUESTS = Counter(
    "reliability_ticket_requests_total",
    "Create-ticket requests by outcome",
    ["outcome"]
)
MANUAL_RESOLUTIONS = Counter(
    "reliability_manual_resolutions_total",
    "Incidents resolved by an operator",
    ["resolution_kind"]
)
BULK_RUNS = Counter(
    "reliability_bulk_runs_total",
    "Bulk action runs",
    ["action"]
)
INVARIANT_VIOLATIONS = Counter(
    "reliability_invariant_violations_total",
    "Stored incidents found breaking a lifecycle invariant"
)
EXTERNAL_CALL_LATENCY = Histogram(
    "reliability_external_call_latency_seconds",
    "Latency of repair service and ticket desk calls",
    ["target"]
)
