"""
Prometheus metrics for the sync service.

Metrics exposed:
- Shockball API request counters by outcome
- Rate budget gauges
- Sync attempt counters per endpoint kind and outcome
- Persistence failure counters per entity
- Scheduler status gauges
"""
from prometheus_client import Counter, Gauge

# External API Metrics
shockball_api_requests_total = Counter(
    "shockball_api_requests_total",
    "Total Shockball API requests",
    ["outcome"]  # ok, not_modified, throttled, error, network_error
)

shockball_rate_limit_remaining = Gauge(
    "shockball_rate_limit_remaining",
    "Requests remaining in the current Shockball rate window"
)

shockball_rate_limit_reset_timestamp = Gauge(
    "shockball_rate_limit_reset_timestamp",
    "Unix time at which the Shockball rate window resets"
)

# Sync Metrics
sync_attempts_total = Counter(
    "sync_attempts_total",
    "Total sync attempts recorded to the audit log",
    ["endpoint", "outcome"]  # endpoint: upcoming, recent, replay
)

persistence_failures_total = Counter(
    "persistence_failures_total",
    "Total swallowed persistence write failures",
    ["entity"]
)

# Scheduler Metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the sync scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)


def record_api_request(outcome: str) -> None:
    """Record one upstream request by outcome."""
    shockball_api_requests_total.labels(outcome=outcome).inc()


def update_rate_budget(remaining: int, reset_at: int) -> None:
    """Mirror the client's rate budget into gauges."""
    shockball_rate_limit_remaining.set(remaining)
    shockball_rate_limit_reset_timestamp.set(reset_at)


def record_sync_attempt(endpoint: str, http_status: int) -> None:
    """
    Record an audit entry.

    Per-match replay endpoints (``replay:{id}``) collapse into one label
    to keep cardinality bounded.
    """
    kind = endpoint.split(":", 1)[0]
    if http_status == 200:
        outcome = "fetched"
    elif http_status == 304:
        outcome = "unchanged"
    else:
        outcome = "error"
    sync_attempts_total.labels(endpoint=kind, outcome=outcome).inc()


def record_persistence_failure(entity: str) -> None:
    """Record a persistence write that was logged and skipped."""
    persistence_failures_total.labels(entity=entity).inc()


def update_scheduler_metrics():
    """Update scheduler metrics from the global scheduler."""
    from shockball_analytics.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        if scheduler.scheduler:
            scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)
