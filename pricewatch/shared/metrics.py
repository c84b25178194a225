"""Prometheus metrics for the price tracking service."""
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST


# ============================================
# Provider Metrics
# ============================================

PROVIDER_REQUESTS = Counter(
    'pricewatch_provider_requests_total',
    'Total outbound provider searches',
    ['provider', 'operation', 'outcome']
)

PROVIDER_ERRORS = Counter(
    'pricewatch_provider_errors_total',
    'Provider failures by normalized error kind',
    ['provider', 'kind']
)

PROVIDER_LATENCY = Histogram(
    'pricewatch_provider_latency_seconds',
    'Time spent in a provider search',
    ['provider'],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 45.0]
)

RATE_LIMIT_WAITS = Counter(
    'pricewatch_rate_limit_waits_total',
    'Times a provider call waited for its rate-limit window',
    ['provider']
)


# ============================================
# Aggregator Metrics
# ============================================

SNAPSHOTS_RECORDED = Counter(
    'pricewatch_snapshots_recorded_total',
    'Aggregate price snapshots appended to history',
    ['type']
)


# ============================================
# Tracker Metrics
# ============================================

ALERTS_CHECKED = Counter(
    'pricewatch_alerts_checked_total',
    'Alerts processed by the tracker',
    ['result']
)

ALERTS_TRIGGERED = Counter(
    'pricewatch_alerts_triggered_total',
    'Alerts that moved to triggered',
    ['type']
)

TICK_DURATION = Histogram(
    'pricewatch_tick_duration_seconds',
    'Duration of one tracker tick',
    buckets=[1, 5, 15, 30, 60, 120, 300, 600]
)

ACTIVE_ALERTS = Gauge(
    'pricewatch_active_alerts',
    'Active alerts seen by the last tick'
)


# ============================================
# Notifier Metrics
# ============================================

NOTIFICATIONS_SENT = Counter(
    'pricewatch_notifications_sent_total',
    'Notification attempts',
    ['channel', 'status']
)


SERVICE_INFO = Info(
    'pricewatch_service',
    'Service information'
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
