"""Métricas Prometheus del gateway."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


GATEWAY_REQUESTS = Counter(
    "gateway_requests_total",
    "Encrypted gateway requests by outcome",
    ["outcome"],  # ok, bad_request, unauthorized, expired, upstream_error, domain_blocked, error
)
UPSTREAM_LATENCY = Histogram(
    "gateway_upstream_latency_seconds",
    "Upstream aggregation API latency",
    ["media_type"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
)
STATS_EVENTS = Counter(
    "gateway_stats_events_total",
    "Source update events recorded by the stats aggregator",
    ["kind"],  # request, selection
)
STATS_PERSIST_FAILURES = Counter(
    "gateway_stats_persist_failures_total",
    "Stats snapshots that could not be persisted",
)
STATS_SUBSCRIBERS = Gauge(
    "gateway_stats_subscribers",
    "Live stats stream subscribers",
)
STATS_SUBSCRIBERS_DROPPED = Counter(
    "gateway_stats_subscribers_dropped_total",
    "Stats subscribers dropped after a failed write",
)
ADMIN_OPERATIONS = Counter(
    "gateway_admin_operations_total",
    "Administrative source operations",
    ["operation"],  # create, update, delete, reorder
)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
