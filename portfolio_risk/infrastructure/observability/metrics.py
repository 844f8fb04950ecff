"""Prometheus metrics for monitoring recalculations, weight fallbacks, and channel fan-out"""

from typing import Mapping
from prometheus_client import Counter, Histogram, Gauge

# Recalculation metrics
recalculation_counter = Counter(
    "portfolio_recalculation_total",
    "Batch recalculations run",
    ["outcome"],  # completed | cancelled
)

recalculation_duration_histogram = Histogram(
    "portfolio_recalculation_duration_seconds",
    "Batch recalculation wall time",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

client_score_failure_counter = Counter(
    "portfolio_client_score_failures_total",
    "Clients the batch job failed to score or persist",
)

classification_counter = Counter(
    "portfolio_urgency_classification_total",
    "Urgency classifications assigned by batch recalculation",
    ["tier"],
)

# Scoring anomalies
urgency_weight_fallback_counter = Counter(
    "urgency_weight_fallback_total",
    "Urgency scores computed with fallback weights because the family summed to zero",
)

# Channel metrics
weight_broadcast_counter = Counter(
    "weight_broadcast_total",
    "weight_update messages delivered to observers",
    ["result"],  # delivered | dropped
)

connected_observers_gauge = Gauge(
    "weight_channel_connected_observers",
    "Observers currently connected to the weight channel",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_recalculation(cancelled: bool, failed: int, tier_counts: Mapping[str, int], duration_seconds: float) -> None:
    """Record batch outcome, failures and tier distribution"""
    recalculation_counter.labels(outcome="cancelled" if cancelled else "completed").inc()
    recalculation_duration_histogram.observe(duration_seconds)

    if failed:
        client_score_failure_counter.inc(failed)

    for tier, count in tier_counts.items():
        if count:
            classification_counter.labels(tier=tier).inc(count)


def record_broadcast(delivered: int, dropped: int) -> None:
    if delivered:
        weight_broadcast_counter.labels(result="delivered").inc(delivered)
    if dropped:
        weight_broadcast_counter.labels(result="dropped").inc(dropped)
