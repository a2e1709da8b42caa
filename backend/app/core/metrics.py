"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registration_outcomes = Counter(
    'registration_outcomes_total',
    'Registration attempts by resulting status',
    ['status']  # approved, pending, conflict, closed, not_found
)

# Admission controller metrics
admission_transitions = Counter(
    'admission_transitions_total',
    'Committed participant transitions',
    ['transition']  # approve, reject, withdraw, remove, promote
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Pending participants promoted after a seat was freed'
)

admission_latency = Histogram(
    'admission_operation_latency_seconds',
    'Time spent inside the per-event critical section',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

capacity_rejections = Counter(
    'capacity_exceeded_total',
    'Administrative approvals refused because the event was full'
)

# Notification metrics
notifications_sent = Counter(
    'notifications_sent_total',
    'Notifications delivered',
    ['outcome']
)

notification_failures = Counter(
    'notification_failures_total',
    'Notification deliveries that raised',
    ['outcome']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_registration(status: str):
    """Record registration outcome. Status: approved, pending, conflict, closed, not_found"""
    registration_outcomes.labels(status=status).inc()


def record_transition(transition: str):
    admission_transitions.labels(transition=transition).inc()
    if transition == "promote":
        waitlist_promotions.inc()


def record_notification(outcome: str, delivered: bool):
    if delivered:
        notifications_sent.labels(outcome=outcome).inc()
    else:
        notification_failures.labels(outcome=outcome).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
