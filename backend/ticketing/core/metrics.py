"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking admission metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking admission attempts',
    ['outcome']  # admitted, rejected, error
)

booking_rejections = Counter(
    'booking_rejections_total',
    'Rejected booking requests by error code',
    ['code']
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking admission latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Advisory gate metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total advisory admission gate decisions',
    ['result']  # admitted, rejected
)

# Lifecycle metrics
lifecycle_transitions = Counter(
    'booking_lifecycle_transitions_total',
    'Booking state transitions',
    ['transition']  # confirm, cancel
)

# Consistency faults
inventory_guard_rejections = Counter(
    'inventory_guard_rejections_total',
    'Admissions rejected by the conditional store write',
    ['guard']  # capacity, seat
)

inventory_restore_failures = Counter(
    'inventory_restore_failures_total',
    'Cancellations whose inventory restoration failed and needs reconciliation'
)

compensations = Counter(
    'booking_compensations_total',
    'Admission compensations after a failed inventory decrement',
    ['result']  # clean, deleted, failed
)

booking_number_fallbacks = Counter(
    'booking_number_fallbacks_total',
    'Booking numbers issued by the unchecked timestamp scheme'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str, code: str = None):
    """Record booking attempt. Outcome: admitted, rejected, error"""
    booking_attempts.labels(outcome=outcome).inc()
    if code:
        booking_rejections.labels(code=code).inc()


def record_admission(admitted: bool):
    """Record advisory gate decision."""
    result = "admitted" if admitted else "rejected"
    admission_requests.labels(result=result).inc()


def record_transition(transition: str):
    lifecycle_transitions.labels(transition=transition).inc()


def record_guard_rejection(guard: str):
    """Record a rejection by the authoritative store guard. Guard: capacity, seat"""
    inventory_guard_rejections.labels(guard=guard).inc()


def record_compensation(result: str):
    compensations.labels(result=result).inc()
