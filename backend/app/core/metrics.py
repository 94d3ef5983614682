"""
Prometheus metrics for bookings, check-ins and their side effects.
Exposed at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

booking_attempts = Counter(
    "table_booking_attempts_total",
    "Table booking submissions",
    ["status"],  # created, rejected
)

booking_latency = Histogram(
    "table_booking_latency_seconds",
    "Time spent in the booking workflow",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

checkin_attempts = Counter(
    "checkin_attempts_total",
    "Check-in requests that reached the insert step",
    ["result"],  # created, duplicate, race_recovered
)

side_effect_failures = Counter(
    "side_effect_failures_total",
    "Post-commit side effects that raised",
    ["effect"],
)

payment_sessions = Counter(
    "payment_sessions_total",
    "Checkout session attempts against the payment gateway",
    ["result"],  # created, skipped, failed
)

tracked_checkins = Counter(
    "tracked_checkins_total",
    "Check-ins reported to analytics",
    ["method"],  # qr_code, manual
)

cache_operations = Counter(
    "cache_operations_total",
    "Cache operations",
    ["operation", "result"],  # get/set, hit/miss/error
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    booking_attempts.labels(status=status).inc()


def record_checkin(result: str):
    checkin_attempts.labels(result=result).inc()


def record_side_effect_failure(effect: str):
    side_effect_failures.labels(effect=effect).inc()


def record_payment_session(result: str):
    payment_sessions.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
