"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
orders_created_total = Counter(
    "orders_created_total",
    "Total number of gateway orders created",
    ["currency"],
)

orders_failed_total = Counter(
    "orders_failed_total",
    "Total number of failed order creations",
    ["reason"],  # validation, gateway_client, gateway_unavailable, breaker_open
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total payment gateway API requests",
    ["method", "status"],
)

signature_verifications_total = Counter(
    "signature_verifications_total",
    "Total payment signature verifications",
    ["result"],  # accepted, rejected
)

entitlement_grants_total = Counter(
    "entitlement_grants_total",
    "Total entitlement grant applications",
    ["scope", "outcome"],  # applied, replayed, failed, reconciliation
)

checkout_transitions_total = Counter(
    "checkout_transitions_total",
    "Total checkout state machine transitions",
    ["state"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway API request duration",
    ["method"],
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
