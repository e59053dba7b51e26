"""Prometheus metrics middleware and bidding/broadcast counters."""
import time
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Bid placement metrics (HTTP and WebSocket paths)
BID_COUNTER = Counter(
    "bids_total",
    "Bid placement outcomes",
    ["outcome"],  # accepted, too_low, not_found, not_open, conflict, error
)

BID_LATENCY = Histogram(
    "bid_latency_seconds",
    "Bid placement latency in seconds",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

BID_CAS_RETRIES = Counter(
    "bid_cas_retries_total",
    "Conditional auction updates that lost a race and were retried",
)

# Broadcast metrics
BROADCAST_DELIVERIES = Counter(
    "broadcast_deliveries_total",
    "Per-connection delivery outcomes",
    ["outcome"],  # delivered, pruned, failed
)

BROADCAST_LATENCY = Histogram(
    "broadcast_duration_seconds",
    "Duration of one fan-out pass",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# =============================================================================
# Metrics Middleware
# =============================================================================

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    # Endpoints to normalize for metrics (reduce cardinality)
    ENDPOINT_PATTERNS = {
        "/api/v1/bids": "/api/v1/bids",
        "/api/v1/auctions": "/api/v1/auctions",
        "/api/v1/internal": "/api/v1/internal",
        "/api/v1/payments": "/api/v1/payments",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time
            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce metric cardinality."""
        for pattern, normalized in self.ENDPOINT_PATTERNS.items():
            if path.startswith(pattern):
                return normalized

        if path in ("/health", "/ws", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_bid(outcome: str, duration: float) -> None:
    """Record one bid placement attempt."""
    BID_COUNTER.labels(outcome=outcome).inc()
    BID_LATENCY.observe(duration)


def record_bid_retry() -> None:
    BID_CAS_RETRIES.inc()


def record_broadcast(delivered: int, pruned: int, failed: int, duration: float) -> None:
    """Record the outcome of one fan-out pass."""
    if delivered:
        BROADCAST_DELIVERIES.labels(outcome="delivered").inc(delivered)
    if pruned:
        BROADCAST_DELIVERIES.labels(outcome="pruned").inc(pruned)
    if failed:
        BROADCAST_DELIVERIES.labels(outcome="failed").inc(failed)
    BROADCAST_LATENCY.observe(duration)
