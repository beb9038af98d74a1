from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (  # type: ignore[reportMissingImports]
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)

# In-process API metrics
api_requests_total = Counter(
    "api_requests_total", "Total API requests", ["method", "endpoint", "status"]
)
api_request_duration_seconds = Histogram(
    "api_request_duration_seconds", "API request duration seconds", ["endpoint"]
)

# Payment gate / delivery
payment_decisions_total = Counter(
    "payment_decisions_total", "Payment gate decisions by outcome", ["decision"]
)
chunks_delivered_total = Counter("chunks_delivered_total", "Paid chunks delivered")
chunk_bytes_delivered_total = Counter("chunk_bytes_delivered_total", "Bytes of paid chunks delivered")
verifier_latency_seconds = Histogram(
    "verifier_latency_seconds",
    "Facilitator round trip latency by step",
    ["step"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

router = APIRouter()


@router.get("/metrics")
def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
