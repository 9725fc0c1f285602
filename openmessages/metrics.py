"""
Prometheus metrics for the sync store and its API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Ingested message counter (result)
- Deleted placeholder counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: stored, failed
ingest_messages_total = Counter(
    "ingest_messages_total",
    "Messages normalized and written to the store",
    labelnames=["source", "result"]
)

# result: stored, failed
ingest_conversations_total = Counter(
    "ingest_conversations_total",
    "Conversations normalized and written to the store",
    labelnames=["result"]
)

placeholders_deleted_total = Counter(
    "placeholders_deleted_total",
    "Placeholder messages removed by reconciliation"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path, or the route template when one matched
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_message_ingest(source: str, result: str) -> None:
    """
    Args:
        source: "backfill" or "live"
        result: "stored" or "failed"
    """
    ingest_messages_total.labels(source=source, result=result).inc()


def record_conversation_ingest(result: str) -> None:
    ingest_conversations_total.labels(result=result).inc()


def record_placeholders_deleted(count: int) -> None:
    if count > 0:
        placeholders_deleted_total.inc(count)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
