"""
Prometheus metrics for the triage API.

- HTTP request counter (method, path, status)
- Ingest outcome counter (result)
- Request latency histogram (method, path)
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: stored, dropped, invalid_signature, validation_error
ingest_requests_total = Counter(
    "ingest_requests_total",
    "Total inbound message outcomes",
    labelnames=["result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Record ids in paths are collapsed so /records/<id>/read does not create
    one label set per record.
    """
    normalized_path = _route_template(path.split("?")[0])

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_ingest_outcome(result: str) -> None:
    ingest_requests_total.labels(result=result).inc()


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


def _route_template(path: str) -> str:
    parts = path.strip("/").split("/")
    if len(parts) >= 2 and parts[0] == "records" and parts[1] != "read-all":
        parts[1] = "{record_id}"
    return "/" + "/".join(parts)
