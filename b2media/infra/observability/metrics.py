from prometheus_client import Counter, Histogram

# Low-cardinality labels only: B2 operation names and HTTP status classes, never paths.
B2_REQUESTS = Counter(
    "b2_api_requests_total",
    "Total B2 API requests",
    ["operation", "status"],
)

B2_LATENCY = Histogram(
    "b2_api_request_duration_seconds",
    "B2 API request latency in seconds",
    ["operation"],
)

UPLOADS = Counter(
    "b2_uploads_total",
    "Object uploads by mode and outcome",
    ["mode", "result"],
)

SIGNED_URLS = Counter(
    "b2_signed_urls_total",
    "Signed URL requests by outcome",
    ["result"],
)


def status_label(status_code: int | None) -> str:
    if status_code is None:
        return "error"
    return f"{status_code // 100}xx"
