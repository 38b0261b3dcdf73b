from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)

WEBHOOK_EVENTS = Counter(
    "social_inbox_webhook_events_total",
    "Inbound webhook events by outcome",
    ["platform", "outcome"],
)
ASSIGNMENT_CONFLICTS = Counter(
    "social_inbox_assignment_conflicts_total",
    "Assignments rejected because another agent changed the owner first",
)
OUTBOUND_SENDS = Counter(
    "social_inbox_outbound_sends_total",
    "Outbound Graph API sends by outcome",
    ["platform", "kind", "outcome"],
)
OUTBOUND_LATENCY = Histogram(
    "social_inbox_outbound_send_seconds",
    "Graph API send latency",
    ["platform", "kind"],
)


def observe_webhook_event(platform: str, outcome: str) -> None:
    WEBHOOK_EVENTS.labels(platform=platform, outcome=outcome).inc()


def observe_send(platform: str, kind: str, outcome: str, duration: float) -> None:
    OUTBOUND_SENDS.labels(platform=platform, kind=kind, outcome=outcome).inc()
    OUTBOUND_LATENCY.labels(platform=platform, kind=kind).observe(duration)
