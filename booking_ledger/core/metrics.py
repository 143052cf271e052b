from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

BOOKING_EVENTS = Counter(
    "booking_events_total",
    "Booking lifecycle events by outcome",
    ["event"],
)

SLOTS_CREATED = Counter(
    "availability_slots_created_total",
    "Availability slots inserted by rule application",
)

TRANSACTION_RETRIES = Counter(
    "storage_transaction_retries_total",
    "Storage transactions retried after lock contention, by outcome",
    ["outcome"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
