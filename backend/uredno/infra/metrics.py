import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class Metrics:
    def __init__(self, enabled: bool = False) -> None:
        self._configure(enabled)

    def _configure(self, enabled: bool) -> None:
        self.enabled = enabled
        self.registry = CollectorRegistry(auto_describe=True)
        if not enabled:
            self.bookings = None
            self.inquiries = None
            self.slot_claims = None
            self.slot_releases = None
            self.store_errors = None
            self.rate_limit_blocks = None
            self.http_requests = None
            self.http_5xx = None
            self.http_latency = None
            return

        self.bookings = Counter(
            "bookings_total",
            "Booking lifecycle events.",
            ["action"],
            registry=self.registry,
        )
        self.inquiries = Counter(
            "inquiries_total",
            "Contact inquiries received, by inquiry type.",
            ["inquiry_type"],
            registry=self.registry,
        )
        self.slot_claims = Counter(
            "slot_claims_total",
            "Availability claim attempts by outcome (claimed/conflict).",
            ["outcome"],
            registry=self.registry,
        )
        self.slot_releases = Counter(
            "slot_releases_total",
            "Availability releases by outcome (released/noop).",
            ["outcome"],
            registry=self.registry,
        )
        self.store_errors = Counter(
            "store_errors_total",
            "Store calls that failed or timed out, by operation.",
            ["operation"],
            registry=self.registry,
        )
        self.rate_limit_blocks = Counter(
            "rate_limit_blocks_total",
            "Requests rejected by the rate limiter.",
            registry=self.registry,
        )
        self.http_requests = Counter(
            "http_requests_total",
            "HTTP requests by method, route and status class.",
            ["method", "path", "status_class"],
            registry=self.registry,
        )
        self.http_5xx = Counter(
            "http_5xx_total",
            "HTTP responses with status >= 500.",
            ["method", "path"],
            registry=self.registry,
        )
        self.http_latency = Histogram(
            "http_request_latency_seconds",
            "HTTP request latency in seconds.",
            ["method", "path", "status_class"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
            registry=self.registry,
        )

    def record_booking(self, action: str, count: int = 1) -> None:
        if not self.enabled or self.bookings is None:
            return
        if count <= 0:
            return
        self.bookings.labels(action=action).inc(count)

    def record_inquiry(self, inquiry_type: str) -> None:
        if not self.enabled or self.inquiries is None:
            return
        self.inquiries.labels(inquiry_type=inquiry_type).inc()

    def record_slot_claim(self, outcome: str) -> None:
        if not self.enabled or self.slot_claims is None:
            return
        self.slot_claims.labels(outcome=outcome).inc()

    def record_slot_release(self, outcome: str) -> None:
        if not self.enabled or self.slot_releases is None:
            return
        self.slot_releases.labels(outcome=outcome).inc()

    def record_store_error(self, operation: str) -> None:
        if not self.enabled or self.store_errors is None:
            return
        self.store_errors.labels(operation=operation or "unknown").inc()

    def record_rate_limit_block(self) -> None:
        if not self.enabled or self.rate_limit_blocks is None:
            return
        self.rate_limit_blocks.inc()

    def record_http_request(self, method: str, path: str, status_code: int) -> None:
        if not self.enabled or self.http_requests is None:
            return
        status_class = f"{status_code // 100}xx" if status_code else "unknown"
        self.http_requests.labels(method=method, path=path, status_class=status_class).inc()

    def record_http_5xx(self, method: str, path: str) -> None:
        if not self.enabled or self.http_5xx is None:
            return
        self.http_5xx.labels(method=method, path=path).inc()

    def record_http_latency(self, method: str, path: str, status_code: int, duration_seconds: float) -> None:
        if not self.enabled or self.http_latency is None:
            return
        status_class = f"{status_code // 100}xx" if status_code else "unknown"
        duration_seconds = max(0.0, float(duration_seconds))
        self.http_latency.labels(method=method, path=path, status_class=status_class).observe(
            duration_seconds
        )

    def render(self) -> tuple[bytes, str]:
        if not self.enabled:
            return b"", CONTENT_TYPE_LATEST
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


metrics = Metrics(enabled=False)


def configure_metrics(enabled: bool) -> Metrics:
    global metrics
    metrics._configure(enabled)
    logger.debug("metrics_configured", extra={"extra": {"enabled": enabled}})
    return metrics
