from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    generate_latest,
)

DEDUP_CALLS_TOTAL = Counter(
    "portal_dedup_calls_total",
    "Deduplicated calls by operation and whether they started or joined an operation.",
    ["operation", "outcome"],
)
DEDUP_IN_FLIGHT = Gauge(
    "portal_dedup_in_flight",
    "Operations currently registered in the deduplicator.",
)
TOKEN_REFRESH_TOTAL = Counter(
    "portal_token_refresh_total",
    "Access token refresh attempts by result.",
    ["result"],
)
LOGOUTS_TOTAL = Counter(
    "portal_logouts_total",
    "Stored credential removals by reason.",
    ["reason"],
)
TRANSPORT_REQUESTS_TOTAL = Counter(
    "portal_transport_requests_total",
    "Outbound HTTP requests by method and result.",
    ["method", "result"],
)


class Telemetry:
    def record_dedup_call(self, operation: str, shared: bool) -> None:
        DEDUP_CALLS_TOTAL.labels(
            operation=operation,
            outcome="shared" if shared else "started",
        ).inc()

    def set_in_flight(self, count: int) -> None:
        DEDUP_IN_FLIGHT.set(max(0, count))

    def record_refresh(self, result: str) -> None:
        TOKEN_REFRESH_TOTAL.labels(result=result).inc()

    def record_logout(self, reason: str) -> None:
        LOGOUTS_TOTAL.labels(reason=reason).inc()

    def record_transport_request(self, method: str, result: str) -> None:
        TRANSPORT_REQUESTS_TOTAL.labels(method=method, result=result).inc()

    @staticmethod
    def scrape() -> tuple[bytes, str]:
        return generate_latest(), CONTENT_TYPE_LATEST
