"""Prometheus metric definitions for the relay."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
charge_requests_total = Counter("pix_charge_requests_total", "Total charge creation requests", ["service"])
charge_success_total = Counter("pix_charge_success_total", "Total charges created", ["service"])
charge_failure_total = Counter(
    "pix_charge_failure_total",
    "Total failed charge creations by error kind",
    ["service", "error_type"],
)
charge_latency_seconds = Histogram("pix_charge_latency_seconds", "Charge creation latency seconds", ["service"])
provider_request_duration_seconds = Histogram(
    "pix_provider_request_duration_seconds",
    "Outbound provider call duration seconds",
    ["operation"],
)
oauth_token_requests_total = Counter(
    "pix_oauth_token_requests_total",
    "OAuth token exchanges by outcome",
    ["outcome"],
)
qr_fallback_total = Counter("pix_qr_fallback_total", "QR fetches that fell back to the secondary path", ["outcome"])
webhook_events_total = Counter(
    "pix_webhook_events_total",
    "Webhook deliveries and notification events by outcome",
    ["outcome"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
