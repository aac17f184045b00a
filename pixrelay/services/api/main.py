"""HTTP surface of the relay.

POST /pix/charges  -> create a charge and return QR + copy-and-paste code
GET  /pix/status   -> read the status table (updated by the webhook)
*    /pix/webhook  -> provider challenge echo and payment notifications
"""

import json
from time import perf_counter
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from pixrelay.common.config import RelaySettings, get_settings
from pixrelay.common.errors import ChargeValidationError, ConfigurationError, RelayError
from pixrelay.common.logging import configure_logging, logger, trace_id_ctx
from pixrelay.common.metrics import (
    charge_failure_total,
    charge_latency_seconds,
    charge_requests_total,
    charge_success_total,
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
)
from pixrelay.common.startup import log_missing_settings, log_startup_config
from pixrelay.common.tracing import instrument_app, setup_tracing
from pixrelay.provider.client import build_client_factory
from pixrelay.services.charges.schemas import ChargeRequest
from pixrelay.services.charges.service import ChargeOrchestrator
from pixrelay.services.status.store import StatusTable, build_status_table
from pixrelay.services.webhook.handler import WebhookHandler


STARTUP_KEYS = [
    "service_name",
    "port",
    "pix_client_id",
    "pix_client_secret",
    "pix_cert_base64",
    "pix_cert_password",
    "pix_api_base",
    "pix_oauth_url",
    "pix_key",
    "pix_status_store",
]
WEBHOOK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def build_orchestrator(settings: RelaySettings, status_table: StatusTable) -> ChargeOrchestrator:
    return ChargeOrchestrator(
        build_client_factory(settings),
        status_table,
        pix_key=settings.pix_key,
        expiration_seconds=settings.charge_expiration_seconds,
        qr_fallback_path=settings.pix_qr_fallback_path,
    )


def _error_body(exc: RelayError, message: str) -> dict:
    body = {"message": message}
    if exc.detail is not None:
        body["detail"] = exc.detail
    return body


def create_app(
    settings: RelaySettings | None = None,
    status_table: StatusTable | None = None,
    orchestrator: ChargeOrchestrator | None = None,
) -> FastAPI:
    """Build the FastAPI app; a missing provider config leaves it running degraded."""

    settings = settings or get_settings()
    configure_logging(settings.service_name, settings.log_level)
    setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(settings, STARTUP_KEYS)

    if status_table is None:
        status_table = build_status_table(settings)
    missing: list[str] = []
    if orchestrator is None:
        try:
            orchestrator = build_orchestrator(settings, status_table)
        except ConfigurationError as exc:
            missing = exc.detail if isinstance(exc.detail, list) else [exc.message]
            log_missing_settings(missing)
    webhook_handler = WebhookHandler(status_table)

    app = FastAPI(title="Pix Relay")
    app.state.settings = settings
    app.state.status_table = status_table
    app.state.orchestrator = orchestrator
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(ChargeValidationError)
    async def handle_validation(_: Request, exc: ChargeValidationError):
        charge_failure_total.labels(service=settings.service_name, error_type=type(exc).__name__).inc()
        return JSONResponse(status_code=400, content=_error_body(exc, exc.message))

    @app.exception_handler(RelayError)
    async def handle_relay_error(_: Request, exc: RelayError):
        charge_failure_total.labels(service=settings.service_name, error_type=type(exc).__name__).inc()
        logger.error("charge creation failed kind=%s: %s detail=%s", type(exc).__name__, exc.message, exc.detail)
        return JSONResponse(status_code=500, content=_error_body(exc, "failed to create charge"))

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "OK - Pix relay"

    @app.get("/health")
    def health():
        """Container health probe endpoint; `ok` is false while credentials are missing."""

        return {"ok": app.state.orchestrator is not None, "missing": missing}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.post("/pix/charges")
    async def create_charge(request: Request):
        """Create a charge and return its copy-and-paste code and QR image."""

        payload = await _json_body(request)
        charge_requests_total.labels(service=settings.service_name).inc()
        current = app.state.orchestrator
        if current is None:
            # Bad input is still a 400 while degraded.
            ChargeRequest.from_payload(payload)
            raise ConfigurationError("provider credentials are not configured", detail=missing or None)
        try:
            with charge_latency_seconds.labels(service=settings.service_name).time():
                result = await current.create_charge(payload)
        except RelayError:
            raise
        except Exception as exc:
            # Store or library errors still answer with the JSON error body.
            charge_failure_total.labels(service=settings.service_name, error_type=type(exc).__name__).inc()
            logger.exception("charge creation failed unexpectedly: %s", exc)
            return JSONResponse(status_code=500, content={"message": "failed to create charge"})
        charge_success_total.labels(service=settings.service_name).inc()
        return result.to_public()

    @app.get("/pix/status")
    def charge_status(txid: str | None = None):
        """Status lookup; unknown txids report UNKNOWN rather than 404."""

        record = app.state.status_table.get(txid) if txid else None
        if record is None:
            return {"txid": txid, "status": "UNKNOWN"}
        return record.to_public(txid)

    @app.api_route("/pix/webhook", methods=WEBHOOK_METHODS)
    async def pix_webhook(request: Request):
        """Provider notifications; always answered with 200."""

        try:
            body = await _json_body(request)
        except Exception as exc:
            logger.warning("webhook body could not be read: %s", exc)
            body = None
        ack = await run_in_threadpool(webhook_handler.handle, request.headers, request.query_params, body)
        if ack.text is not None:
            return PlainTextResponse(ack.text, status_code=ack.status_code)
        if ack.json is not None:
            return JSONResponse(ack.json, status_code=ack.status_code)
        return Response(status_code=ack.status_code)

    return app


async def _json_body(request: Request):
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


app = create_app()


def main() -> None:
    settings = app.state.settings
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
