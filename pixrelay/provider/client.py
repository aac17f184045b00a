"""Authenticated mTLS client for the provider's Pix API."""

import ssl
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from pixrelay.common.config import RelaySettings
from pixrelay.common.errors import ProviderProtocolError, ProviderResponseError, TransportError
from pixrelay.common.logging import logger
from pixrelay.common.metrics import provider_request_duration_seconds
from pixrelay.provider.credentials import build_ssl_context, load_credentials
from pixrelay.provider.schemas import (
    ChargePayload,
    ChargeResponse,
    QrCodeResponse,
    WebhookRegistration,
)
from pixrelay.provider.token_cache import TokenCache, response_detail


class PixApiClient:
    """Thin typed wrapper over one `httpx.AsyncClient` bound to a Pix base path.

    Every call either returns a validated model or raises one of the
    provider error types; callers never poke at raw JSON.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    async def __aenter__(self) -> "PixApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    @property
    def base_url(self) -> str:
        return str(self.http.base_url)

    async def _request(self, operation: str, method: str, path: str, json: Any = None) -> httpx.Response:
        try:
            with provider_request_duration_seconds.labels(operation=operation).time():
                resp = await self.http.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{operation} timed out", detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{operation} failed", detail=str(exc)) from exc

        if resp.status_code >= 400:
            logger.warning(
                "provider call rejected operation=%s status=%s body=%s",
                operation,
                resp.status_code,
                resp.text,
            )
            raise ProviderResponseError(
                f"{operation} rejected with status {resp.status_code}",
                status_code=resp.status_code,
                detail=response_detail(resp),
            )
        return resp

    @staticmethod
    def _parse(operation: str, resp: httpx.Response, model: type[BaseModel]):
        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise ProviderProtocolError(f"{operation} returned an unreadable body", detail=resp.text) from exc

    async def put_charge(self, txid: str, payload: ChargePayload) -> None:
        """Create or replace the charge keyed by `txid`."""

        await self._request("put_charge", "PUT", f"/cob/{txid}", json=payload.to_wire())

    async def get_charge(self, txid: str) -> ChargeResponse:
        resp = await self._request("get_charge", "GET", f"/cob/{txid}")
        return self._parse("get_charge", resp, ChargeResponse)

    async def get_qrcode(self, location_id: int | str) -> QrCodeResponse:
        resp = await self._request("get_qrcode", "GET", f"/loc/{location_id}/qrcode")
        return self._parse("get_qrcode", resp, QrCodeResponse)

    async def put_webhook(self, pix_key: str, webhook_url: str) -> None:
        """Register the notification URL for a Pix key."""

        body = WebhookRegistration(webhook_url=webhook_url).model_dump(by_alias=True)
        await self._request("put_webhook", "PUT", f"/webhook/{pix_key}", json=body)


class ProviderClientFactory:
    """Build one authenticated client per unit of work."""

    def __init__(
        self,
        api_base: str,
        token_cache: TokenCache,
        ssl_context: ssl.SSLContext | None = None,
        api_path: str = "/pix/v2",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.token_cache = token_cache
        self.ssl_context = ssl_context
        self.api_path = api_path
        self.timeout = timeout
        self.transport = transport

    async def build_client(self, base_path: str | None = None) -> PixApiClient:
        """Pull a token and return a client bound to `<api_base><base_path>`."""

        token = await self.token_cache.get_token()
        kwargs: dict[str, Any] = {
            "base_url": f"{self.api_base}{base_path or self.api_path}",
            "headers": {"Authorization": f"Bearer {token}"},
            "timeout": self.timeout,
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        else:
            kwargs["verify"] = self.ssl_context or True
        return PixApiClient(httpx.AsyncClient(**kwargs))


def build_client_factory(settings: RelaySettings) -> ProviderClientFactory:
    """Wire credentials -> mTLS context -> token cache -> client factory.

    Raises `ConfigurationError` when the provider cannot be reached with the
    current settings.
    """

    credentials = load_credentials(settings)
    ssl_context = build_ssl_context(credentials, ca_bundle=settings.pix_ca_bundle)
    token_cache = TokenCache(
        settings.pix_oauth_url,
        credentials,
        ssl_context=ssl_context,
        scope=settings.pix_oauth_scope,
        timeout=settings.provider_timeout_seconds,
    )
    return ProviderClientFactory(
        settings.pix_api_base,
        token_cache,
        ssl_context=ssl_context,
        api_path=settings.pix_api_path,
        timeout=settings.provider_timeout_seconds,
    )
