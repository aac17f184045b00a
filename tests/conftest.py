"""Shared fixtures: an in-process fake provider behind `httpx.MockTransport`."""

import json

import httpx
import pytest

from pixrelay.provider.client import ProviderClientFactory
from pixrelay.provider.credentials import CredentialBundle
from pixrelay.provider.token_cache import TokenCache
from pixrelay.services.charges.service import ChargeOrchestrator
from pixrelay.services.status.store import InMemoryStatusTable


API_BASE = "https://pix.provider.test"
OAUTH_URL = f"{API_BASE}/oauth/v2/token"


class FakeProvider:
    """Scriptable stand-in for the provider's OAuth + Pix endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.token_status = 200
        self.expires_in: int | None = 3600
        self.charges: dict[str, dict] = {}
        self.location: dict | None = {"id": 7}
        self.primary_qr_status = 200
        self.fallback_qr_status = 200
        self.qr_body = {"qrcode": "00020126-copy-paste", "imagemQrcode": "iVBORw0KGgo="}

    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/oauth/v2/token":
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            body = {"access_token": f"token-{self.token_calls}"}
            if self.expires_in is not None:
                body["expires_in"] = self.expires_in
            return httpx.Response(200, json=body)

        if path.startswith("/pix/v2/cob/"):
            txid = path.rsplit("/", 1)[-1]
            if request.method == "PUT":
                self.charges[txid] = json.loads(request.content)
                return httpx.Response(201, json={"txid": txid, "status": "ATIVA"})
            body = {"txid": txid, "status": "ATIVA"}
            if self.location is not None:
                body["loc"] = self.location
            return httpx.Response(200, json=body)

        if path.startswith("/pix/v2/loc/"):
            if self.primary_qr_status != 200:
                return httpx.Response(self.primary_qr_status, json={"title": "Not Found"})
            return httpx.Response(200, json=self.qr_body)

        if path.startswith("/v2/loc/"):
            if self.fallback_qr_status != 200:
                return httpx.Response(self.fallback_qr_status, json={"title": "Unavailable"})
            return httpx.Response(200, json=self.qr_body)

        return httpx.Response(404, json={"title": "no route"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class Clock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def credentials() -> CredentialBundle:
    return CredentialBundle(
        certificate=b"not-a-real-bundle",
        passphrase="secret",
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def token_cache(provider, credentials, clock) -> TokenCache:
    return TokenCache(OAUTH_URL, credentials, clock=clock, transport=provider.transport)


@pytest.fixture
def client_factory(provider, token_cache) -> ProviderClientFactory:
    return ProviderClientFactory(API_BASE, token_cache, transport=provider.transport)


@pytest.fixture
def status_table() -> InMemoryStatusTable:
    return InMemoryStatusTable()


@pytest.fixture
def orchestrator(client_factory, status_table) -> ChargeOrchestrator:
    return ChargeOrchestrator(client_factory, status_table)
