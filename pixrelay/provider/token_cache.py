"""OAuth client-credentials token cache.

One cached token per process, renewed a few seconds before it expires.
Concurrent callers may race into a renewal; each renewal is a plain exchange
and the last writer wins, so no lock is taken.
"""

import ssl
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from pixrelay.common.errors import AuthError
from pixrelay.common.logging import logger
from pixrelay.common.metrics import oauth_token_requests_total, provider_request_duration_seconds
from pixrelay.provider.credentials import CredentialBundle
from pixrelay.provider.schemas import TokenResponse


DEFAULT_EXPIRES_IN_SECONDS = 300
REFRESH_MARGIN_MS = 5000


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at_ms: int


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class TokenCache:
    """Acquire and cache the provider bearer token."""

    def __init__(
        self,
        oauth_url: str,
        credentials: CredentialBundle,
        ssl_context: ssl.SSLContext | None = None,
        scope: str | None = None,
        timeout: float = 15.0,
        clock: Callable[[], int] = _epoch_ms,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.oauth_url = oauth_url
        self.credentials = credentials
        self.ssl_context = ssl_context
        self.scope = scope
        self.timeout = timeout
        self.clock = clock
        self.transport = transport
        # Swapped as a whole so readers never see a token paired with another's expiry.
        self._cached: CachedToken | None = None

    @property
    def cached(self) -> CachedToken | None:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def get_token(self) -> str:
        """Return a bearer token valid for at least the refresh margin."""

        now_ms = self.clock()
        cached = self._cached
        if cached is not None and now_ms < cached.expires_at_ms - REFRESH_MARGIN_MS:
            return cached.value

        token = await self._exchange()
        expires_in = token.expires_in or DEFAULT_EXPIRES_IN_SECONDS
        self._cached = CachedToken(value=token.access_token, expires_at_ms=now_ms + expires_in * 1000)
        logger.info("oauth token renewed expires_in_s=%s", expires_in)
        return token.access_token

    def _client(self) -> httpx.AsyncClient:
        if self.transport is not None:
            return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)
        return httpx.AsyncClient(verify=self.ssl_context or True, timeout=self.timeout)

    async def _exchange(self) -> TokenResponse:
        data = {"grant_type": "client_credentials"}
        if self.scope:
            data["scope"] = self.scope
        auth = httpx.BasicAuth(self.credentials.client_id, self.credentials.client_secret)

        try:
            with provider_request_duration_seconds.labels(operation="oauth_token").time():
                async with self._client() as client:
                    resp = await client.post(self.oauth_url, data=data, auth=auth)
        except httpx.HTTPError as exc:
            oauth_token_requests_total.labels(outcome="transport_error").inc()
            logger.error("oauth token request failed: %s", exc)
            raise AuthError("OAuth token request failed", detail=str(exc)) from exc

        if resp.status_code >= 400:
            oauth_token_requests_total.labels(outcome="rejected").inc()
            logger.error("oauth token rejected status=%s body=%s", resp.status_code, resp.text)
            raise AuthError(f"OAuth token request rejected with status {resp.status_code}", detail=response_detail(resp))

        try:
            token = TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            oauth_token_requests_total.labels(outcome="malformed").inc()
            raise AuthError("OAuth token response is malformed", detail=str(exc)) from exc

        oauth_token_requests_total.labels(outcome="ok").inc()
        return token


def response_detail(resp: httpx.Response) -> Any:
    """Provider body for error details: JSON when possible, raw text otherwise."""

    try:
        return resp.json()
    except ValueError:
        return resp.text
