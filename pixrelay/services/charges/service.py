"""Charge orchestration against the provider.

A charge is created in three sequential provider calls: upsert the charge,
re-read it for its location id, then fetch the QR code for that location.
The QR fetch is the only step with a retry, against an alternate base path.
"""

import secrets
from typing import Any, Callable, Mapping

from starlette.concurrency import run_in_threadpool

from pixrelay.common.errors import ProviderError, ProviderProtocolError
from pixrelay.common.logging import logger, txid_ctx
from pixrelay.common.metrics import qr_fallback_total
from pixrelay.provider.client import PixApiClient, ProviderClientFactory
from pixrelay.provider.schemas import (
    AdditionalInfo,
    ChargeAmount,
    ChargeCalendar,
    ChargePayload,
    QrCodeResponse,
)
from pixrelay.services.charges.schemas import ChargeRequest, ChargeResult
from pixrelay.services.status.schemas import ChargeRecord, ChargeStatus
from pixrelay.services.status.store import StatusTable


TXID_LENGTH = 26


def generate_txid() -> str:
    """26 hex chars out of 128 random bits."""

    return secrets.token_hex(16)[:TXID_LENGTH]


def build_charge_payload(request: ChargeRequest, expiration_seconds: int, pix_key: str | None) -> ChargePayload:
    info = []
    if request.order_id:
        info.append(AdditionalInfo(nome="pedidoId", valor=request.order_id))
    if request.payer_name:
        info.append(AdditionalInfo(nome="cliente", valor=request.payer_name))
    return ChargePayload(
        calendario=ChargeCalendar(expiracao=expiration_seconds),
        valor=ChargeAmount(original=f"{request.amount:.2f}"),
        chave=pix_key or None,
        solicitacao_pagador=request.description,
        info_adicionais=info,
    )


class ChargeOrchestrator:
    """Drives charge creation and records the PENDING status."""

    def __init__(
        self,
        client_factory: ProviderClientFactory,
        status_table: StatusTable,
        pix_key: str | None = None,
        expiration_seconds: int = 300,
        qr_fallback_path: str | None = "/v2",
        txid_factory: Callable[[], str] = generate_txid,
    ) -> None:
        self.client_factory = client_factory
        self.status_table = status_table
        self.pix_key = pix_key
        self.expiration_seconds = expiration_seconds
        self.qr_fallback_path = qr_fallback_path
        self.txid_factory = txid_factory

    async def create_charge(self, request: ChargeRequest | Mapping[str, Any]) -> ChargeResult:
        """Create one charge end to end.

        Validation happens before any network call. Provider failures abort the
        remaining steps and propagate unchanged to the caller.
        """

        if not isinstance(request, ChargeRequest):
            request = ChargeRequest.from_payload(request)

        txid = self.txid_factory()
        txid_ctx.set(txid)
        payload = build_charge_payload(request, self.expiration_seconds, self.pix_key)

        async with await self.client_factory.build_client() as client:
            await client.put_charge(txid, payload)
            charge = await client.get_charge(txid)
            location_id = charge.location_id
            if location_id is None:
                logger.error("charge created without location id txid=%s", txid)
                raise ProviderProtocolError(
                    "charge created but provider returned no location id",
                    detail=charge.model_dump(exclude_none=True),
                )
            qr = await self._fetch_qrcode(client, location_id)

        # Redis and SQL stores block; keep them off the event loop.
        record = ChargeRecord(status=ChargeStatus.PENDING, amount=request.amount)
        await run_in_threadpool(self.status_table.put, txid, record)
        logger.info("charge created txid=%s amount=%s loc_id=%s", txid, request.amount, location_id)

        return ChargeResult(
            txid=txid,
            copy_paste_code=qr.qrcode or "",
            qr_image_base64=qr.imagem_qrcode or "",
            expires_in_seconds=self.expiration_seconds,
        )

    async def _fetch_qrcode(self, client: PixApiClient, location_id: int | str) -> QrCodeResponse:
        try:
            return await client.get_qrcode(location_id)
        except ProviderError as exc:
            if not self.qr_fallback_path:
                raise
            logger.warning(
                "qrcode fetch failed on %s, retrying under %s: %s",
                client.base_url,
                self.qr_fallback_path,
                exc.message,
            )

        try:
            async with await self.client_factory.build_client(base_path=self.qr_fallback_path) as fallback:
                qr = await fallback.get_qrcode(location_id)
        except ProviderError:
            qr_fallback_total.labels(outcome="failed").inc()
            raise
        qr_fallback_total.labels(outcome="ok").inc()
        return qr
