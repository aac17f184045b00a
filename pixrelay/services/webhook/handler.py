"""Provider webhook handling.

Deliveries are always acknowledged with 200: a failure here is logged for an
operator and never turned into a provider-side redelivery loop.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pixrelay.common.errors import WebhookFormatError
from pixrelay.common.logging import logger
from pixrelay.common.metrics import webhook_events_total
from pixrelay.services.status.schemas import ChargeRecordUpdate, ChargeStatus
from pixrelay.services.status.store import StatusTable


CHALLENGE_HEADER = "x-webhook-validation"
CHALLENGE_FIELD = "validation"


@dataclass
class WebhookAck:
    """Response for the provider: either a text echo or a JSON body."""

    status_code: int = 200
    text: str | None = None
    json: dict[str, Any] | None = None
    applied: list[str] = field(default_factory=list)


def find_challenge(headers: Mapping[str, str], query: Mapping[str, str], body: Any) -> str | None:
    """Header beats query, query beats body."""

    for source in (
        _lookup(headers, CHALLENGE_HEADER),
        _lookup(query, CHALLENGE_FIELD),
        body.get(CHALLENGE_FIELD) if isinstance(body, Mapping) else None,
    ):
        if source not in (None, ""):
            return str(source)
    return None


def _lookup(mapping: Mapping[str, str] | None, name: str) -> Any:
    if not mapping:
        return None
    value = mapping.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers are not.
        for key, candidate in mapping.items():
            if key.lower() == name:
                return candidate
    return value


def _parse_amount(raw: Any) -> Decimal | None:
    if raw in (None, ""):
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def _parse_timestamp(raw: Any) -> datetime:
    """ISO-8601 `horario` when readable, otherwise the time of receipt."""

    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.warning("unreadable horario=%r, using time of receipt", raw)
    return datetime.now(timezone.utc)


def _end_to_end_id(raw: Any) -> str | None:
    if raw in (None, ""):
        return None
    return str(raw)


class WebhookHandler:
    """Applies Pix notifications to the status table."""

    def __init__(self, status_table: StatusTable) -> None:
        self.status_table = status_table

    def handle(self, headers: Mapping[str, str], query: Mapping[str, str], body: Any) -> WebhookAck:
        try:
            challenge = find_challenge(headers, query, body)
            if challenge is not None:
                webhook_events_total.labels(outcome="challenge").inc()
                logger.info("webhook validation challenge answered")
                return WebhookAck(text=challenge)

            events = self._notification_events(body)
            applied = [txid for txid in (self._apply_event(evt) for evt in events) if txid]
            return WebhookAck(json={"ok": True}, applied=applied)
        except WebhookFormatError as exc:
            webhook_events_total.labels(outcome="unrecognized").inc()
            logger.warning("webhook payload not recognized: %s payload=%s", exc.message, exc.detail)
            return WebhookAck(json={"ok": True})
        except Exception as exc:
            webhook_events_total.labels(outcome="error").inc()
            logger.exception("webhook processing failed: %s", exc)
            return WebhookAck()

    @staticmethod
    def _notification_events(body: Any) -> list[Any]:
        if isinstance(body, Mapping) and isinstance(body.get("pix"), list):
            return body["pix"]
        raise WebhookFormatError("expected an object with a 'pix' list", detail=body)

    def _apply_event(self, event: Any) -> str | None:
        """Merge one notification; returns the txid when a record was updated."""

        if not isinstance(event, Mapping) or not event.get("txid"):
            webhook_events_total.labels(outcome="skipped").inc()
            return None
        txid = str(event["txid"])
        try:
            update = ChargeRecordUpdate(
                status=ChargeStatus.PAID,
                amount=_parse_amount(event.get("valor")),
                end_to_end_id=_end_to_end_id(event.get("endToEndId")),
                paid_at=_parse_timestamp(event.get("horario")),
            )
            merged = self.status_table.merge(txid, update)
        except Exception as exc:
            webhook_events_total.labels(outcome="error").inc()
            logger.exception("webhook event failed txid=%s: %s", txid, exc)
            return None

        if merged is None:
            webhook_events_total.labels(outcome="unknown_txid").inc()
            logger.warning("webhook event for unknown txid=%s ignored", txid)
            return None
        webhook_events_total.labels(outcome="paid").inc()
        logger.info("charge paid txid=%s e2eid=%s", txid, merged.end_to_end_id)
        return txid
