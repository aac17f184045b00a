"""Webhook challenge echo, notification merge and best-effort acknowledgement."""

from decimal import Decimal

from pixrelay.services.status.schemas import ChargeRecord, ChargeStatus
from pixrelay.services.status.store import InMemoryStatusTable
from pixrelay.services.webhook.handler import WebhookHandler


def _handler_with_pending(txid: str = "tx1", amount: str = "10.00"):
    table = InMemoryStatusTable()
    table.put(txid, ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal(amount)))
    return WebhookHandler(table), table


def test_header_challenge_wins_over_query_and_body():
    handler, _ = _handler_with_pending()

    ack = handler.handle({"X-Webhook-Validation": "from-header"}, {"validation": "from-query"}, {"validation": "from-body"})

    assert ack.status_code == 200
    assert ack.text == "from-header"


def test_query_challenge_wins_over_body():
    handler, _ = _handler_with_pending()

    ack = handler.handle({}, {"validation": "from-query"}, {"validation": "from-body"})

    assert ack.text == "from-query"


def test_body_challenge_echoed():
    handler, table = _handler_with_pending()

    ack = handler.handle({}, {}, {"validation": "from-body", "pix": [{"txid": "tx1"}]})

    assert ack.text == "from-body"
    assert table.get("tx1").status == ChargeStatus.PENDING


def test_notification_marks_known_charge_paid():
    """PENDING -> PAID keeps the original amount even if the event disagrees."""

    handler, table = _handler_with_pending()

    ack = handler.handle(
        {},
        {},
        {"pix": [{"txid": "tx1", "endToEndId": "E1", "valor": "11.00", "horario": "2026-10-18T12:00:00Z"}]},
    )

    assert ack.json == {"ok": True}
    assert ack.applied == ["tx1"]
    record = table.get("tx1")
    assert record.status == ChargeStatus.PAID
    assert record.end_to_end_id == "E1"
    assert record.amount == Decimal("10.00")
    assert record.paid_at.isoformat().startswith("2026-10-18T12:00:00")


def test_paid_at_defaults_to_now():
    handler, table = _handler_with_pending()

    handler.handle({}, {}, {"pix": [{"txid": "tx1", "endToEndId": "E1"}]})

    assert table.get("tx1").paid_at is not None


def test_unknown_txid_does_not_create_entry():
    handler, table = _handler_with_pending()

    ack = handler.handle({}, {}, {"pix": [{"txid": "ghost", "endToEndId": "E2", "valor": "5.00"}]})

    assert ack.json == {"ok": True}
    assert table.get("ghost") is None
    assert len(table) == 1


def test_events_without_txid_are_skipped():
    handler, table = _handler_with_pending()

    ack = handler.handle({}, {}, {"pix": [{"endToEndId": "E3"}, "junk", {"txid": "tx1", "endToEndId": "E1"}]})

    assert ack.applied == ["tx1"]
    assert table.get("tx1").status == ChargeStatus.PAID


def test_unreadable_horario_still_marks_paid():
    """A non-ISO timestamp falls back to the time of receipt instead of dropping the payment."""

    handler, table = _handler_with_pending()

    ack = handler.handle(
        {}, {}, {"pix": [{"txid": "tx1", "endToEndId": "E1", "valor": "10.00", "horario": "18/10/2026 12:00"}]}
    )

    assert ack.applied == ["tx1"]
    record = table.get("tx1")
    assert record.status == ChargeStatus.PAID
    assert record.end_to_end_id == "E1"
    assert record.paid_at is not None


def test_numeric_end_to_end_id_is_stored_as_text():
    handler, table = _handler_with_pending()

    ack = handler.handle({}, {}, {"pix": [{"txid": "tx1", "endToEndId": 12345}]})

    assert ack.applied == ["tx1"]
    assert table.get("tx1").status == ChargeStatus.PAID
    assert table.get("tx1").end_to_end_id == "12345"


def test_store_failure_on_one_event_does_not_block_the_rest():
    class FlakyTable(InMemoryStatusTable):
        def merge(self, txid, update):
            if txid == "tx1":
                raise RuntimeError("row locked")
            return super().merge(txid, update)

    table = FlakyTable()
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00")))
    table.put("tx2", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("3.00")))
    handler = WebhookHandler(table)

    ack = handler.handle({}, {}, {"pix": [{"txid": "tx1"}, {"txid": "tx2"}]})

    assert ack.json == {"ok": True}
    assert ack.applied == ["tx2"]
    assert table.get("tx1").status == ChargeStatus.PENDING
    assert table.get("tx2").status == ChargeStatus.PAID


def test_unrecognized_payload_is_acknowledged_without_changes():
    handler, table = _handler_with_pending()

    ack = handler.handle({}, {}, {"evento": "something else"})

    assert ack.status_code == 200
    assert ack.json == {"ok": True}
    assert table.get("tx1").status == ChargeStatus.PENDING


def test_internal_failure_still_acknowledged():
    class BrokenTable:
        def merge(self, txid, update):
            raise RuntimeError("store down")

    class ExplodingHeaders(dict):
        def get(self, key, default=None):
            raise RuntimeError("boom")

        def items(self):
            raise RuntimeError("boom")

    handler = WebhookHandler(BrokenTable())

    ack = handler.handle(ExplodingHeaders(x=1), {}, {"pix": [{"txid": "tx1"}]})

    assert ack.status_code == 200
    assert ack.text is None and ack.json is None
