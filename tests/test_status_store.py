"""Status table backends share one contract: get/put/merge, PAID is final."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from pixrelay.common.config import RelaySettings
from pixrelay.common.db import build_session_factory
from pixrelay.services.status.schemas import ChargeRecord, ChargeRecordUpdate, ChargeStatus
from pixrelay.services.status.store import (
    InMemoryStatusTable,
    RedisStatusTable,
    SqlStatusTable,
    build_status_table,
)


class FakeRedis:
    """Just enough of redis-py for `RedisStatusTable` (no real WATCH semantics)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def multi(self):
        pass

    def transaction(self, func, *watches, value_from_callable=False):
        value = func(self)
        return value if value_from_callable else []


def _sql_table() -> SqlStatusTable:
    table = SqlStatusTable(build_session_factory("sqlite://"))
    table.create_schema()
    return table


@pytest.fixture(params=["memory", "sql", "redis"])
def table(request):
    if request.param == "memory":
        return InMemoryStatusTable()
    if request.param == "sql":
        return _sql_table()
    return RedisStatusTable(FakeRedis())


def test_get_unknown_returns_none(table):
    assert table.get("missing") is None


def test_put_then_get(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00")))

    record = table.get("tx1")
    assert record.status == ChargeStatus.PENDING
    assert record.amount == Decimal("10.00")


def test_merge_preserves_amount_and_sets_payment_fields(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00")))
    paid_at = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    merged = table.merge(
        "tx1",
        ChargeRecordUpdate(amount=Decimal("99.00"), end_to_end_id="E1", paid_at=paid_at),
    )

    assert merged.status == ChargeStatus.PAID
    assert merged.amount == Decimal("10.00")
    stored = table.get("tx1")
    assert stored.status == ChargeStatus.PAID
    assert stored.end_to_end_id == "E1"
    assert stored.amount == Decimal("10.00")
    assert stored.paid_at.replace(tzinfo=None) == paid_at.replace(tzinfo=None)


def test_merge_unknown_txid_creates_nothing(table):
    assert table.merge("ghost", ChargeRecordUpdate(end_to_end_id="E9")) is None
    assert table.get("ghost") is None


def test_merge_keeps_previous_end_to_end_id(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("1.00")))
    table.merge("tx1", ChargeRecordUpdate(end_to_end_id="E1"))

    merged = table.merge("tx1", ChargeRecordUpdate())

    assert merged.end_to_end_id == "E1"


def test_merge_uses_event_amount_only_when_none_stored(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING))

    merged = table.merge("tx1", ChargeRecordUpdate(amount=Decimal("7.50")))

    assert merged.amount == Decimal("7.50")


def test_paid_is_never_reverted_by_put(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00")))
    table.merge("tx1", ChargeRecordUpdate(end_to_end_id="E1"))

    table.put("tx1", ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00")))

    assert table.get("tx1").status == ChargeStatus.PAID


def test_paid_is_never_reverted_by_merge(table):
    table.put("tx1", ChargeRecord(status=ChargeStatus.PAID, amount=Decimal("10.00")))

    merged = table.merge("tx1", ChargeRecordUpdate(status=ChargeStatus.PENDING))

    assert merged.status == ChargeStatus.PAID


def test_public_view_omits_absent_fields():
    record = ChargeRecord(status=ChargeStatus.PENDING, amount=Decimal("10.00"))

    assert record.to_public("tx1") == {"txid": "tx1", "status": "PENDING", "amount": 10.0}


def test_build_status_table_defaults_to_memory():
    assert isinstance(build_status_table(RelaySettings(_env_file=None, pix_status_store="memory")), InMemoryStatusTable)


def test_build_status_table_sql():
    settings = RelaySettings(_env_file=None, pix_status_store="SQL", database_url="sqlite://")

    table = build_status_table(settings)

    assert isinstance(table, SqlStatusTable)
    assert table.get("nothing") is None
