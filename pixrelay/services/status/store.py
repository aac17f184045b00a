"""Status table: txid -> ChargeRecord.

The orchestrator writes PENDING records, the webhook handler merges PAID
updates, and the status endpoint reads. Every backend makes single-key
read-modify-write atomic; nothing spans keys.
"""

import threading
from typing import Protocol

import redis
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from pixrelay.common.config import RelaySettings
from pixrelay.common.db import Base, build_session_factory
from pixrelay.common.logging import logger
from pixrelay.services.status.models import ChargeStatusRow
from pixrelay.services.status.schemas import ChargeRecord, ChargeRecordUpdate, ChargeStatus


class StatusTable(Protocol):
    """Storage contract used by the orchestrator, webhook handler and status query."""

    def get(self, txid: str) -> ChargeRecord | None:
        ...

    def put(self, txid: str, record: ChargeRecord) -> None:
        ...

    def merge(self, txid: str, update: ChargeRecordUpdate) -> ChargeRecord | None:
        """Apply `update` to an existing record; unknown txids are left absent."""
        ...


class InMemoryStatusTable:
    """Process-local table. Lost on restart; meant for development and tests."""

    def __init__(self) -> None:
        self._records: dict[str, ChargeRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, txid: str) -> ChargeRecord | None:
        return self._records.get(txid)

    def put(self, txid: str, record: ChargeRecord) -> None:
        with self._lock:
            existing = self._records.get(txid)
            self._records[txid] = existing.replaced_by(record) if existing else record

    def merge(self, txid: str, update: ChargeRecordUpdate) -> ChargeRecord | None:
        with self._lock:
            existing = self._records.get(txid)
            if existing is None:
                return None
            merged = existing.merged(update)
            self._records[txid] = merged
            return merged


class RedisStatusTable:
    """One JSON document per txid; merges run inside WATCH/MULTI."""

    def __init__(self, client: redis.Redis, prefix: str = "pixrelay:charge:") -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, txid: str) -> str:
        return f"{self.prefix}{txid}"

    @staticmethod
    def _load(raw) -> ChargeRecord | None:
        if raw is None:
            return None
        return ChargeRecord.model_validate_json(raw)

    def get(self, txid: str) -> ChargeRecord | None:
        return self._load(self.client.get(self._key(txid)))

    def put(self, txid: str, record: ChargeRecord) -> None:
        key = self._key(txid)

        def _apply(pipe) -> None:
            existing = self._load(pipe.get(key))
            final = existing.replaced_by(record) if existing else record
            pipe.multi()
            pipe.set(key, final.model_dump_json())

        self.client.transaction(_apply, key)

    def merge(self, txid: str, update: ChargeRecordUpdate) -> ChargeRecord | None:
        key = self._key(txid)

        def _apply(pipe) -> ChargeRecord | None:
            existing = self._load(pipe.get(key))
            if existing is None:
                return None
            merged = existing.merged(update)
            pipe.multi()
            pipe.set(key, merged.model_dump_json())
            return merged

        return self.client.transaction(_apply, key, value_from_callable=True)


class SqlStatusTable:
    """Relational backend using the `charge_status` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def create_schema(self) -> None:
        Base.metadata.create_all(self.session_factory.kw["bind"])

    @staticmethod
    def _to_record(row: ChargeStatusRow) -> ChargeRecord:
        return ChargeRecord(
            status=ChargeStatus(row.status),
            amount=row.amount,
            end_to_end_id=row.end_to_end_id,
            paid_at=row.paid_at,
        )

    @staticmethod
    def _apply(row: ChargeStatusRow, record: ChargeRecord) -> None:
        row.status = record.status.value
        row.amount = record.amount
        row.end_to_end_id = record.end_to_end_id
        row.paid_at = record.paid_at

    def _locked_row(self, db, txid: str) -> ChargeStatusRow | None:
        return db.execute(
            select(ChargeStatusRow).where(ChargeStatusRow.txid == txid).with_for_update()
        ).scalar_one_or_none()

    def get(self, txid: str) -> ChargeRecord | None:
        with self.session_factory() as db:
            row = db.get(ChargeStatusRow, txid)
            return self._to_record(row) if row else None

    def put(self, txid: str, record: ChargeRecord) -> None:
        with self.session_factory() as db:
            row = self._locked_row(db, txid)
            if row is None:
                row = ChargeStatusRow(txid=txid)
                db.add(row)
                final = record
            else:
                final = self._to_record(row).replaced_by(record)
            self._apply(row, final)
            db.commit()

    def merge(self, txid: str, update: ChargeRecordUpdate) -> ChargeRecord | None:
        with self.session_factory() as db:
            row = self._locked_row(db, txid)
            if row is None:
                return None
            merged = self._to_record(row).merged(update)
            self._apply(row, merged)
            db.commit()
            return merged


def build_status_table(settings: RelaySettings) -> StatusTable:
    """Pick the backend named by `PIX_STATUS_STORE`."""

    if settings.pix_status_store == "redis":
        logger.info("status store=redis")
        return RedisStatusTable(redis.Redis.from_url(settings.redis_url, decode_responses=True))
    if settings.pix_status_store == "sql":
        logger.info("status store=sql")
        table = SqlStatusTable(build_session_factory(settings.database_url))
        table.create_schema()
        return table
    if settings.pix_status_store != "memory":
        logger.warning("unknown PIX_STATUS_STORE=%s, using memory", settings.pix_status_store)
    return InMemoryStatusTable()
