"""Charge status record kept by the relay."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class ChargeStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    UNKNOWN = "UNKNOWN"


class ChargeRecord(BaseModel):
    """Current payment state for one txid."""

    status: ChargeStatus
    amount: Decimal | None = None
    end_to_end_id: str | None = None
    paid_at: datetime | None = None

    def merged(self, update: "ChargeRecordUpdate") -> "ChargeRecord":
        """Apply a webhook update while keeping the stored amount and e2e id."""

        status = update.status
        if self.status == ChargeStatus.PAID and status != ChargeStatus.PAID:
            status = ChargeStatus.PAID
        return ChargeRecord(
            status=status,
            amount=self.amount if self.amount is not None else update.amount,
            end_to_end_id=update.end_to_end_id or self.end_to_end_id,
            paid_at=update.paid_at or self.paid_at,
        )

    def replaced_by(self, record: "ChargeRecord") -> "ChargeRecord":
        """Resolve a `put` over an existing record: PAID is never reverted."""

        if self.status == ChargeStatus.PAID and record.status != ChargeStatus.PAID:
            return self
        return record

    def to_public(self, txid: str) -> dict:
        body = {"txid": txid, "status": self.status.value}
        if self.amount is not None:
            body["amount"] = float(self.amount)
        if self.end_to_end_id:
            body["endToEndId"] = self.end_to_end_id
        if self.paid_at is not None:
            body["paidAt"] = self.paid_at.isoformat()
        return body


class ChargeRecordUpdate(BaseModel):
    """Partial update applied by the webhook path."""

    status: ChargeStatus = ChargeStatus.PAID
    amount: Decimal | None = None
    end_to_end_id: str | None = None
    paid_at: datetime | None = None
