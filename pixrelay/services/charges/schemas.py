"""Request/response schemas for charge creation."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pixrelay.common.errors import ChargeValidationError


CENT = Decimal("0.01")


class ChargeRequest(BaseModel):
    """Charge payload accepted from the merchant application."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    amount: Decimal
    description: str = Field(min_length=1)
    order_id: str | None = Field(default=None, alias="orderId")
    payer_name: str | None = Field(default=None, alias="payerName")

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        if isinstance(value, bool) or value is None or value == "":
            raise ValueError("amount is required")
        try:
            amount = Decimal(str(value).strip()).quantize(CENT, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError) as exc:
            raise ValueError("amount must be a number") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValueError("amount must be positive")
        return amount

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("order_id", "payer_name", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        # Empty optionals are treated as absent; numbers are stringified.
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "ChargeRequest":
        """Validate a raw JSON body, reporting failures as `ChargeValidationError`."""

        if not isinstance(payload, Mapping) or not payload.get("amount") or not payload.get("description"):
            raise ChargeValidationError("amount and description are required")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            reasons = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
            raise ChargeValidationError("invalid charge request", detail=reasons) from exc


class ChargeResult(BaseModel):
    """What the merchant needs to show the payer."""

    model_config = ConfigDict(populate_by_name=True)

    txid: str
    copy_paste_code: str = Field(serialization_alias="copyPasteCode")
    qr_image_base64: str = Field(serialization_alias="qrImageBase64")
    expires_in_seconds: int = Field(serialization_alias="expiresInSeconds")

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True)
