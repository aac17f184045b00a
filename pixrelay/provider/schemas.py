"""Wire models for the provider's Pix API.

Field names follow the provider's Portuguese JSON keys through aliases; the
rest of the code only sees the snake_case attributes.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenResponse(BaseModel):
    """Body of a successful OAuth client-credentials exchange."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    expires_in: int | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        return value


class ChargeCalendar(BaseModel):
    expiracao: int


class ChargeAmount(BaseModel):
    original: str


class AdditionalInfo(BaseModel):
    nome: str
    valor: str


class ChargePayload(BaseModel):
    """Body of `PUT /cob/{txid}`."""

    calendario: ChargeCalendar
    valor: ChargeAmount
    chave: str | None = None
    solicitacao_pagador: str = Field(serialization_alias="solicitacaoPagador")
    info_adicionais: list[AdditionalInfo] = Field(default_factory=list, serialization_alias="infoAdicionais")

    def to_wire(self) -> dict[str, Any]:
        # Absent optional fields are omitted, never sent as null.
        return self.model_dump(by_alias=True, exclude_none=True)


class ChargeLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None


class ChargeResponse(BaseModel):
    """Subset of `GET /cob/{txid}` the relay relies on."""

    model_config = ConfigDict(extra="ignore")

    txid: str | None = None
    status: str | None = None
    loc: ChargeLocation | None = None

    @property
    def location_id(self) -> int | str | None:
        if self.loc is None or self.loc.id in (None, ""):
            return None
        return self.loc.id


class QrCodeResponse(BaseModel):
    """Body of `GET /loc/{id}/qrcode`."""

    model_config = ConfigDict(extra="ignore")

    qrcode: str | None = None
    imagem_qrcode: str | None = Field(default=None, alias="imagemQrcode")


class WebhookRegistration(BaseModel):
    """Body of `PUT /webhook/{chave}`."""

    webhook_url: str = Field(serialization_alias="webhookUrl")
