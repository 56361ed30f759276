"""Pydantic schemas for API contracts."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class PayloadRequest(BaseModel):
    pix_key: str = Field(min_length=1, max_length=77)
    amount: Decimal = Field(ge=0)
    merchant_name: str = Field(min_length=1)
    merchant_city: str = Field(min_length=1)
    transaction_id: str | None = Field(default=None, max_length=64)


class PayloadResponse(BaseModel):
    payload: str
    crc: str


class DecodeRequest(BaseModel):
    payload: str = Field(min_length=8, description="BR Code payload (copia e cola)")


class TLVField(BaseModel):
    tag: str
    value: str
    children: list[TLVField] | None = None


class DecodeResponse(BaseModel):
    fields: list[TLVField]
    crc: str
    expected_crc: str
    crc_valid: bool
    in_standard_order: bool


class CreateChargeRequest(BaseModel):
    amount: Decimal = Field(ge=0)
    transaction_id: str | None = Field(default=None, max_length=64)
    pix_key: str | None = Field(default=None, max_length=77)
    merchant_name: str | None = None
    merchant_city: str | None = None


class ChargeResponse(BaseModel):
    txid: str
    status: str
    amount: Decimal
    merchant_name: str
    merchant_city: str
    payload: str
    crc: str
    created_at: datetime


class CreateChargeResponse(ChargeResponse):
    qr_png_base64: str | None = None
    qr_data_url: str | None = None
    render_error: str | None = None


class ConfirmRequest(BaseModel):
    action: Literal["SUCCESS", "REJECTED"]


class ConfirmResponse(BaseModel):
    txid: str
    status: str
