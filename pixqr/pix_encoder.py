"""Static PIX BR Code payload encoder."""
from __future__ import annotations

import logging
import time
import unicodedata
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .crc import crc16_hex
from .services.errors import FieldTooLong, InvalidAmount, InvalidField, InvalidPayload, MissingRequiredField
from .tlv import TLVItem, build_tlv, encode_field, parse_tlv

logger = logging.getLogger("pixqr.encoder")

PIX_GUI = "BR.GOV.BCB.PIX"
PAYLOAD_FORMAT_INDICATOR = "01"
MERCHANT_CATEGORY_CODE = "0000"
CURRENCY_BRL = "986"
COUNTRY_CODE = "BR"
CRC_HEADER = "6304"

MERCHANT_NAME_MAX = 25
MERCHANT_CITY_MAX = 15
TXID_MAX = 25
AMOUNT_MAX = 13
NO_TXID = "***"

TOP_LEVEL_ORDER = ("00", "26", "52", "53", "54", "58", "59", "60", "62", "63")
TEMPLATE_TAGS = frozenset({"26", "62"})

AmountLike = Union[Decimal, int, float, str]


def strip_diacritics(text: str) -> str:
    """Decompose accented characters and drop the combining marks."""

    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _is_printable_ascii(text: str) -> bool:
    return all(" " <= ch <= "~" for ch in text)


def to_decimal(amount: AmountLike) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount("Amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Amount {amount!r} is not a number") from exc
    if not value.is_finite():
        raise InvalidAmount("Amount must be finite")
    if value < 0:
        raise InvalidAmount(f"Amount {value} is negative")
    if value.is_zero():
        return value.copy_abs()
    return value


def format_amount(amount: Decimal) -> str:
    """Render amount with two fractional digits and no grouping (13.5 -> 13.50)."""

    text = f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):f}"
    if len(text) > AMOUNT_MAX:
        raise FieldTooLong(tag="54", length=len(text), limit=AMOUNT_MAX)
    return text


@dataclass(frozen=True)
class PixPayloadRequest:
    pix_key: str
    amount: Decimal
    merchant_name: str
    merchant_city: str
    transaction_id: str = NO_TXID

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class EncodedPayload:
    payload: str
    crc: str


def _sanitize_text(name: str, value: str, limit: int) -> str:
    cleaned = strip_diacritics(value)[:limit]
    if not cleaned.strip():
        raise MissingRequiredField(name)
    if not _is_printable_ascii(cleaned):
        raise InvalidField(name, f"Field {name} must contain only ASCII characters")
    return cleaned


def _validate(request: PixPayloadRequest) -> tuple[str, str, str, str]:
    pix_key = request.pix_key
    if not pix_key.strip():
        raise MissingRequiredField("pix_key")
    if not _is_printable_ascii(pix_key):
        raise InvalidField("pix_key", "Pix key must contain only printable ASCII characters")

    name = _sanitize_text("merchant_name", request.merchant_name, MERCHANT_NAME_MAX)
    city = _sanitize_text("merchant_city", request.merchant_city, MERCHANT_CITY_MAX)

    txid = request.transaction_id[:TXID_MAX] or NO_TXID
    if not _is_printable_ascii(txid):
        raise InvalidField("transaction_id", "Transaction id must contain only printable ASCII characters")
    return pix_key, name, city, txid


def build_payload(request: PixPayloadRequest) -> EncodedPayload:
    """Assemble the BR Code fields in standard order and append the CRC16."""

    pix_key, name, city, txid = _validate(request)
    amount = format_amount(request.amount)

    merchant_account = build_tlv([TLVItem("00", PIX_GUI), TLVItem("01", pix_key)])
    additional_data = build_tlv([TLVItem("05", txid)])

    fields = (
        encode_field("00", PAYLOAD_FORMAT_INDICATOR),
        encode_field("26", merchant_account),
        encode_field("52", MERCHANT_CATEGORY_CODE),
        encode_field("53", CURRENCY_BRL),
        encode_field("54", amount),
        encode_field("58", COUNTRY_CODE),
        encode_field("59", name),
        encode_field("60", city),
        encode_field("62", additional_data),
    )
    crc_input = "".join(fields) + CRC_HEADER
    crc = crc16_hex(crc_input)
    logger.debug("pix payload built", extra={"txid": txid, "amount": amount, "crc": crc})
    return EncodedPayload(payload=f"{crc_input}{crc}", crc=crc)


def generate_pix_payload(
    *,
    pix_key: str,
    amount: AmountLike,
    merchant_name: str,
    merchant_city: str,
    transaction_id: str = NO_TXID,
) -> str:
    """Shortcut returning only the payload string."""

    request = PixPayloadRequest(
        pix_key=pix_key,
        amount=amount,
        merchant_name=merchant_name,
        merchant_city=merchant_city,
        transaction_id=transaction_id,
    )
    return build_payload(request).payload


def new_transaction_id() -> str:
    return f"TXID{time.time_ns() // 1_000_000}"


@dataclass(frozen=True)
class DecodedPayload:
    items: tuple[TLVItem, ...]
    templates: dict[str, tuple[TLVItem, ...]] = field(default_factory=dict)
    crc: str = ""
    expected_crc: str = ""

    @property
    def crc_valid(self) -> bool:
        return self.crc == self.expected_crc

    @property
    def in_standard_order(self) -> bool:
        return tuple(item.tag for item in self.items) == TOP_LEVEL_ORDER

    def get(self, tag: str) -> str | None:
        for item in self.items:
            if item.tag == tag:
                return item.value
        return None

    def get_nested(self, template: str, tag: str) -> str | None:
        for item in self.templates.get(template, ()):
            if item.tag == tag:
                return item.value
        return None


def decode_payload(payload: str) -> DecodedPayload:
    """Parse a BR Code, expand templates 26 and 62 and recompute its CRC."""

    items = tuple(parse_tlv(payload))
    if not items or items[-1].tag != "63":
        raise InvalidPayload("CRC field 63 must be the last field")
    crc_item = items[-1]
    if len(crc_item.value) != 4:
        raise InvalidPayload("CRC field 63 must have 4 characters")
    if any(item.tag == "63" for item in items[:-1]):
        raise InvalidPayload("CRC field 63 appears more than once")

    templates = {item.tag: tuple(parse_tlv(item.value)) for item in items if item.tag in TEMPLATE_TAGS}
    try:
        expected = crc16_hex(payload[:-4])
    except ValueError as exc:
        raise InvalidPayload(str(exc)) from exc
    return DecodedPayload(items=items, templates=templates, crc=crc_item.value.upper(), expected_crc=expected)


def verify_payload(payload: str) -> bool:
    """Return True when the payload parses and its checksum matches."""

    try:
        return decode_payload(payload).crc_valid
    except InvalidPayload:
        return False
