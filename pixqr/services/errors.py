"""Shared service error definitions."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ServiceError(Exception):
    code: str
    message: str
    status_code: int = 400

    def __str__(self) -> str:  # noqa: D401 override
        return f"{self.code}: {self.message}"


class FieldTooLong(ServiceError):
    """A TLV value does not fit in its length prefix or field width."""

    def __init__(self, tag: str, length: int, limit: int = 99) -> None:
        super().__init__(
            code="ERR_FIELD_TOO_LONG",
            message=f"Field {tag} has {length} characters, limit is {limit}",
            status_code=422,
        )
        self.tag = tag
        self.length = length
        self.limit = limit


class InvalidAmount(ServiceError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(code="ERR_INVALID_AMOUNT", message=message or "Amount must be a non-negative number", status_code=422)


class MissingRequiredField(ServiceError):
    def __init__(self, field: str) -> None:
        super().__init__(code="ERR_MISSING_FIELD", message=f"Field {field} is required", status_code=422)
        self.field = field


class InvalidField(ServiceError):
    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(code="ERR_INVALID_FIELD", message=message or f"Field {field} has invalid characters", status_code=422)
        self.field = field


class InvalidPayload(ServiceError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(code="ERR_INVALID_PAYLOAD", message=message or "Malformed BR Code payload", status_code=400)


class RenderingUnavailable(ServiceError):
    """The payload is valid but the QR image could not be produced."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(code="ERR_RENDERING_UNAVAILABLE", message=message or "QR rendering unavailable", status_code=503)


class ChargeNotFound(ServiceError):
    def __init__(self, txid: str) -> None:
        super().__init__(code="ERR_CHARGE_NOT_FOUND", message=f"Charge {txid} not found", status_code=404)


class DuplicateCharge(ServiceError):
    def __init__(self, txid: str) -> None:
        super().__init__(code="ERR_DUPLICATE_CHARGE", message=f"Charge {txid} already exists", status_code=409)


class ChargeAlreadySettled(ServiceError):
    def __init__(self, txid: str, status: str) -> None:
        super().__init__(code="ERR_CHARGE_SETTLED", message=f"Charge {txid} is already {status}", status_code=409)
