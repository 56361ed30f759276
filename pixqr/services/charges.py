"""PIX charge creation and settlement services."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Charge, ChargeStatus
from ..monitoring import record_payload
from ..pix_encoder import AmountLike, EncodedPayload, PixPayloadRequest, build_payload, decode_payload, new_transaction_id
from ..renderer import render_qr_payload
from .errors import ChargeAlreadySettled, ChargeNotFound, DuplicateCharge, RenderingUnavailable

logger = logging.getLogger("pixqr.charges")


@dataclass(slots=True)
class ChargeResult:
    charge: Charge
    encoded: EncodedPayload
    qr_png_base64: str | None
    qr_data_url: str | None = None
    render_error: str | None = None


class ChargeService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_charge(
        self,
        *,
        amount: AmountLike,
        transaction_id: str | None = None,
        pix_key: str | None = None,
        merchant_name: str | None = None,
        merchant_city: str | None = None,
        render: bool = True,
    ) -> ChargeResult:
        request = PixPayloadRequest(
            pix_key=pix_key if pix_key is not None else settings.merchant.pix_key,
            amount=amount,
            merchant_name=merchant_name if merchant_name is not None else settings.merchant.name,
            merchant_city=merchant_city if merchant_city is not None else settings.merchant.city,
            transaction_id=transaction_id or new_transaction_id(),
        )
        encoded = build_payload(request)
        decoded = decode_payload(encoded.payload)
        txid = decoded.get_nested("62", "05") or request.transaction_id

        if await self._fetch_charge(txid) is not None:
            raise DuplicateCharge(txid)

        charge = Charge(
            txid=txid,
            pix_key=request.pix_key,
            amount=request.amount,
            merchant_name=decoded.get("59") or "",
            merchant_city=decoded.get("60") or "",
            payload=encoded.payload,
            crc=encoded.crc,
            status=ChargeStatus.PENDING,
        )
        self.session.add(charge)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateCharge(txid) from exc
        await self.session.refresh(charge)
        record_payload("charge")
        logger.info("charge created", extra={"txid": txid, "amount": str(request.amount), "crc": encoded.crc})

        qr_png_base64 = None
        qr_data_url = None
        render_error = None
        if render:
            try:
                rendered = render_qr_payload(encoded.payload, title=settings.app_name)
                qr_png_base64 = rendered["png_base64"]
                qr_data_url = rendered["data_url"]
            except RenderingUnavailable as exc:
                logger.warning("charge created without qr image", extra={"txid": txid, "code": exc.code})
                render_error = exc.message

        return ChargeResult(
            charge=charge,
            encoded=encoded,
            qr_png_base64=qr_png_base64,
            qr_data_url=qr_data_url,
            render_error=render_error,
        )

    async def get_charge(self, txid: str) -> Charge:
        charge = await self._fetch_charge(txid)
        if charge is None:
            raise ChargeNotFound(txid)
        return charge

    async def confirm_charge(self, txid: str, action: Literal["SUCCESS", "REJECTED"]) -> Charge:
        """Apply an inbound settlement event to a pending charge."""

        charge = await self.get_charge(txid)
        if charge.status != ChargeStatus.PENDING:
            raise ChargeAlreadySettled(txid, charge.status.value)

        charge.status = ChargeStatus.PAID if action == "SUCCESS" else ChargeStatus.REJECTED
        await self.session.commit()
        await self.session.refresh(charge)
        logger.info("charge settled", extra={"txid": txid, "status": charge.status.value})
        return charge

    async def _fetch_charge(self, txid: str) -> Charge | None:
        stmt = select(Charge).where(Charge.txid == txid).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()
