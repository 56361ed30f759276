"""FastAPI application for pixqr."""
from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .logging_conf import configure_logging
from .middleware import RequestLoggingMiddleware, route_path
from .models import Charge, get_session, init_db
from .monitoring import metrics_payload, record_payload, record_service_error
from .pix_encoder import PixPayloadRequest, build_payload, decode_payload
from .renderer import render_qr_payload
from .schemas import (
    ChargeResponse,
    ConfirmRequest,
    ConfirmResponse,
    CreateChargeRequest,
    CreateChargeResponse,
    DecodeRequest,
    DecodeResponse,
    PayloadRequest,
    PayloadResponse,
    TLVField,
)
from .services.charges import ChargeService
from .services.errors import ServiceError

app = FastAPI(title="pixqr", version="0.1.0")
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger("pixqr.api")


def _warn_insecure_defaults() -> None:
    if settings.api_key == "dev-secret-key":
        logger.warning(
            "api key is using the default value",
            extra={"config_key": "api_key"},
        )


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    _warn_insecure_defaults()
    await init_db()


async def require_api_key(x_api_key: str = Header(...)) -> None:
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    path = route_path(request)
    logger.warning(
        "service error",
        extra={"code": exc.code, "path": path, "method": request.method},
    )
    record_service_error(exc.code, path)
    return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "message": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled exception",
        extra={"path": route_path(request), "method": request.method},
    )
    return JSONResponse(status_code=500, content={"code": "ERR_INTERNAL", "message": "Internal server error"})


def _charge_fields(charge: Charge) -> dict:
    return {
        "txid": charge.txid,
        "status": charge.status.value,
        "amount": charge.amount,
        "merchant_name": charge.merchant_name,
        "merchant_city": charge.merchant_city,
        "payload": charge.payload,
        "crc": charge.crc,
        "created_at": charge.created_at,
    }


@app.get("/health", tags=["system"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["system"])
async def metrics() -> Response:
    payload, content_type = metrics_payload()
    return Response(content=payload, media_type=content_type)


@app.post("/v1/pix/payload", response_model=PayloadResponse, tags=["pix"], dependencies=[Depends(require_api_key)])
async def generate_payload(payload: PayloadRequest) -> PayloadResponse:
    request = PixPayloadRequest(
        pix_key=payload.pix_key,
        amount=payload.amount,
        merchant_name=payload.merchant_name,
        merchant_city=payload.merchant_city,
        transaction_id=payload.transaction_id or "",
    )
    encoded = build_payload(request)
    record_payload("api")
    return PayloadResponse(payload=encoded.payload, crc=encoded.crc)


@app.post("/v1/pix/decode", response_model=DecodeResponse, tags=["pix"], dependencies=[Depends(require_api_key)])
async def decode(payload: DecodeRequest) -> DecodeResponse:
    decoded = decode_payload(payload.payload)
    fields = [
        TLVField(
            tag=item.tag,
            value=item.value,
            children=[TLVField(tag=child.tag, value=child.value) for child in decoded.templates[item.tag]]
            if item.tag in decoded.templates
            else None,
        )
        for item in decoded.items
    ]
    return DecodeResponse(
        fields=fields,
        crc=decoded.crc,
        expected_crc=decoded.expected_crc,
        crc_valid=decoded.crc_valid,
        in_standard_order=decoded.in_standard_order,
    )


@app.post(
    "/v1/charges",
    response_model=CreateChargeResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["charges"],
    dependencies=[Depends(require_api_key)],
)
async def create_charge(payload: CreateChargeRequest, session: AsyncSession = Depends(get_session)) -> CreateChargeResponse:
    service = ChargeService(session)
    result = await service.create_charge(
        amount=payload.amount,
        transaction_id=payload.transaction_id,
        pix_key=payload.pix_key,
        merchant_name=payload.merchant_name,
        merchant_city=payload.merchant_city,
    )
    return CreateChargeResponse(
        **_charge_fields(result.charge),
        qr_png_base64=result.qr_png_base64,
        qr_data_url=result.qr_data_url,
        render_error=result.render_error,
    )


@app.get("/v1/charges/{txid}", response_model=ChargeResponse, tags=["charges"], dependencies=[Depends(require_api_key)])
async def get_charge(txid: str, session: AsyncSession = Depends(get_session)) -> ChargeResponse:
    charge = await ChargeService(session).get_charge(txid)
    return ChargeResponse(**_charge_fields(charge))


@app.get("/v1/charges/{txid}/qr.png", tags=["charges"], dependencies=[Depends(require_api_key)])
async def get_charge_qr(txid: str, session: AsyncSession = Depends(get_session)) -> Response:
    charge = await ChargeService(session).get_charge(txid)
    render = render_qr_payload(charge.payload, title=settings.app_name)
    return Response(content=render["png_bytes"], media_type="image/png")


@app.post(
    "/v1/charges/{txid}/confirm",
    response_model=ConfirmResponse,
    tags=["charges"],
    dependencies=[Depends(require_api_key)],
)
async def confirm_charge(txid: str, payload: ConfirmRequest, session: AsyncSession = Depends(get_session)) -> ConfirmResponse:
    charge = await ChargeService(session).confirm_charge(txid, payload.action)
    return ConfirmResponse(txid=charge.txid, status=charge.status.value)
