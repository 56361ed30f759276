"""Request logging middleware for the charge API."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .monitoring import observe_request

logger = logging.getLogger("pixqr.http")

RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


def route_path(request: Request) -> str:
    route = request.scope.get("route")
    return route.path if route else request.url.path


def request_context(request: Request) -> dict[str, Any]:
    """Log fields for a request; charge routes also carry their txid."""

    context: dict[str, Any] = {
        "method": request.method,
        "path": route_path(request),
        "client": request.client.host if request.client else None,
    }
    txid = request.path_params.get("txid")
    if txid:
        context["txid"] = txid
    return context


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its latency and expose the latency as a header."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            context = request_context(request)
            logger.exception("request failed", extra={**context, "duration_ms": duration_ms})
            observe_request(request.method, context["path"], 500, duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        context = request_context(request)
        logger.log(
            _level_for(response.status_code),
            "request completed",
            extra={**context, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        observe_request(request.method, context["path"], response.status_code, duration_ms)
        response.headers[RESPONSE_TIME_HEADER] = str(duration_ms)
        return response
