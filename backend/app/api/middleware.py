"""
Request correlation for logs and clients.

Each request gets a request id bound into structlog contextvars together
with method, path and client address, so service events such as
checkin_duplicate or payment_completed can be joined back to the HTTP call.
Door scanner apps and proxies may send their own X-Request-ID; it is reused
when it looks like an id and replaced otherwise.
"""

import re
import time
import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Polled by load balancers and Prometheus
QUIET_PATHS = frozenset({"/health", "/metrics"})


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return uuid.uuid4().hex[:12]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=_elapsed_ms(started))
            raise

        duration_ms = _elapsed_ms(started)
        if request.url.path not in QUIET_PATHS:
            if response.status_code >= 500:
                logger.warning("request_completed", status_code=response.status_code, duration_ms=duration_ms)
            else:
                logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
