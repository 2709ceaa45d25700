"""
HTTP request logging middleware.

One structured ``http_request`` line per request. Wallet routes also bind
the wallet address so provider logs emitted while serving the request can
be correlated with it.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

_WALLET_PATH_RE = re.compile(r"^/api/wallet/(?P<address>[^/]+)")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]

        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id}
        match = _WALLET_PATH_RE.match(request.url.path)
        if match:
            context["wallet"] = match.group("address").lower()
        structlog.contextvars.bind_contextvars(**context)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            if status_code >= 500:
                log = logger.error
            elif status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
            )
