"""Request logging middleware.

Logs every HTTP request with method, path, status code, latency and a short
request ID. The ID is bound to current_request_id for the duration of the
request, so every ApiResponse built while handling it carries the same value,
and is returned to the caller as X-Request-ID.

Log format:
    INFO [POST] /api/v1/p2p/offers/abc/trades → 201 (23ms) req_a1b2c3d4e5f6
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.p2p_common.response import current_request_id, new_request_id

logger = logging.getLogger("p2p.request")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = new_request_id()
        token = current_request_id.set(request_id)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            current_request_id.reset(token)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
