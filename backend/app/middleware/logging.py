"""
Lyceum Backend — Request Logging Middleware
=============================================

What:  One access log line per request: method, path, status, duration,
       request id, client address.
Why:   Uvicorn's access log has no request id and no timing.
How:   Time the downstream call; choose the level from the status code
       (5xx ERROR, 4xx WARNING, otherwise INFO).

Health probes are not logged. File streams from GridFS are logged at DEBUG,
since a single page load can fetch dozens of images.

Request bodies are never logged: uploads and user documents carry
passwords and personal data.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings
from app.middleware.request_id import request_id_var

logger = logging.getLogger("lyceum.access")

QUIET_PATHS = {"/health"}
FILE_PREFIXES = ("/uploads/", "/download/")


def client_address(request: Request) -> str:
    """
    Socket peer address; the first X-Forwarded-For hop only when
    settings.trust_forwarded_for is on.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        elif path.startswith(FILE_PREFIXES):
            log_level = logging.DEBUG
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        client_ip = client_address(request)
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
