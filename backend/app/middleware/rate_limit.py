"""
Lyceum Backend — Rate Limiting Middleware
===========================================

What:  Per-client sliding window rate limiter.
Why:   The list endpoints accept arbitrary filters and random sampling, and
       uploads can be up to 2 GB; an unthrottled client can keep MongoDB and
       the upload pipeline busy.
How:   Keep recent request timestamps per client address. Drop those older
       than the window; reject when the remainder reaches the limit.

Limits come from settings.rate_limit_requests / settings.rate_limit_window.
State is in-process: each uvicorn worker counts separately.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.logging import client_address
from app.middleware.request_id import request_id_var
from app.services.media_types import MEDIA_TYPES

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Exempt: preflight requests, health checks, API docs and GridFS file
    streams (pages embed many of those). Clients are keyed by
    client_address(), which ignores X-Forwarded-For unless
    settings.trust_forwarded_for is on.

    The 429 body has the same shape as the global error handlers produce;
    exceptions raised here would bypass them, so the response is built
    directly from RateLimitExceededError.
    """

    EXCLUDED_PATHS = {"/", "/health", "/docs", "/openapi.json", "/redoc"}
    EXCLUDED_PREFIXES = ("/uploads/", "/download/")

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    def is_exempt(self, path: str) -> bool:
        if path in self.EXCLUDED_PATHS or path.startswith(self.EXCLUDED_PREFIXES):
            return True
        # Short file URLs: /{mediaType}/{filename}
        segments = path.strip("/").split("/")
        return len(segments) == 2 and segments[0] in MEDIA_TYPES

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "OPTIONS" or self.is_exempt(request.url.path):
            return await call_next(request)

        client_ip = client_address(request)
        now = time.time()
        window_start = now - settings.rate_limit_window

        recent = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = recent

        if len(recent) >= settings.rate_limit_requests:
            retry_after = int(recent[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                client_ip,
                len(recent),
                settings.rate_limit_window,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)

        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive_clients(window_start)

        return await call_next(request)

    def _cleanup_inactive_clients(self, window_start: float) -> None:
        """Forget clients with no requests inside the current window."""
        inactive = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive:
            del self._requests[ip]

        if inactive:
            logger.debug("Cleaned up %d inactive rate limit entries", len(inactive))
