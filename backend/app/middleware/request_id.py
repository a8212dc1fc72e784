"""
Lyceum Backend — Request ID Middleware
========================================

What:  Assigns a correlation id to each request and echoes it in X-Request-ID.
Why:   Error bodies carry the same id, so a client report can be matched to
       the server log lines for that request.
How:   Reuse a well-formed client-supplied X-Request-ID, otherwise generate a
       short UUID; store it in a ContextVar and on request.state.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests share a thread
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Sets request_id_var and request.state.request_id for the duration of a request.

    Client ids that are too long or contain anything beyond [A-Za-z0-9._-]
    are replaced, since the id is written verbatim into logs.
    """

    HEADER = "X-Request-ID"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(self.HEADER, "")
        rid = supplied if _CLIENT_ID_PATTERN.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[self.HEADER] = rid
        return response
