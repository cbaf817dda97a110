"""
Research Gate Backend — Request ID Middleware
===============================================

What:  Gives every request a correlation ID and echoes it in X-Request-ID.
Why:   Pipeline log lines ("[rid] Error: ...") and the access log line for
       the same request can be joined without guessing from timestamps.
How:   Reuses a well-formed client-supplied X-Request-ID, otherwise
       generates a short UUID; stores it in a ContextVar for loggers.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Client sent a usable X-Request-ID → keep it (frontend tracing)
        2. Missing or malformed (log injection, oversized) → generate one
        3. Expose via request_id_var and request.state.request_id
        4. Echo in the response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER, "")
        rid = supplied if _VALID_ID.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
