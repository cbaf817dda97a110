"""
Research Gate Backend — Request Logging Middleware
====================================================

What:  One access log line per request: method, path, status, duration, ID.
Why:   The pipeline logs faults; this logs outcomes, so every request shows
       up exactly once in the access log whatever path it took.
How:   Times call_next and picks the log level from the status class.

Health checks (/ and /api/health) are skipped; the hosting platform hits
them every few seconds.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from research_gate.middleware.request_id import request_id_var

logger = logging.getLogger("research_gate.access")

QUIET_PATHS = frozenset({"/", "/api/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log level by status:
        5xx → ERROR, 4xx → WARNING, everything else → INFO
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

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
