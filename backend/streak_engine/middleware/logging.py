"""
Streak Engine — Request Logging Middleware
============================================

What:  One access log line per HTTP request with status and duration.
Why:   A job trigger can run for minutes; its duration and status code are the
       first thing to check when a scheduled run is reported as failed.
How:   Measures from middleware entry to response, picks the level from the
       status code, attaches fields through `extra`.

What we log: method, path, status, duration, client IP, request ID.
Health checks are skipped (probes run every few seconds).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from streak_engine.middleware.request_id import request_id_var

logger = logging.getLogger("streak_engine.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path == "/health":
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        # 5xx → ERROR, 4xx → WARNING, else INFO
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
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
