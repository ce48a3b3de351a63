"""
Streak Engine — Request ID Middleware
=======================================

What:  Assigns an ID to each incoming request and echoes it in X-Request-ID.
Why:   A scheduler retry, its job report and the per-entity warnings it caused
       can be matched up in the logs by one ID.
How:   Uses the caller's X-Request-ID when present, otherwise a short UUID;
       stores it in a ContextVar for loggers and exception handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request for tracing."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
