"""Request context middleware for HTTP request tracing.

Every response carries an ``X-Request-ID`` header (echoed from the client or
generated), and every log entry written while handling the request carries
``request_id`` plus, when the caller identified themselves, ``user_id``.
"""

from __future__ import annotations

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
USER_ID_HEADER = "X-User-ID"
SERVICE_NAME = "haggle-engine"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request and caller identity into structlog contextvars."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        context: dict[str, str] = {"request_id": request_id, "service": SERVICE_NAME}
        user_id = request.headers.get(USER_ID_HEADER)
        if user_id:
            context["user_id"] = user_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
