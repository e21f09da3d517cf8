"""Mapping of business errors to HTTP responses.

Every :class:`HaggleError` becomes ``{"error": code, "message": text}`` with a
status chosen by its code.  Storage failures are not handled here: they
propagate as 500s and reach Sentry through the error log.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from haggle.domain.errors import HaggleError

logger = structlog.get_logger()

STATUS_BY_CODE: dict[str, int] = {
    "NegotiationNotFound": 404,
    "ItemNotFound": 404,
    "CodeNotFound": 404,
    "NotParticipant": 403,
    "NotOwner": 403,
    "VersionConflict": 409,
    "DuplicateActiveNegotiation": 409,
    "AlreadyUsed": 409,
    "RateLimitExceeded": 429,
}
DEFAULT_ERROR_STATUS = 400

RETRY_MESSAGE = "The negotiation changed while your request was processed, please try again."


def error_status(exc: HaggleError) -> int:
    """Return the HTTP status for a business error."""
    return STATUS_BY_CODE.get(exc.code, DEFAULT_ERROR_STATUS)


async def haggle_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a :class:`HaggleError` as a structured JSON error."""
    assert isinstance(exc, HaggleError)
    message = RETRY_MESSAGE if exc.code == "VersionConflict" else str(exc)
    status = error_status(exc)
    logger.info("request_refused", error=exc.code, status=status, path=request.url.path)
    return JSONResponse(status_code=status, content={"error": exc.code, "message": message})


def register_error_handlers(app: FastAPI) -> None:
    """Install the business error handler on *app*."""
    app.add_exception_handler(HaggleError, haggle_error_handler)
