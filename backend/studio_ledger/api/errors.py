"""Map engine exceptions to HTTP responses.

Every error body has the shape ``{"detail": <message>, "code": <code>}``
plus the exception's ``details`` when it carries any.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from studio_ledger.errors import (
    BusinessRuleError,
    InvalidInputError,
    NotFoundError,
    StudioError,
    UnavailableError,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching base class decides the status code.
_STATUS_BY_ERROR: list[tuple[type[StudioError], int]] = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (BusinessRuleError, status.HTTP_409_CONFLICT),
    (UnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: StudioError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)

    body = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    if isinstance(exc, InvalidInputError) and exc.field:
        body["field"] = exc.field
    headers = {"Retry-After": "1"} if isinstance(exc, UnavailableError) else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StudioError, studio_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
