"""Translation of helpdesk errors to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from helpdesk.services.helpdesk.errors import (
    AuthorizationError,
    ConflictError,
    HelpdeskError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

HTTP_STATUS: dict[type[HelpdeskError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def status_for(error: HelpdeskError) -> int:
    for error_type, status_code in HTTP_STATUS.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def helpdesk_error_handler(request: Request, exc: HelpdeskError) -> JSONResponse:
    """Render a helpdesk error as ``{"detail": ..., "code": ...}``."""
    status_code = status_for(exc)
    logger.info(
        f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}"
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )
