"""Domain error -> HTTP status mapping for the request-handling layer."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from domain.model.errors import (
    AuthenticationError,
    ConflictError,
    DomainError,
    NotFoundError,
    TokenError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# First match wins; subclasses must precede their bases.
_STATUS_MAP: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (TokenError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
]


def http_status_for(exc: DomainError) -> int:
    """Status code for a domain error. Infrastructure and setup errors are 500."""
    for error_type, code in _STATUS_MAP:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def install_error_handlers(app: FastAPI) -> None:
    """Translate DomainError raised by handlers into JSON error responses."""

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError):
        code = http_status_for(exc)
        headers = None
        if code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        if code >= 500:
            logger.error("Request failed", extra={"path": request.url.path, "error": str(exc), "errorType": type(exc).__name__})
        return JSONResponse(status_code=code, content={"error": str(exc)}, headers=headers)
