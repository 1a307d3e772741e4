"""Bearer token guard for protected requests."""

import logging

from fastapi import HTTPException, Request, status

from domain.model.errors import AuthenticationError, TokenError
from services.auth_service import AuthManager

logger = logging.getLogger(__name__)

BEARER_SCHEME = "Bearer"


def parse_bearer_header(value: str | None) -> str:
    """Extract the token from an 'Authorization: Bearer <token>' value.

    Raises:
        AuthenticationError: header missing or not exactly two parts
    """
    if not value:
        raise AuthenticationError("missing header")
    parts = value.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME or not parts[1]:
        raise AuthenticationError("malformed header")
    return parts[1]


def authenticate_header(value: str | None, manager: AuthManager) -> str:
    """Return the user id carried by a valid bearer header."""
    token = parse_bearer_header(value)
    try:
        return manager.validate_token(token)
    except TokenError as e:
        logger.debug(f"Token rejected: {type(e).__name__}")
        raise AuthenticationError("invalid or expired token") from e


class BearerGuard:
    """FastAPI dependency that requires a valid bearer token.

    On success the subject is stored on request.state.user_id and returned.
    """

    def __init__(self, manager: AuthManager):
        self.manager = manager

    def __call__(self, request: Request) -> str:
        try:
            user_id = authenticate_header(request.headers.get("Authorization"), self.manager)
        except AuthenticationError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(e),
                headers={"WWW-Authenticate": BEARER_SCHEME},
            )
        request.state.user_id = user_id
        return user_id
