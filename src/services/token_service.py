"""Signed, time-bounded identity tokens (HS256 JWT).

Claims: sub (user id), iat and exp as epoch seconds. Validation needs only
the token, the secret and the clock.
"""

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from domain.model.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
DEFAULT_EXPIRY_MINUTES = 60


class TokenService:
    def __init__(self, algorithm: str = JWT_ALGORITHM):
        self.algorithm = algorithm

    def issue(
        self,
        subject: str,
        secret: str,
        expiry_minutes: int = DEFAULT_EXPIRY_MINUTES,
        now: datetime | None = None,
    ) -> str:
        """Create a token for subject that expires expiry_minutes after now."""
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=expiry_minutes),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def validate(self, token: str, secret: str) -> str:
        """Verify token under secret and return its subject.

        Raises:
            TokenMalformed: not three base64url segments, bad header/claims
            TokenSignatureInvalid: signature does not match secret
            TokenExpired: current time is past exp
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise TokenMalformed("malformed token")
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformed("malformed token") from e
        if header.get("alg") != self.algorithm:
            raise TokenMalformed("malformed token")
        if not isinstance(claims.get("sub"), str) or "exp" not in claims:
            raise TokenMalformed("malformed token")

        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpired("token expired") from e
        except JWTClaimsError as e:
            raise TokenMalformed("malformed token") from e
        except JWTError as e:
            logger.debug(f"JWT verification failed: {e}")
            raise TokenSignatureInvalid("invalid token signature") from e
        return payload["sub"]
