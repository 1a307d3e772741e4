"""Configuration: auth settings and environment loading."""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from domain.model.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_EXPIRY_MINUTES = 60
DEFAULT_STORE_NAME = 'users'


@dataclass(frozen=True)
class AuthConfig:
    """Immutable auth settings.

    token_expiry_minutes of 0/None falls back to 60, an empty store_name
    to 'users'.
    """
    secret: str
    token_expiry_minutes: int | None = DEFAULT_TOKEN_EXPIRY_MINUTES
    store_name: str | None = DEFAULT_STORE_NAME

    def __post_init__(self):
        if not self.secret:
            raise ConfigurationError("auth secret is required")
        if not self.token_expiry_minutes:
            object.__setattr__(self, 'token_expiry_minutes', DEFAULT_TOKEN_EXPIRY_MINUTES)
        elif self.token_expiry_minutes < 0:
            raise ConfigurationError("token expiry must be positive")
        if not self.store_name:
            object.__setattr__(self, 'store_name', DEFAULT_STORE_NAME)


def _int_env(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer") from None


@dataclass(frozen=True)
class Env:
    """Process settings read from the environment (and .env if present)."""
    url: str = 'http://localhost'
    port: str = '8080'
    mongo_url: str | None = None
    mongo_database: str = 'authcore'
    postgres_url: str | None = None
    jwt_secret: str | None = None
    token_expiry_minutes: int | None = None
    store_name: str | None = None

    @classmethod
    def load(cls, dotenv_path: str = '.env') -> "Env":
        if not load_dotenv(dotenv_path):
            logger.warning(".env file not found, using process environment and defaults")
        return cls(
            url=os.getenv('URL') or 'http://localhost',
            port=os.getenv('PORT') or '8080',
            mongo_url=os.getenv('MONGO_URL') or None,
            mongo_database=os.getenv('MONGODB_DATABASE') or 'authcore',
            postgres_url=os.getenv('POSTGRES_URL') or None,
            jwt_secret=os.getenv('JWT_SECRET_KEY') or None,
            token_expiry_minutes=_int_env('TOKEN_EXPIRY_MINUTES'),
            store_name=os.getenv('AUTH_STORE_NAME') or None,
        )

    def auth_config(self) -> AuthConfig:
        """Raises ConfigurationError when JWT_SECRET_KEY is not set."""
        return AuthConfig(
            secret=self.jwt_secret or '',
            token_expiry_minutes=self.token_expiry_minutes,
            store_name=self.store_name,
        )
