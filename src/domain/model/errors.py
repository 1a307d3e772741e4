"""Domain-level exceptions.

Services and adapters raise these errors to express rule violations and
infrastructure failures. The HTTP layer catches them and maps them to
status codes (see api.errors).
"""


class DomainError(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainError):
    """Caller-supplied input is malformed or missing."""


class InvalidIdentifierError(ValidationError):
    """A record identifier is not valid for the backing store."""

    def __init__(self, value: object = None):
        self.value = value
        super().__init__("invalid identifier")


class ConflictError(DomainError):
    """Uniqueness violation or failed precondition."""


class AuthenticationError(DomainError):
    """Bad credentials or token. Never says which factor failed."""


class NotFoundError(DomainError):
    """Requested entity does not exist."""


class PersistenceError(DomainError):
    """The store failed to apply an operation."""


class StoreTimeout(PersistenceError):
    """A store call exceeded its deadline."""


class StoreUnavailable(PersistenceError):
    """The store could not be reached."""


class ConfigurationError(DomainError):
    """Invalid setup, fatal at construction."""


class HashingError(DomainError):
    """Internal failure while hashing a password."""


class TokenError(DomainError):
    """Base class for token validation failures."""


class TokenMalformed(TokenError):
    """Token is not a structurally valid signed token."""


class TokenSignatureInvalid(TokenError):
    """Token signature does not verify under the secret."""


class TokenExpired(TokenError):
    """Token is past its expiry time."""
