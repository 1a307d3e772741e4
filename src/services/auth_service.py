"""Auth service: signup, login and account management.

Pure business logic with no HTTP dependencies. Works against any Store
implementation and raises domain errors that the HTTP layer maps to status
codes.
"""

import logging
from datetime import datetime, timezone

from config import AuthConfig
from domain.model.attributes import validate_attributes
from domain.model.errors import (
    AuthenticationError,
    ConflictError,
    InvalidIdentifierError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from domain.model.query import Filter
from domain.model.user import User
from port.store import Store
from services.password_hasher import PasswordHasher
from services.token_service import TokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "invalid credentials"
USER_EXISTS = "user with this email already exists"
USER_NOT_FOUND = "user not found"


def _utc_now() -> datetime:
    # BSON dates carry millisecond precision
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class AuthManager:
    """Identity operations over one configured store.

    Stateless beyond the injected store, config, hasher and token service,
    so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        store: Store,
        config: AuthConfig,
        hasher: PasswordHasher | None = None,
        tokens: TokenService | None = None,
    ):
        self.store = store
        self.config = config
        self.hasher = hasher or PasswordHasher()
        self.tokens = tokens or TokenService()

    @property
    def collection(self) -> str:
        return self.config.store_name

    def _issue_token(self, user_id: str) -> str:
        return self.tokens.issue(user_id, self.config.secret, self.config.token_expiry_minutes)

    def validate_token(self, token: str) -> str:
        """Return the subject of a valid token. Raises a TokenError subclass otherwise."""
        return self.tokens.validate(token, self.config.secret)

    # ── signup / login ───────────────────────────────────────

    def signup(self, email: str, password: str, custom_attributes: dict | None = None) -> tuple[User, str]:
        """Create an account and return it with a fresh token.

        The existence check and the insert are separate store calls. A unique
        index on email (MongoStore.ensure_indexes / schema.users_table) turns a
        racing duplicate insert into ConflictError as well.

        Raises:
            ValidationError: empty email or password, non-JSON attributes
            ConflictError: email already registered
        """
        if not email:
            raise ValidationError("email is required")
        if not password:
            raise ValidationError("password is required")
        attributes = validate_attributes(custom_attributes)

        try:
            self.get_by_email(email)
        except NotFoundError:
            pass
        else:
            raise ConflictError(USER_EXISTS)

        password_hash = self.hasher.hash(password)
        created_at = _utc_now()
        try:
            user_id = self.store.create_one(self.collection, {
                'email': email,
                'password_hash': password_hash,
                'custom_attributes': attributes,
                'created_at': created_at,
            })
        except ConflictError:
            logger.warning("Signup lost uniqueness race", extra={"email": email})
            raise ConflictError(USER_EXISTS) from None

        user = User(
            id=user_id,
            email=email,
            created_at=created_at,
            custom_attributes=attributes,
            password_hash=password_hash,
        )
        token = self._issue_token(user_id)
        logger.info("User registered", extra={"userId": user_id, "email": email})
        return user, token

    def login(self, email: str, password: str) -> tuple[User, str]:
        """Authenticate by email and password.

        Unknown email and wrong password produce the same error.

        Raises:
            ValidationError: empty email or password
            AuthenticationError: invalid credentials
        """
        if not email or not password:
            raise ValidationError("email and password are required")

        try:
            user = self.get_by_email(email)
        except NotFoundError:
            # Unknown emails cost one bcrypt check too
            self.hasher.verify_dummy(password)
            raise AuthenticationError(INVALID_CREDENTIALS) from None
        if not self.hasher.verify(user.password_hash, password):
            raise AuthenticationError(INVALID_CREDENTIALS)

        token = self._issue_token(user.id)
        logger.info("User logged in", extra={"userId": user.id})
        return user, token

    # ── lookups ──────────────────────────────────────────────

    def get_by_id(self, user_id: str) -> User:
        """Raises NotFoundError for unknown or malformed ids."""
        try:
            record = self.store.find_one(self.collection, Filter.by_id(user_id))
        except (NotFoundError, InvalidIdentifierError):
            raise NotFoundError(USER_NOT_FOUND) from None
        return User.from_record(record)

    def get_by_email(self, email: str) -> User:
        try:
            record = self.store.find_one(self.collection, Filter.where(email=email))
        except NotFoundError:
            raise NotFoundError(USER_NOT_FOUND) from None
        return User.from_record(record)

    # ── mutations ────────────────────────────────────────────

    def update_profile(self, user_id: str, custom_attributes: dict | None) -> User:
        """Replace the whole custom attribute bag and return the stored user.

        Raises:
            ValidationError: non-JSON attributes
            NotFoundError: id does not resolve
        """
        attributes = validate_attributes(custom_attributes)
        try:
            self.store.update_one(
                self.collection,
                Filter.by_id(user_id),
                {'custom_attributes': attributes},
            )
        except (NotFoundError, InvalidIdentifierError):
            raise NotFoundError(USER_NOT_FOUND) from None
        logger.info("Profile updated", extra={"userId": user_id})
        return self.get_by_id(user_id)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> bool:
        """Replace the password hash after checking the old password.

        Read and write are two store calls, not a transaction.

        Raises:
            NotFoundError: id does not resolve
            AuthenticationError: old password does not match
            ValidationError: new password is empty
        """
        user = self.get_by_id(user_id)
        if not self.hasher.verify(user.password_hash, old_password or ""):
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not new_password:
            raise ValidationError("new password is required")

        password_hash = self.hasher.hash(new_password)
        try:
            self.store.update_one(self.collection, Filter.by_id(user.id), {'password_hash': password_hash})
        except NotFoundError:
            raise NotFoundError(USER_NOT_FOUND) from None
        logger.info("Password changed", extra={"userId": user.id})
        return True

    def delete_account(self, user_id: str) -> bool:
        """Permanently delete the user record.

        Raises:
            PersistenceError: nothing was deleted (unknown or malformed id)
        """
        try:
            self.store.delete_one(self.collection, Filter.by_id(user_id))
        except (NotFoundError, InvalidIdentifierError):
            logger.warning("Delete did not apply", extra={"userId": user_id})
            raise PersistenceError("failed to delete account") from None
        logger.info("Account deleted", extra={"userId": user_id})
        return True
