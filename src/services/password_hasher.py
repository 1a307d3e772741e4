"""Password hashing with bcrypt."""

import bcrypt

from domain.model.errors import HashingError

BCRYPT_ROUNDS = 12


class PasswordHasher:
    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, password: str) -> str:
        """Hash password with a fresh random salt.

        Raises:
            HashingError: bcrypt rejected the input (e.g. longer than 72 bytes)
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
        except (ValueError, TypeError) as e:
            raise HashingError("failed to hash password") from e

    def verify(self, hashed: str, candidate: str) -> bool:
        """Check candidate against a stored hash. False on mismatch or a malformed hash."""
        if not hashed or candidate is None:
            return False
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, candidate: str) -> bool:
        """Run a full check against a throwaway hash at the same cost. Always False."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("not-a-real-password")
        self.verify(self._dummy_hash, candidate or "")
        return False
