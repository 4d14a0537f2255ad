# app/core/security.py
"""
Password hashing for stored user credentials.

Uses bcrypt with a per-hash random salt. Output is always 60 characters.
"""
from functools import lru_cache

import bcrypt

from app.core.config import get_settings
from app.core.errors import HashingError

# bcrypt only looks at the first 72 bytes of input; longer passwords are
# rejected by the request schemas instead of being silently truncated.
MAX_PASSWORD_BYTES = 72


class BcryptHasher:
    """One-way hash + verify for user passwords."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """
        Hash a plaintext password.

        Raises:
            HashingError: if bcrypt fails (bad input, entropy failure).
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(plaintext.encode(), salt).decode()
        except (ValueError, TypeError) as e:
            raise HashingError() from e

    def verify(self, plaintext: str, hashed: str) -> bool:
        """
        Check a plaintext password against a stored hash.

        bcrypt.checkpw compares in constant time. A malformed hash
        counts as a mismatch.
        """
        try:
            return bcrypt.checkpw(plaintext.encode(), hashed.encode())
        except ValueError:
            return False


@lru_cache
def get_password_hasher() -> BcryptHasher:
    """FastAPI dependency returning the configured hasher."""
    return BcryptHasher(rounds=get_settings().BCRYPT_ROUNDS)
