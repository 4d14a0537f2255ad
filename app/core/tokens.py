# app/core/tokens.py
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import jwt, JOSEError, JWTError, ExpiredSignatureError

from app.core.config import get_settings
from app.core.errors import InvalidTokenError, SigningError, TokenExpiredError


@dataclass(frozen=True)
class SessionClaim:
    """
    Minimal user data embedded in an access token.

    Also serves as the request principal once a bearer token is verified.
    """

    id: uuid.UUID
    username: str
    first_name: str | None = None

    @classmethod
    def from_user(cls, user) -> "SessionClaim":
        return cls(id=user.id, username=user.username, first_name=user.first_name)


class TokenIssuer:
    """
    Issue and verify signed, time-bounded JWT access tokens.

    Payload:
      - sub / id: user id (string UUID)
      - username, first_name
      - iat, exp
    """

    def __init__(
        self,
        secret_key: str | None,
        algorithm: str = "HS256",
        expires_minutes: int = 60,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = timedelta(minutes=expires_minutes)

    def _require_key(self) -> str:
        if not self.secret_key:
            raise SigningError("Token signing key is not configured")
        return self.secret_key

    def issue(self, claim: SessionClaim) -> str:
        """
        Sign a token carrying the given claim.

        Raises:
            SigningError: if the key is missing or signing fails.
        """
        key = self._require_key()
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(claim.id),
            "id": str(claim.id),
            "username": claim.username,
            "first_name": claim.first_name,
            "iat": int(now.timestamp()),
            "exp": int((now + self.expires_delta).timestamp()),
        }
        try:
            return jwt.encode(payload, key, algorithm=self.algorithm)
        except JOSEError as e:
            raise SigningError() from e

    def verify(self, token: str) -> SessionClaim:
        """
        Decode and verify a token (signature + exp).

        Raises:
            TokenExpiredError: if exp is in the past.
            InvalidTokenError: bad signature, malformed token or claims.
            SigningError: if the key is missing.
        """
        key = self._require_key()
        try:
            payload = jwt.decode(token, key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError:
            raise InvalidTokenError()

        sub = payload.get("sub")
        username = payload.get("username")
        if not sub or not username:
            raise InvalidTokenError("Token missing sub/username")

        try:
            user_id = uuid.UUID(sub)
        except ValueError:
            raise InvalidTokenError("Invalid sub in token")

        return SessionClaim(
            id=user_id,
            username=username,
            first_name=payload.get("first_name"),
        )


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """FastAPI dependency returning the configured token issuer."""
    settings = get_settings()
    return TokenIssuer(
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
        expires_minutes=settings.JWT_EXPIRES_MINUTES,
    )
