# app/core/auth.py
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from app.core.errors import InvalidCredentialsError, UnauthorizedError
from app.core.security import BcryptHasher, get_password_hasher
from app.core.tokens import SessionClaim, TokenIssuer, get_token_issuer
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import Credentials

logger = logging.getLogger(__name__)

# HTTP Bearer scheme:
# - auto_error=False => a missing Authorization header does not raise
#   FastAPI's own 403, so we can answer with our 401 envelope instead.
bearer_scheme = HTTPBearer(auto_error=False)

repo = UserRepository()


def authenticate_local(
    credentials: Credentials,
    session: Session = Depends(get_session),
    hasher: BcryptHasher = Depends(get_password_hasher),
) -> User:
    """
    Local strategy: verify username + password from the request body.

    Flow:
      1. Look the user up by username.
      2. Check the password against the stored bcrypt hash.

    Unknown username and wrong password fail the same way so callers
    can't probe for existing accounts.

    Returns:
        The authenticated User.

    Raises:
        InvalidCredentialsError(401)
    """
    user = repo.find_by_username(session, credentials.username)
    if user is None or not hasher.verify(credentials.password, user.password):
        logger.info(f"Login rejected for username={credentials.username!r}")
        raise InvalidCredentialsError()
    return user


def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> SessionClaim:
    """
    Bearer strategy: verify the JWT from the Authorization header.

    Attach this as a route-level dependency so it runs before the
    handler's own dependencies (and therefore before any DB access).
    The principal is also stored on `request.state.principal`.

    Raises:
        UnauthorizedError(401): no bearer token.
        InvalidTokenError(401) / TokenExpiredError(401): from the issuer.
    """
    if credentials is None:
        raise UnauthorizedError("Missing bearer token")

    principal = issuer.verify(credentials.credentials)
    request.state.principal = principal
    return principal
