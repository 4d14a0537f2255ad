# app/services/user_service.py
import logging
import uuid
from typing import Any

from sqlmodel import Session

from app.core.security import BcryptHasher
from app.core.tokens import SessionClaim, TokenIssuer
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import (
    UserCreate,
    UserFieldsFilter,
    UserFilter,
    UserReplace,
    UserUpdate,
    UserWhere,
)

logger = logging.getLogger(__name__)

# GET /users embeds these unless the filter names its own include list.
DEFAULT_LIST_INCLUDE = ["role", "customer"]


class UserService:
    """
    Business logic for User.

    Responsibilities:
      - hash passwords before any write reaches the store
      - issue tokens for principals authenticated by the local strategy
      - turn request schemas / filters into repository calls

    Authentication itself happens in app.core.auth before these run.
    """

    def __init__(
        self,
        repo: UserRepository,
        hasher: BcryptHasher,
        issuer: TokenIssuer,
    ):
        self.repo = repo
        self.hasher = hasher
        self.issuer = issuer

    # ----- Helpers -----

    def _hash_password_in(self, values: dict[str, Any]) -> dict[str, Any]:
        if values.get("password") is not None:
            values["password"] = self.hasher.hash(values["password"])
        return values

    @staticmethod
    def _where(where: UserWhere | None) -> dict[str, Any] | None:
        if where is None:
            return None
        return where.model_dump(exclude_unset=True)

    # ----- Auth -----

    def login(self, principal: User) -> dict[str, str]:
        """Issue a token for a user already verified by the local strategy."""
        token = self.issuer.issue(SessionClaim.from_user(principal))
        logger.info(f"User {principal.id} logged in")
        return {"token": token}

    # ----- Users -----

    def create_user(self, session: Session, payload: UserCreate) -> User:
        """
        Register a new user. The password is hashed before persistence.

        Raises:
            DuplicateUsernameError: username already taken.
        """
        values = self._hash_password_in(payload.model_dump())
        user = self.repo.create(session, User(**values))
        logger.info(f"Created user {user.id} ({user.username})")
        return user

    def count_users(self, session: Session, where: UserWhere | None = None) -> int:
        return self.repo.count(session, self._where(where))

    @staticmethod
    def list_include(user_filter: UserFilter | None) -> list[str]:
        """Relations embedded by a list: `filter.include`, else role and customer."""
        if user_filter is not None and user_filter.include is not None:
            return list(user_filter.include)
        return list(DEFAULT_LIST_INCLUDE)

    def list_users(
        self, session: Session, user_filter: UserFilter | None = None
    ) -> list[User]:
        user_filter = user_filter or UserFilter()
        return self.repo.find(
            session,
            where=self._where(user_filter.where),
            include=self.list_include(user_filter),
            skip=user_filter.skip,
            limit=user_filter.limit,
        )

    def get_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        user_filter: UserFieldsFilter | None = None,
    ) -> User:
        include = user_filter.include if user_filter else None
        return self.repo.find_by_id(session, user_id, include=include)

    def patch_users(
        self,
        session: Session,
        payload: UserUpdate,
        where: UserWhere | None = None,
    ) -> int:
        """Bulk partial update. Returns the number of users changed."""
        patch = self._hash_password_in(payload.model_dump(exclude_unset=True))
        return self.repo.update_all(session, patch, self._where(where))

    def patch_user(
        self, session: Session, user_id: uuid.UUID, payload: UserUpdate
    ) -> None:
        patch = self._hash_password_in(payload.model_dump(exclude_unset=True))
        self.repo.update_by_id(session, user_id, patch)

    def replace_user(
        self, session: Session, user_id: uuid.UUID, payload: UserReplace
    ) -> None:
        values = self._hash_password_in(payload.model_dump())
        self.repo.replace_by_id(session, user_id, values)

    def delete_user(self, session: Session, user_id: uuid.UUID) -> None:
        self.repo.delete_by_id(session, user_id)
        logger.info(f"Deleted user {user_id}")
