# app/repositories/user_repo.py
import uuid
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from app.core.errors import DuplicateUsernameError, NotFoundError, ValidationError
from app.models.customer import Customer
from app.models.role import Role
from app.models.user import User, utc_now

# Columns a full replace overwrites; everything except id.
REPLACEABLE_FIELDS = ("username", "password", "first_name", "role_id", "customer_id")

_RELATIONS = {
    "role": User.role,
    "customer": User.customer,
}


class UserRepository:
    """
    Data access layer for User.

    Responsibilities:
      - Pure DB operations (CRUD + queries), one transaction per call
      - Translate constraint violations into domain errors
      - No FastAPI, no HTTP, no hashing

    Filters are plain dicts of column -> value, matched by equality.
    """

    # ----- Helpers -----

    @staticmethod
    def _conditions(where: dict[str, Any] | None) -> list:
        return [getattr(User, column) == value for column, value in (where or {}).items()]

    @staticmethod
    def _load_options(include: list[str] | None) -> list:
        return [selectinload(_RELATIONS[name]) for name in include or []]

    @staticmethod
    def _check_references(session: Session, values: dict[str, Any]) -> None:
        """Reject role/customer ids that don't exist (SQLite won't)."""
        role_id = values.get("role_id")
        if role_id is not None and session.get(Role, role_id) is None:
            raise ValidationError(f"Unknown role_id {role_id}")

        customer_id = values.get("customer_id")
        if customer_id is not None and session.get(Customer, customer_id) is None:
            raise ValidationError(f"Unknown customer_id {customer_id}")

    def _ensure_username_free(
        self,
        session: Session,
        username: str,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        existing = self.find_by_username(session, username)
        if existing is not None and existing.id != exclude_id:
            raise DuplicateUsernameError()

    @staticmethod
    def _commit(session: Session) -> None:
        """
        Commit the pending unit of work.

        The unique index on users.username is the final arbiter when two
        requests race past the pre-check; the loser is rolled back.
        """
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if "username" in str(e.orig).lower():
                raise DuplicateUsernameError() from e
            raise ValidationError("Constraint violation") from e

    # ----- Queries -----

    def count(self, session: Session, where: dict[str, Any] | None = None) -> int:
        stmt = select(func.count()).select_from(User).where(*self._conditions(where))
        value = session.exec(stmt).one()
        return int(value or 0)

    def find(
        self,
        session: Session,
        where: dict[str, Any] | None = None,
        include: list[str] | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[User]:
        """
        List users matching `where`, ordered by username.

        Args:
            include: relation names to eager-load ("role", "customer")
            skip: offset rows (for paging)
            limit: max number of rows returned, None for all
        """
        stmt = (
            select(User)
            .where(*self._conditions(where))
            .options(*self._load_options(include))
            .order_by(User.username)
            .offset(skip)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.exec(stmt).all())

    def find_by_id(
        self,
        session: Session,
        user_id: uuid.UUID,
        include: list[str] | None = None,
    ) -> User:
        """
        Return a User by primary key.

        Raises:
            NotFoundError: if no such user.
        """
        user = session.get(User, user_id, options=self._load_options(include))
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def find_by_username(self, session: Session, username: str) -> User | None:
        """Return a User by unique username, or None if not found."""
        stmt = select(User).where(User.username == username)
        return session.exec(stmt).first()

    # ----- Writes -----

    def create(self, session: Session, user: User) -> User:
        """
        Insert a new User and return the persisted row.

        Raises:
            DuplicateUsernameError: username already taken.
            ValidationError: role/customer reference does not exist.
        """
        self._ensure_username_free(session, user.username)
        self._check_references(
            session, {"role_id": user.role_id, "customer_id": user.customer_id}
        )
        user.updated_at = utc_now()
        session.add(user)
        self._commit(session)
        session.refresh(user)
        return user

    def update_all(
        self,
        session: Session,
        patch: dict[str, Any],
        where: dict[str, Any] | None = None,
    ) -> int:
        """
        Apply `patch` to every user matching `where`.

        Returns:
            Number of users updated.
        """
        self._check_references(session, patch)
        users = session.exec(select(User).where(*self._conditions(where))).all()
        if "username" in patch:
            if len(users) > 1:
                raise DuplicateUsernameError()
            for user in users:
                self._ensure_username_free(session, patch["username"], exclude_id=user.id)

        now = utc_now()
        for user in users:
            for column, value in patch.items():
                setattr(user, column, value)
            user.updated_at = now
            session.add(user)
        self._commit(session)
        return len(users)

    def update_by_id(
        self,
        session: Session,
        user_id: uuid.UUID,
        patch: dict[str, Any],
    ) -> User:
        """
        Apply only the given fields to one user and bump updated_at.

        Raises:
            NotFoundError: if no such user.
            DuplicateUsernameError: new username already taken.
        """
        user = self.find_by_id(session, user_id)
        if "username" in patch:
            self._ensure_username_free(session, patch["username"], exclude_id=user_id)
        self._check_references(session, patch)

        for column, value in patch.items():
            setattr(user, column, value)
        user.updated_at = utc_now()
        session.add(user)
        self._commit(session)
        session.refresh(user)
        return user

    def replace_by_id(
        self,
        session: Session,
        user_id: uuid.UUID,
        data: dict[str, Any],
    ) -> User:
        """
        Overwrite every replaceable field of one user.

        Fields missing from `data` are reset to None.
        """
        user = self.find_by_id(session, user_id)
        self._ensure_username_free(session, data["username"], exclude_id=user_id)
        self._check_references(session, data)

        for column in REPLACEABLE_FIELDS:
            setattr(user, column, data.get(column))
        user.updated_at = utc_now()
        session.add(user)
        self._commit(session)
        session.refresh(user)
        return user

    def delete_by_id(self, session: Session, user_id: uuid.UUID) -> None:
        """
        Delete a User.

        Raises:
            NotFoundError: if no such user.
        """
        user = self.find_by_id(session, user_id)
        session.delete(user)
        session.commit()
