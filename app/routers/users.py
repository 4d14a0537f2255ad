# app/routers/users.py
import uuid
from typing import TypeVar

import pydantic
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, SQLModel

from app.core.auth import authenticate_local, require_auth
from app.core.errors import ValidationError
from app.core.security import BcryptHasher, get_password_hasher
from app.core.tokens import TokenIssuer, get_token_issuer
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import (
    CountResponse,
    TokenResponse,
    UserCreate,
    UserFieldsFilter,
    UserFilter,
    UserRead,
    UserReplace,
    UserUpdate,
    UserWhere,
    present_user,
)
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()

ModelT = TypeVar("ModelT", bound=SQLModel)


def get_user_service(
    hasher: BcryptHasher = Depends(get_password_hasher),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> UserService:
    return UserService(repo, hasher, issuer)


# -------- JSON query parameters --------


def _parse_json_param(model: type[ModelT], raw: str | None, name: str) -> ModelT | None:
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid `{name}` parameter: {e.errors()[0]['msg']}")


def where_param(
    where: str | None = Query(None, description='JSON equality filter, e.g. {"username": "alice"}'),
) -> UserWhere | None:
    return _parse_json_param(UserWhere, where, "where")


def filter_param(
    raw: str | None = Query(
        None, alias="filter", description="JSON filter: where, fields, include, skip, limit"
    ),
) -> UserFilter | None:
    return _parse_json_param(UserFilter, raw, "filter")


def fields_filter_param(
    raw: str | None = Query(None, alias="filter", description="JSON filter: fields, include"),
) -> UserFieldsFilter | None:
    return _parse_json_param(UserFieldsFilter, raw, "filter")


# -------- Public endpoints --------


@router.post("/login", response_model=TokenResponse)
def login(
    current_user: User = Depends(authenticate_local),
    service: UserService = Depends(get_user_service),
):
    """
    Exchange username + password for a JWT.

    Body: {"username": ..., "password": ...}, read by the local
    strategy dependency, which runs before this handler.
    """
    return service.login(current_user)


@router.post("", response_model=UserRead)
def create_user(
    payload: UserCreate,
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    """
    Register a user. Open to anonymous callers.

    The password is stored as a bcrypt hash and never returned.
    """
    return service.create_user(session, payload)


# -------- Bearer-protected endpoints --------


@router.get(
    "/count",
    response_model=CountResponse,
    dependencies=[Depends(require_auth)],
)
def count_users(
    where: UserWhere | None = Depends(where_param),
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    return {"count": service.count_users(session, where)}


@router.get("", dependencies=[Depends(require_auth)])
def list_users(
    user_filter: UserFilter | None = Depends(filter_param),
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    """
    List users with their role and customer embedded.

    `filter.include` overrides the embedded relations;
    `filter.fields` narrows the returned attributes.
    """
    users = service.list_users(session, user_filter)
    fields = user_filter.fields if user_filter else None
    include = service.list_include(user_filter)
    return [present_user(u, fields, include) for u in users]


@router.patch(
    "",
    response_model=CountResponse,
    dependencies=[Depends(require_auth)],
)
def patch_users(
    payload: UserUpdate,
    where: UserWhere | None = Depends(where_param),
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    """Partial update of every user matching `where` (all users if omitted)."""
    return {"count": service.patch_users(session, payload, where)}


@router.get("/{user_id}", dependencies=[Depends(require_auth)])
def get_user(
    user_id: uuid.UUID,
    user_filter: UserFieldsFilter | None = Depends(fields_filter_param),
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    user = service.get_user(session, user_id, user_filter)
    if user_filter is None:
        return present_user(user)
    return present_user(user, user_filter.fields, user_filter.include)


@router.patch(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_auth)],
)
def patch_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    """Partial update; only fields present in the body change."""
    service.patch_user(session, user_id, payload)


@router.put(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_auth)],
)
def replace_user(
    user_id: uuid.UUID,
    payload: UserReplace,
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    """Full replace; omitted optional fields are cleared."""
    service.replace_user(session, user_id, payload)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_auth)],
)
def delete_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    service: UserService = Depends(get_user_service),
):
    service.delete_user(session, user_id)
