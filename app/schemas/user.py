# app/schemas/user.py
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from app.core.security import MAX_PASSWORD_BYTES

# Fields a client may select with filter.fields. "password" is never one.
UserField = Literal[
    "id", "username", "first_name", "role_id", "customer_id", "updated_at"
]
# Relations a client may ask to embed with filter.include.
UserRelation = Literal["role", "customer"]


def _normalize_username(v: str | None) -> str:
    if v is None:
        raise ValueError("username cannot be null")
    v = v.strip()
    if not v:
        raise ValueError("username cannot be empty")
    return v


def _check_password(v: str | None) -> str:
    if v is None:
        raise ValueError("password cannot be null")
    if not v:
        raise ValueError("password cannot be empty")
    if len(v.encode()) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


# -------- Requests --------


class Credentials(SQLModel):
    """Login payload for the local (username/password) strategy."""

    model_config = ConfigDict(extra="forbid")

    username: str
    password: str

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str | None) -> str:
        return _normalize_username(v)


class UserCreate(SQLModel):
    """
    Registration payload.

    `id` and `updated_at` are system-managed and rejected here
    (extra="forbid").
    """

    model_config = ConfigDict(extra="forbid")

    username: str = Field(max_length=100)
    password: str
    first_name: str | None = Field(default=None, max_length=100)
    role_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str | None) -> str:
        return _normalize_username(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str | None) -> str:
        return _check_password(v)


class UserReplace(UserCreate):
    """
    Full replacement payload for PUT /users/{id}.

    Optional fields left out are reset to null.
    """


class UserUpdate(SQLModel):
    """
    Partial update payload (PATCH).

    Only fields present in the request body are applied; see
    `model_dump(exclude_unset=True)` in the service.
    """

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, max_length=100)
    password: str | None = None
    first_name: str | None = Field(default=None, max_length=100)
    role_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str | None) -> str:
        return _normalize_username(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str | None) -> str:
        return _check_password(v)


# -------- Filters --------


class UserWhere(SQLModel):
    """
    Equality filter. Every field present must match exactly.

    Example: {"username": "alice"} or {"role_id": null}.
    """

    model_config = ConfigDict(extra="forbid")

    id: uuid.UUID | None = None
    username: str | None = None
    first_name: str | None = None
    role_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None


class UserFieldsFilter(SQLModel):
    """Projection + relation inclusion, as accepted by GET /users/{id}."""

    model_config = ConfigDict(extra="forbid")

    fields: list[UserField] | None = None
    include: list[UserRelation] | None = None


class UserFilter(UserFieldsFilter):
    """Full filter accepted by GET /users."""

    where: UserWhere | None = None
    skip: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, ge=1, le=1000)


# -------- Responses --------


class RoleRead(SQLModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class CustomerRead(SQLModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str | None = None


class UserRead(SQLModel):
    """Response schema returned to clients. Never carries the password."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    first_name: str | None = None
    role_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None
    updated_at: datetime


class TokenResponse(SQLModel):
    token: str


class CountResponse(SQLModel):
    count: int


_RELATION_SCHEMAS: dict[str, type[SQLModel]] = {
    "role": RoleRead,
    "customer": CustomerRead,
}


def present_user(
    user,
    fields: list[str] | None = None,
    include: list[str] | None = None,
) -> dict[str, Any]:
    """
    Serialize a User for a response, applying field selection and
    embedding the requested relations.

    Must be called while the user's session is still open, since
    relations may be lazy-loaded here.
    """
    data = UserRead.model_validate(user).model_dump(mode="json")
    if fields:
        data = {k: v for k, v in data.items() if k in fields}

    for relation in include or []:
        related = getattr(user, relation)
        schema = _RELATION_SCHEMAS[relation]
        data[relation] = (
            schema.model_validate(related).model_dump(mode="json")
            if related is not None
            else None
        )
    return data
