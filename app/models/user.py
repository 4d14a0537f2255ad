# app/models/user.py
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field, Relationship

from app.models.customer import Customer
from app.models.role import Role


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """
    Persistent user account.

    Identity:
      - id: generated on insert, never changed afterwards.
      - username: unique login name (DB unique index).

    Credentials:
      - password always holds a bcrypt hash. Hashing happens in the
        service layer before any write reaches this table, and the
        field is never part of a response schema.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    username: str = Field(
        unique=True,
        index=True,
        max_length=100,
        description="Unique login name",
    )

    password: str = Field(
        description="bcrypt hash of the user's password",
    )

    first_name: str | None = Field(
        default=None,
        max_length=100,
    )

    role_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="roles.id",
        index=True,
    )

    customer_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="customers.id",
        index=True,
    )

    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last write timestamp (UTC)",
    )

    role: Optional[Role] = Relationship()
    customer: Optional[Customer] = Relationship()
