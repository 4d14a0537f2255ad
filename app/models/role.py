# app/models/role.py
import uuid

from sqlmodel import SQLModel, Field


class Role(SQLModel, table=True):
    """
    Application role a user can reference (e.g. "admin", "staff").

    Roles are seeded out of band; users only point at them.
    """

    __tablename__ = "roles"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        unique=True,
        index=True,
        max_length=50,
    )
