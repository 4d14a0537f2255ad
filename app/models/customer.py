# app/models/customer.py
import uuid

from sqlmodel import SQLModel, Field


class Customer(SQLModel, table=True):
    """Customer account a user login belongs to."""

    __tablename__ = "customers"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(max_length=200)

    email: str | None = Field(
        default=None,
        max_length=255,
    )
