"""Declarative base and account_id mixin for PigeonPost ORM models."""

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all PigeonPost ORM models.

    Every table carries the owning account id. Single-account installs use
    'default'. Exposes metadata for Alembic.
    """

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="default",
        index=True,
        doc="Owning account identifier; single-account default is 'default'.",
    )
