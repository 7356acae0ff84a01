import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Enum, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    type_annotation_map: dict[type, Any] = {}


class TimestampMixin:
    """Mixin that adds created_at timestamp to models."""

    created_at: Mapped[datetime] = mapped_column(default=func.now())


def str_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store a str enum by value as VARCHAR so SQLite and Postgres agree."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [x.value for x in e],
        name=name,
        native_enum=False,
        length=32,
    )
