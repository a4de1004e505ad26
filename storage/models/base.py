"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the signal engine.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: Common timestamp columns
- PRICE / PERCENT: Numeric column types

============================================================
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


PRICE = Numeric(30, 12)
"""Prices and volumes."""

PERCENT = Numeric(18, 4)
"""Percentages, ratios and hour counts, stored at 4 decimal places."""


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    Datetimes are timezone-aware; un-annotated Decimal columns
    default to price precision.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        Decimal: PRICE,
    }


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )
