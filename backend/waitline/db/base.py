"""SQLAlchemy declarative base and common utilities."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from waitline.core.errors import ConcurrencyConflict


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    Models using this mixin declare an integer ``version`` column and register
    it as the mapper's ``version_id_col``. SQLAlchemy then bumps it on every
    UPDATE and raises ``StaleDataError`` when the row changed underneath us.
    ``check_version()`` covers the case where a caller quotes the version it
    last saw.
    """

    def check_version(self, expected: Optional[int]) -> None:
        """Raise ConcurrencyConflict if *expected* doesn't match current version."""
        if expected is not None and expected != self.version:
            raise ConcurrencyConflict(
                f"{type(self).__name__} {getattr(self, 'id', '?')} changed: "
                f"expected version {expected}, current {self.version}",
                entity=type(self).__name__,
            )
