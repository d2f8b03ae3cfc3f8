# sellit/models/base.py
"""
Base model with common fields and functionality (SQLAlchemy 2.x, DeclarativeBase).

- Единые naming conventions (alembic-friendly имена ограничений/индексов).
- BaseModel: id/created_at/updated_at + touch().
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# --------------------------------------------------------------------------------------
# SQLAlchemy naming conventions
# --------------------------------------------------------------------------------------
NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix__%(table_name)s__%(column_0_N_name)s",
    "uq": "uq__%(table_name)s__%(column_0_N_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_N_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}


def utc_now() -> datetime:
    """naive UTC "сейчас" (колонки без timezone=True)."""
    return datetime.utcnow()


class Base(DeclarativeBase):
    """Root declarative base (SQLAlchemy 2.x) с naming conventions."""

    metadata = MetaData(naming_convention=NAMING_CONVENTIONS)


# --------------------------------------------------------------------------------------
# BaseModel (общие поля/поведение)
# --------------------------------------------------------------------------------------
class BaseModel(Base):
    """Общий базовый класс для всех моделей проекта."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    def touch(self) -> None:
        """Обновить updated_at (форсирует UPDATE строки и проверку версии)."""
        self.updated_at = utc_now()

    def __repr__(self) -> str:  # pragma: no cover
        return f"<{self.__class__.__name__}(id={getattr(self, 'id', None)})>"


__all__ = ["NAMING_CONVENTIONS", "Base", "BaseModel", "utc_now"]
