"""Key/value settings ORM model."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from rukun.models import Base, BaseModel


class Setting(Base, BaseModel):
    """Administrator-configurable value stored under a unique key."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<Setting(key={self.key}, value={self.value!r})>"


__all__ = ["Setting"]
