"""Inventory ORM model for community-owned goods."""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rukun.models import Base, BaseModel


class InventoryItem(Base, BaseModel):
    """A named stock of community goods (chairs, tents, sound system...)."""

    __tablename__ = "inventory"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_by: Mapped["User | None"] = relationship("User")  # noqa: F821

    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_inventory_quantity"),)

    def __repr__(self) -> str:
        return f"<InventoryItem(id={self.id}, name={self.name}, quantity={self.quantity})>"


__all__ = ["InventoryItem"]
