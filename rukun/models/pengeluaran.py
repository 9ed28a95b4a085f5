"""Pengeluaran (expense) ORM models."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rukun.models import Base, BaseModel


class Pengeluaran(Base, BaseModel):
    """Community expense with one or more line items.

    Attributes:
        title: Human-readable title
        slug: Unique URL identifier derived from the title
        total: Amount deducted from the community balance
        created_by_id: Officer who recorded the expense
        event_id: Originating event when forked from event completion
        event_expense_id: Event expense this record was forked from
    """

    __tablename__ = "pengeluaran"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    event_id: Mapped[int | None] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL"), nullable=True, index=True
    )
    event_expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("event_expenses.id", ondelete="SET NULL"), nullable=True, index=True
    )

    items: Mapped[list["PengeluaranItem"]] = relationship(
        "PengeluaranItem",
        back_populates="pengeluaran",
        cascade="all, delete-orphan",
        order_by="PengeluaranItem.id",
    )
    created_by: Mapped["User | None"] = relationship("User")  # noqa: F821
    event: Mapped["Event | None"] = relationship("Event")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Pengeluaran(id={self.id}, title={self.title}, total={self.total})>"


class PengeluaranItem(Base, BaseModel):
    """Line item of an expense."""

    __tablename__ = "pengeluaran_items"

    pengeluaran_id: Mapped[int] = mapped_column(
        ForeignKey("pengeluaran.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    pengeluaran: Mapped[Pengeluaran] = relationship("Pengeluaran", back_populates="items")


__all__ = ["Pengeluaran", "PengeluaranItem"]
