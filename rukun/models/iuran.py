"""Iuran (dues record) ORM model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rukun.models import Base, BaseModel


class IuranStatus(str, Enum):
    """Payment status of a dues record."""

    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"


class IuranType(str, Enum):
    """Regular monthly dues or a one-off custom levy."""

    REGULAR = "regular"
    CUSTOM = "custom"


class Iuran(Base, BaseModel):
    """Dues owed by one resident for one period.

    Several records may exist for the same (user, period) when their types
    differ. Whether two regular records may coexist is decided by the
    DUES_UNIQUE_REGULAR_PERIOD setting, so the index below is not unique.
    """

    __tablename__ = "iurans"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period: Mapped[str] = mapped_column(
        String(7), nullable=False, index=True, comment="Period key YYYY-MM"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[IuranStatus] = mapped_column(
        SQLEnum(IuranStatus), nullable=False, default=IuranStatus.UNPAID, index=True
    )
    type: Mapped[IuranType] = mapped_column(
        SQLEnum(IuranType), nullable=False, default=IuranType.REGULAR
    )
    description: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Purpose of a custom levy"
    )

    # Proof-of-payment workflow
    proof_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    note: Mapped[str | None] = mapped_column(Text(), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Officer-recorded payments
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    recorded_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    is_imported: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Back-filled from spreadsheet import; excluded from balance income",
    )

    __table_args__ = (Index("idx_iuran_user_period", "user_id", "period"),)

    user: Mapped["User"] = relationship(  # noqa: F821
        "User", back_populates="iurans", foreign_keys=[user_id]
    )
    confirmed_by: Mapped["User | None"] = relationship(  # noqa: F821
        "User", foreign_keys=[confirmed_by_id]
    )
    recorded_by: Mapped["User | None"] = relationship(  # noqa: F821
        "User", foreign_keys=[recorded_by_id]
    )

    def __repr__(self) -> str:
        return (
            f"<Iuran(id={self.id}, user_id={self.user_id}, period={self.period}, "
            f"type={self.type}, status={self.status}, amount={self.amount})>"
        )


__all__ = ["Iuran", "IuranStatus", "IuranType"]
