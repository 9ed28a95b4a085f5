"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware current time used for all audit timestamps."""
    return datetime.now(timezone.utc)


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from rukun.models.user import Role, User, UserStatus  # noqa: E402
from rukun.models.iuran import Iuran, IuranStatus, IuranType  # noqa: E402
from rukun.models.pengeluaran import Pengeluaran, PengeluaranItem  # noqa: E402
from rukun.models.event import (  # noqa: E402
    Event,
    EventDonation,
    EventExpense,
    EventStatus,
    ExpenseCategory,
)
from rukun.models.setting import Setting  # noqa: E402
from rukun.models.inventory import InventoryItem  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "User",
    "Role",
    "UserStatus",
    "Iuran",
    "IuranStatus",
    "IuranType",
    "Pengeluaran",
    "PengeluaranItem",
    "Event",
    "EventDonation",
    "EventExpense",
    "EventStatus",
    "ExpenseCategory",
    "Setting",
    "InventoryItem",
]
