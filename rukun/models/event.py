"""Community event ORM models with donation and expense sub-ledgers."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Numeric, String, Text, event
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from rukun.models import Base, BaseModel


class EventStatus(str, Enum):
    """Lifecycle status of an event."""

    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


class ExpenseCategory(str, Enum):
    """Expense categories used by the event report."""

    HIBURAN = "HIBURAN"
    LOMBA = "LOMBA"
    KONSUMSI = "KONSUMSI"
    LAINNYA = "LAINNYA"


class Event(Base, BaseModel):
    """A community event (e.g. Independence Day) with its own ledger.

    total_donations, total_expenses and balance are derived from the child
    rows and recomputed before every flush touching the event.
    """

    __tablename__ = "events"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    event_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    total_donations: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_expenses: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Positive = surplus, negative = deficit",
    )

    status: Mapped[EventStatus] = mapped_column(
        SQLEnum(EventStatus), nullable=False, default=EventStatus.PLANNING, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    donations: Mapped[list["EventDonation"]] = relationship(
        "EventDonation",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventDonation.id",
    )
    expenses: Mapped[list["EventExpense"]] = relationship(
        "EventExpense",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventExpense.id",
    )
    created_by: Mapped["User | None"] = relationship("User")  # noqa: F821

    def recalculate_totals(self) -> None:
        total_donations = sum((d.amount for d in self.donations), Decimal("0"))
        total_expenses = sum((e.amount for e in self.expenses), Decimal("0"))
        self.total_donations = total_donations
        self.total_expenses = total_expenses
        self.balance = total_donations - total_expenses

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, status={self.status})>"


class EventDonation(Base, BaseModel):
    """A donation received for an event."""

    __tablename__ = "event_donations"

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    donor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    event: Mapped[Event] = relationship("Event", back_populates="donations")


class EventExpense(Base, BaseModel):
    """An expense paid out of an event's funds."""

    __tablename__ = "event_expenses"

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(
        SQLEnum(ExpenseCategory), nullable=False, default=ExpenseCategory.LAINNYA
    )
    proof_image_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    event: Mapped[Event] = relationship("Event", back_populates="expenses")


@event.listens_for(Session, "before_flush")
def _recalculate_event_totals(session: Session, flush_context, instances) -> None:
    """Keep event totals consistent with their ledgers on every flush."""
    touched: set[Event] = set()
    for obj in (*session.new, *session.dirty, *session.deleted):
        if isinstance(obj, Event):
            touched.add(obj)
        elif isinstance(obj, (EventDonation, EventExpense)) and obj.event is not None:
            touched.add(obj.event)

    for ev in touched:
        if ev in session.deleted:
            continue
        ev.recalculate_totals()


__all__ = ["Event", "EventDonation", "EventExpense", "EventStatus", "ExpenseCategory"]
