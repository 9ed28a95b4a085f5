"""Community events and their donation/expense ledgers.

Totals are maintained by the ORM flush hook in rukun.models.event; this
service only appends and removes ledger rows. Completing an event forks every
event expense into a standalone pengeluaran so that it shows in the public
expense list. Administrator corrections to a completed ledger keep those
forked records in step.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rukun.models import utcnow
from rukun.models.event import (
    Event,
    EventDonation,
    EventExpense,
    EventStatus,
    ExpenseCategory,
)
from rukun.models.pengeluaran import Pengeluaran, PengeluaranItem
from rukun.models.user import User
from rukun.services.errors import ConflictError, NotFoundError, ValidationError
from rukun.services.locale_service import format_amount
from rukun.services.slug import unique_slug
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Outcome of completing an event."""

    event: Event
    total_donations: Decimal
    total_expenses: Decimal
    balance: Decimal
    pengeluaran_created: int
    summary: str


def completion_summary(total_donations: Decimal, balance: Decimal) -> str:
    """Narrative of how donations covered the event expenses."""
    if balance < 0:
        deficit = format_amount(abs(balance))
        donations = format_amount(total_donations)
        return (
            f"Event had deficit of {deficit}. Donations ({donations}) covered {donations} "
            f"of expenses. Remaining {deficit} taken from main balance."
        )
    if balance > 0:
        return (
            f"Event had surplus of {format_amount(balance)}. "
            "This surplus will be added to main balance."
        )
    return "Event is balanced - donations exactly covered all expenses."


def _parse_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError("amount must be a number") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be greater than 0")
    return amount


def _as_datetime(value: date | datetime | None) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class EventService:
    """Event CRUD, ledger mutations and completion."""

    def __init__(self, db: Session, storage: Optional[FileStorage] = None):
        self.db = db
        self.storage = storage

    def create(
        self,
        name: str,
        description: str,
        event_date: date,
        created_by: Optional[int] = None,
    ) -> Event:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        if not (description or "").strip():
            raise ValidationError("description is required")
        if event_date is None:
            raise ValidationError("date is required")

        event = Event(
            name=name,
            slug=unique_slug(self.db, Event, name),
            description=description.strip(),
            event_date=event_date,
            status=EventStatus.PLANNING,
            created_by_id=created_by,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Created event %s '%s'", event.id, event.name)
        return event

    def get(self, event_id: int) -> Event:
        event = self.db.get(Event, event_id)
        if event is None:
            raise NotFoundError("event not found")
        return event

    def get_by_slug(self, slug: str) -> Event:
        event = self.db.execute(select(Event).where(Event.slug == slug)).scalar_one_or_none()
        if event is None:
            raise NotFoundError("event not found")
        return event

    def list_events(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Event], int]:
        """Events ordered by date, latest first."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        conditions = []
        if status:
            try:
                conditions.append(Event.status == EventStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid event status '{status}'") from None
        if search:
            conditions.append(Event.name.ilike(f"%{search.strip()}%"))

        total = self.db.execute(select(func.count(Event.id)).where(*conditions)).scalar_one()
        events = (
            self.db.execute(
                select(Event)
                .where(*conditions)
                .order_by(Event.event_date.desc(), Event.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(events), total

    def update(
        self,
        event_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        event_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> Event:
        """Update event details.

        Raises:
            NotFoundError: If the event does not exist
            ConflictError: If the event is completed
            ValidationError: On an unknown status or an attempt to complete
                through update
        """
        event = self.get(event_id)
        if event.status == EventStatus.COMPLETED:
            raise ConflictError("cannot update completed event")

        if name:
            name = name.strip()
            if name != event.name:
                event.name = name
                event.slug = unique_slug(self.db, Event, name, exclude_id=event.id)
        if description:
            event.description = description.strip()
        if event_date is not None:
            event.event_date = event_date
        if status:
            try:
                new_status = EventStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid event status '{status}'") from None
            if new_status == EventStatus.COMPLETED:
                raise ValidationError("use the complete action to complete an event")
            event.status = new_status

        self.db.commit()
        self.db.refresh(event)
        logger.info("Updated event %s", event.id)
        return event

    def delete(self, event_id: int) -> None:
        event = self.get(event_id)
        if event.status == EventStatus.COMPLETED:
            raise ConflictError("cannot delete completed event")
        images = [url for e in event.expenses for url in (e.proof_image_urls or [])]
        self.db.delete(event)
        self.db.commit()
        logger.info("Deleted event %s '%s'", event_id, event.name)
        self._delete_images(images)

    def _ensure_ledger_open(self, event: Event, actor: Optional[User], action: str) -> None:
        """Completed ledgers only accept administrator corrections."""
        if event.status != EventStatus.COMPLETED:
            return
        if actor is not None and actor.is_admin:
            logger.warning("Admin %s corrects completed event %s: %s", actor.id, event.id, action)
            return
        raise ConflictError(f"cannot {action} completed event")

    @staticmethod
    def _activate(event: Event) -> None:
        if event.status == EventStatus.PLANNING:
            event.status = EventStatus.ACTIVE

    def add_donation(
        self,
        event_id: int,
        donor_name: str,
        amount: Decimal | str | int,
        donation_date: date | datetime | None = None,
        actor: Optional[User] = None,
    ) -> Event:
        """Append a donation; a planning event becomes active."""
        donor_name = (donor_name or "").strip()
        if not donor_name:
            raise ValidationError("donor_name and amount are required")
        amount = _parse_amount(amount)

        event = self.get(event_id)
        self._ensure_ledger_open(event, actor, "add donation to")

        event.donations.append(
            EventDonation(donor_name=donor_name, amount=amount, date=_as_datetime(donation_date))
        )
        self._activate(event)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Event %s: donation %s from %s", event.id, amount, donor_name)
        return event

    def add_expense(
        self,
        event_id: int,
        description: str,
        amount: Decimal | str | int,
        expense_date: date | datetime | None = None,
        category: ExpenseCategory | str | None = None,
        proof_image_urls: Optional[Iterable[str]] = None,
        actor: Optional[User] = None,
    ) -> Event:
        """Append an expense; a planning event becomes active.

        On a completed event the expense is forked into a pengeluaran right
        away, as complete_event would have done.
        """
        description = (description or "").strip()
        if not description:
            raise ValidationError("description and amount are required")
        amount = _parse_amount(amount)
        try:
            category = ExpenseCategory(category) if category else ExpenseCategory.LAINNYA
        except ValueError:
            raise ValidationError(
                f"category must be one of: {', '.join(c.value for c in ExpenseCategory)}"
            ) from None

        event = self.get(event_id)
        self._ensure_ledger_open(event, actor, "add expense to")

        expense = EventExpense(
            description=description,
            amount=amount,
            date=_as_datetime(expense_date),
            category=category,
            proof_image_urls=list(proof_image_urls or []),
        )
        event.expenses.append(expense)
        self._activate(event)
        if event.status == EventStatus.COMPLETED:
            # Completed events already forked their expenses
            self.db.flush()
            self._fork_expense(event, expense, actor.id if actor else None)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Event %s: expense %s for %s", event.id, amount, description)
        return event

    def remove_donation(
        self, event_id: int, donation_id: int, actor: Optional[User] = None
    ) -> Event:
        event = self.get(event_id)
        self._ensure_ledger_open(event, actor, "remove donation from")
        donation = next((d for d in event.donations if d.id == donation_id), None)
        if donation is None:
            raise NotFoundError("donation not found")
        event.donations.remove(donation)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Event %s: removed donation %s", event.id, donation_id)
        return event

    def remove_expense(self, event_id: int, expense_id: int, actor: Optional[User] = None) -> Event:
        event = self.get(event_id)
        self._ensure_ledger_open(event, actor, "remove expense from")
        expense = next((e for e in event.expenses if e.id == expense_id), None)
        if expense is None:
            raise NotFoundError("expense not found")
        images = list(expense.proof_image_urls or [])
        forked = self.db.execute(
            select(Pengeluaran).where(Pengeluaran.event_expense_id == expense.id)
        ).scalars().all()
        for pengeluaran in forked:
            logger.info("Event %s: dropping forked pengeluaran %s", event.id, pengeluaran.id)
            self.db.delete(pengeluaran)
        self.db.flush()
        event.expenses.remove(expense)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Event %s: removed expense %s", event.id, expense_id)
        self._delete_images(images)
        return event

    def complete_event(self, event_id: int, completed_by: Optional[int] = None) -> CompletionResult:
        """Close the event and fork its expenses into pengeluaran.

        Each event expense becomes one pengeluaran titled
        "{event name} - {expense description}" with a single item.

        Raises:
            NotFoundError: If the event does not exist
            ConflictError: If the event is already completed
        """
        event = self.get(event_id)
        if event.status == EventStatus.COMPLETED:
            raise ConflictError("event already completed")

        created = 0
        for expense in event.expenses:
            self._fork_expense(event, expense, completed_by)
            created += 1

        event.recalculate_totals()
        event.status = EventStatus.COMPLETED
        event.completed_at = utcnow()
        self.db.commit()
        self.db.refresh(event)

        logger.info(
            "Completed event %s: donations=%s expenses=%s pengeluaran_created=%d",
            event.id,
            event.total_donations,
            event.total_expenses,
            created,
        )
        return CompletionResult(
            event=event,
            total_donations=event.total_donations,
            total_expenses=event.total_expenses,
            balance=event.balance,
            pengeluaran_created=created,
            summary=completion_summary(event.total_donations, event.balance),
        )

    def _fork_expense(
        self, event: Event, expense: EventExpense, created_by: Optional[int]
    ) -> Pengeluaran:
        title = f"{event.name} - {expense.description}"
        images = expense.proof_image_urls or []
        pengeluaran = Pengeluaran(
            title=title,
            slug=unique_slug(self.db, Pengeluaran, title),
            total=expense.amount,
            created_by_id=created_by,
            event_id=event.id,
            event_expense_id=expense.id,
            items=[
                PengeluaranItem(
                    name=expense.description,
                    price=expense.amount,
                    image_url=images[0] if images else None,
                )
            ],
        )
        self.db.add(pengeluaran)
        # Flush so the next unique_slug sees this slug
        self.db.flush()
        return pengeluaran

    def _delete_images(self, urls: Iterable[str]) -> None:
        if self.storage is None:
            return
        for url in urls:
            self.storage.delete(url)


__all__ = ["EventService", "CompletionResult", "completion_summary"]
