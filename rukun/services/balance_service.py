"""Community balance computed live from the ledgers.

    balance = initial_balance
              + sum of paid, non-imported iuran
              + sum of donations of completed events
              - sum of pengeluaran totals

Nothing is cached: every call aggregates the current rows. The sufficiency
check is read-then-act without locking, so two concurrent expenses can both
pass it.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rukun.models.event import Event, EventStatus
from rukun.models.iuran import Iuran, IuranStatus
from rukun.models.pengeluaran import Pengeluaran
from rukun.services.errors import InsufficientBalanceError
from rukun.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


@dataclass
class EventTotals:
    id: int
    name: str
    slug: str
    total_donations: Decimal
    total_expenses: Decimal
    balance: Decimal


@dataclass
class BalanceReport:
    """Financial report (laporan keuangan)."""

    initial_balance: Decimal
    total_iuran_income: Decimal
    total_event_donations: Decimal
    total_expense: Decimal
    events: list[EventTotals] = field(default_factory=list)

    @property
    def total_income(self) -> Decimal:
        return self.total_iuran_income + self.total_event_donations

    @property
    def balance(self) -> Decimal:
        return self.initial_balance + self.total_income - self.total_expense

    def to_dict(self) -> dict:
        return {
            "initial_balance": self.initial_balance,
            "total_income": self.total_income,
            "total_iuran_income": self.total_iuran_income,
            "total_event_donations": self.total_event_donations,
            "total_expense": self.total_expense,
            "balance": self.balance,
            "events": [e.__dict__ for e in self.events],
        }


class BalanceService:
    """Aggregates iuran income, event donations and expenses."""

    def __init__(self, db: Session):
        self.db = db

    def total_iuran_income(self) -> Decimal:
        """Paid iuran excluding records back-filled by spreadsheet import."""
        total = self.db.execute(
            select(func.coalesce(func.sum(Iuran.amount), 0)).where(
                Iuran.status == IuranStatus.PAID,
                Iuran.is_imported.is_(False),
            )
        ).scalar_one()
        return Decimal(str(total))

    def total_event_donations(self) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(Event.total_donations), 0)).where(
                Event.status == EventStatus.COMPLETED
            )
        ).scalar_one()
        return Decimal(str(total))

    def total_expense(self) -> Decimal:
        total = self.db.execute(select(func.coalesce(func.sum(Pengeluaran.total), 0))).scalar_one()
        return Decimal(str(total))

    def initial_balance(self) -> Decimal:
        return SettingsService(self.db).get_initial_balance()

    def current_balance(self) -> Decimal:
        balance = (
            self.initial_balance()
            + self.total_iuran_income()
            + self.total_event_donations()
            - self.total_expense()
        )
        logger.debug("Current balance: %s", balance)
        return balance

    def completed_events(self) -> list[EventTotals]:
        events = self.db.execute(
            select(Event)
            .where(Event.status == EventStatus.COMPLETED)
            .order_by(Event.completed_at.desc(), Event.id.desc())
        ).scalars()
        return [
            EventTotals(
                id=ev.id,
                name=ev.name,
                slug=ev.slug,
                total_donations=ev.total_donations,
                total_expenses=ev.total_expenses,
                balance=ev.balance,
            )
            for ev in events
        ]

    def report(self) -> BalanceReport:
        return BalanceReport(
            initial_balance=self.initial_balance(),
            total_iuran_income=self.total_iuran_income(),
            total_event_donations=self.total_event_donations(),
            total_expense=self.total_expense(),
            events=self.completed_events(),
        )

    def ensure_sufficient(self, amount: Decimal) -> Decimal:
        """Check that an expense of `amount` fits in the current balance.

        Returns:
            The current balance

        Raises:
            InsufficientBalanceError: If amount exceeds the current balance
        """
        balance = self.current_balance()
        if amount > balance:
            logger.warning("Insufficient balance: requested %s, available %s", amount, balance)
            raise InsufficientBalanceError(balance, amount)
        return balance


__all__ = ["BalanceService", "BalanceReport", "EventTotals"]
