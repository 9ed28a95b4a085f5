"""Pengeluaran (expense) bookkeeping guarded by the community balance."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from rukun.models.pengeluaran import Pengeluaran, PengeluaranItem
from rukun.services.balance_service import BalanceService
from rukun.services.errors import InsufficientBalanceError, NotFoundError, ValidationError
from rukun.services.slug import unique_slug
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass
class ItemInput:
    """Line item as submitted by an officer."""

    name: str
    price: Decimal | str | int
    image_url: Optional[str] = None


def _parse_money(value, field_name: str, allow_zero: bool = False) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field_name} must be greater than 0")
    return amount


def _build_items(items: Sequence[ItemInput]) -> list[PengeluaranItem]:
    if not items:
        raise ValidationError("at least one item is required")
    built = []
    for index, item in enumerate(items):
        name = (item.name or "").strip()
        if not name:
            raise ValidationError(f"Item {index} must have name and price")
        built.append(
            PengeluaranItem(
                name=name,
                price=_parse_money(item.price, f"Item {index} price", allow_zero=True),
                image_url=item.image_url or None,
            )
        )
    return built


class ExpenseService:
    """CRUD over pengeluaran with an insufficient-balance guard."""

    def __init__(self, db: Session, storage: Optional[FileStorage] = None):
        self.db = db
        self.storage = storage
        self.balance = BalanceService(db)

    def create(
        self,
        title: str,
        items: Sequence[ItemInput],
        created_by: Optional[int],
        total: Decimal | str | int | None = None,
    ) -> Pengeluaran:
        """Record a new expense.

        Args:
            title: Expense title; the slug is derived from it
            items: At least one line item
            created_by: Officer recording the expense
            total: Amount deducted from the balance (default: sum of item prices)

        Raises:
            ValidationError: On missing title, no items or bad amounts
            InsufficientBalanceError: If total exceeds the current balance
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required")
        built_items = _build_items(items)
        if total is None:
            amount = sum((i.price for i in built_items), Decimal("0"))
            if amount <= 0:
                raise ValidationError("total must be greater than 0")
        else:
            amount = _parse_money(total, "total")

        self.balance.ensure_sufficient(amount)

        expense = Pengeluaran(
            title=title,
            slug=unique_slug(self.db, Pengeluaran, title),
            total=amount,
            created_by_id=created_by,
            items=built_items,
        )
        self.db.add(expense)
        self.db.commit()
        self.db.refresh(expense)
        logger.info("Created pengeluaran %s '%s' total=%s", expense.id, expense.title, amount)
        return expense

    def get(self, expense_id: int) -> Pengeluaran:
        expense = self.db.get(Pengeluaran, expense_id)
        if expense is None:
            raise NotFoundError("pengeluaran not found")
        return expense

    def get_by_slug(self, slug: str) -> Pengeluaran:
        expense = self.db.execute(
            select(Pengeluaran).where(Pengeluaran.slug == slug)
        ).scalar_one_or_none()
        if expense is None:
            raise NotFoundError("pengeluaran not found")
        return expense

    def list_expenses(
        self, search: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> tuple[list[Pengeluaran], int]:
        """Newest-first page of expenses, optionally filtered by title."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        conditions = []
        if search:
            conditions.append(Pengeluaran.title.ilike(f"%{search.strip()}%"))
        total = self.db.execute(select(func.count(Pengeluaran.id)).where(*conditions)).scalar_one()
        items = (
            self.db.execute(
                select(Pengeluaran)
                .where(*conditions)
                .options(selectinload(Pengeluaran.items), selectinload(Pengeluaran.created_by))
                .order_by(Pengeluaran.created_at.desc(), Pengeluaran.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(items), total

    def update(
        self,
        expense_id: int,
        title: Optional[str] = None,
        items: Optional[Sequence[ItemInput]] = None,
        total: Decimal | str | int | None = None,
    ) -> Pengeluaran:
        """Update an expense.

        Only an increase of the total is checked against the balance.

        Raises:
            NotFoundError: If the expense does not exist
            ValidationError: On empty items or bad amounts
            InsufficientBalanceError: If the increase exceeds the current balance
        """
        expense = self.get(expense_id)

        new_items = _build_items(items) if items is not None else None
        if total is not None:
            new_total = _parse_money(total, "total")
        elif new_items is not None:
            new_total = sum((i.price for i in new_items), Decimal("0"))
        else:
            new_total = expense.total

        difference = new_total - expense.total
        if difference > 0:
            current = self.balance.current_balance()
            if difference > current:
                raise InsufficientBalanceError(
                    current, difference, "Updated expense amount exceeds current balance"
                )

        if title is not None:
            title = title.strip()
            if not title:
                raise ValidationError("title must not be empty")
            if title != expense.title:
                expense.title = title
                expense.slug = unique_slug(self.db, Pengeluaran, title, exclude_id=expense.id)

        dropped_images: list[str] = []
        if new_items is not None:
            kept = {i.image_url for i in new_items if i.image_url}
            dropped_images = [
                i.image_url for i in expense.items if i.image_url and i.image_url not in kept
            ]
            expense.items = new_items
        expense.total = new_total

        self.db.commit()
        self.db.refresh(expense)
        logger.info("Updated pengeluaran %s total=%s", expense.id, expense.total)

        self._delete_images(dropped_images)
        return expense

    def delete(self, expense_id: int) -> Pengeluaran:
        """Delete an expense and, best-effort, its item images.

        Images of expenses forked from an event belong to the event ledger
        and are kept.
        """
        expense = self.get(expense_id)
        images = [] if expense.event_id else [i.image_url for i in expense.items if i.image_url]
        self.db.delete(expense)
        self.db.commit()
        logger.info("Deleted pengeluaran %s '%s'", expense_id, expense.title)
        self._delete_images(images)
        return expense

    def _delete_images(self, urls: Sequence[str]) -> None:
        if self.storage is None:
            return
        for url in urls:
            self.storage.delete(url)


__all__ = ["ExpenseService", "ItemInput"]
