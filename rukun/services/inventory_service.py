"""Inventory of community-owned goods."""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rukun.models.inventory import InventoryItem
from rukun.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _validate_quantity(quantity) -> int:
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer") from None
    if value < 0:
        raise ValidationError("quantity must not be negative")
    return value


class InventoryService:
    def __init__(self, db: Session):
        self.db = db

    def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(InventoryItem.id).where(InventoryItem.name == name)
        if exclude_id is not None:
            stmt = stmt.where(InventoryItem.id != exclude_id)
        if self.db.execute(stmt).first():
            raise ConflictError("name is already taken")

    def create(self, name: str, quantity: int, created_by: Optional[int] = None) -> InventoryItem:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        quantity = _validate_quantity(quantity)
        self._ensure_name_free(name)

        item = InventoryItem(name=name, quantity=quantity, created_by_id=created_by)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info("Added inventory %s '%s' x%d", item.id, item.name, item.quantity)
        return item

    def get(self, item_id: int) -> InventoryItem:
        item = self.db.get(InventoryItem, item_id)
        if item is None:
            raise NotFoundError("inventory not found")
        return item

    def list_items(
        self, search: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> tuple[list[InventoryItem], int]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        conditions = []
        if search:
            conditions.append(InventoryItem.name.ilike(f"%{search.strip()}%"))
        total = self.db.execute(
            select(func.count(InventoryItem.id)).where(*conditions)
        ).scalar_one()
        items = (
            self.db.execute(
                select(InventoryItem)
                .where(*conditions)
                .order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(items), total

    def update(
        self, item_id: int, name: Optional[str] = None, quantity: Optional[int] = None
    ) -> InventoryItem:
        """Update name and/or quantity.

        Raises:
            ValidationError: If neither field is given or a value is invalid
            NotFoundError: If the item does not exist
            ConflictError: If the new name is taken
        """
        if name is None and quantity is None:
            raise ValidationError("at least one field is required")
        item = self.get(item_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("name must not be empty")
            self._ensure_name_free(name, exclude_id=item.id)
            item.name = name
        if quantity is not None:
            item.quantity = _validate_quantity(quantity)
        self.db.commit()
        self.db.refresh(item)
        logger.info("Updated inventory %s", item.id)
        return item

    def delete(self, item_id: int) -> InventoryItem:
        item = self.get(item_id)
        self.db.delete(item)
        self.db.commit()
        logger.info("Deleted inventory %s '%s'", item_id, item.name)
        return item


__all__ = ["InventoryService"]
