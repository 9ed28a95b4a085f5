"""Inventory routes. Officers mutate; every resident can read."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from rukun.api.deps import get_current_user, get_db, require_officer
from rukun.api.schemas import (
    InventoryCreateRequest,
    InventoryResponse,
    InventoryUpdateRequest,
    MessageResponse,
    Page,
    Pagination,
)
from rukun.models.user import User
from rukun.services.inventory_service import InventoryService

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("", response_model=Page[InventoryResponse])
def list_inventory(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Page[InventoryResponse]:
    items, total = InventoryService(db).list_items(search=search, page=page, limit=limit)
    return Page[InventoryResponse](
        data=[InventoryResponse.model_validate(i) for i in items],
        pagination=Pagination.build(total, page, limit),
    )


@router.get("/{item_id}", response_model=InventoryResponse)
def get_inventory(
    item_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> InventoryResponse:
    return InventoryResponse.model_validate(InventoryService(db).get(item_id))


@router.post("", response_model=InventoryResponse, status_code=status.HTTP_201_CREATED)
def create_inventory(
    payload: InventoryCreateRequest,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> InventoryResponse:
    item = InventoryService(db).create(payload.name, payload.quantity, created_by=officer.id)
    return InventoryResponse.model_validate(item)


@router.put("/{item_id}", response_model=InventoryResponse)
def update_inventory(
    item_id: int,
    payload: InventoryUpdateRequest,
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> InventoryResponse:
    item = InventoryService(db).update(item_id, name=payload.name, quantity=payload.quantity)
    return InventoryResponse.model_validate(item)


@router.delete("/{item_id}", response_model=MessageResponse)
def delete_inventory(
    item_id: int, _: User = Depends(require_officer), db: Session = Depends(get_db)
) -> MessageResponse:
    InventoryService(db).delete(item_id)
    return MessageResponse(message="Inventory deleted")
