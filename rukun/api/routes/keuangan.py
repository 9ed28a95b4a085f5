"""Finance routes: balance report (laporan) and expense (pengeluaran) ledger."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from rukun.api.deps import get_current_user, get_db, get_storage, require_treasurer
from rukun.api.schemas import (
    BalanceReportResponse,
    MessageResponse,
    Page,
    Pagination,
    PengeluaranCreateRequest,
    PengeluaranItemRequest,
    PengeluaranResponse,
    PengeluaranUpdateRequest,
)
from rukun.models.user import User
from rukun.services.balance_service import BalanceService
from rukun.services.expense_service import ExpenseService, ItemInput
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/keuangan", tags=["keuangan"])


def _items(items: Optional[list[PengeluaranItemRequest]]) -> Optional[list[ItemInput]]:
    if items is None:
        return None
    return [ItemInput(name=i.name, price=i.price, image_url=i.image_url) for i in items]


@router.get("/laporan", response_model=BalanceReportResponse)
def balance_report(
    _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> BalanceReportResponse:
    """
    Financial report.

    balance = initial_balance + paid non-imported iuran + donations of
    completed events - all pengeluaran.
    """
    return BalanceReportResponse(**BalanceService(db).report().to_dict())


@router.get("/pengeluaran", response_model=Page[PengeluaranResponse])
def list_pengeluaran(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Page[PengeluaranResponse]:
    items, total = ExpenseService(db).list_expenses(search=search, page=page, limit=limit)
    return Page[PengeluaranResponse](
        data=[PengeluaranResponse.model_validate(e) for e in items],
        pagination=Pagination.build(total, page, limit),
    )


@router.get("/pengeluaran/slug/{slug}", response_model=PengeluaranResponse)
def get_pengeluaran_by_slug(
    slug: str, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> PengeluaranResponse:
    return PengeluaranResponse.model_validate(ExpenseService(db).get_by_slug(slug))


@router.get("/pengeluaran/{expense_id}", response_model=PengeluaranResponse)
def get_pengeluaran(
    expense_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> PengeluaranResponse:
    return PengeluaranResponse.model_validate(ExpenseService(db).get(expense_id))


@router.post(
    "/pengeluaran", response_model=PengeluaranResponse, status_code=status.HTTP_201_CREATED
)
def create_pengeluaran(
    payload: PengeluaranCreateRequest,
    officer: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
) -> PengeluaranResponse:
    """
    Record an expense.

    Returns:
        201: Created expense
        400: insufficient_balance when the total exceeds the current balance
    """
    expense = ExpenseService(db).create(
        payload.title, _items(payload.items), created_by=officer.id, total=payload.total
    )
    return PengeluaranResponse.model_validate(expense)


@router.put("/pengeluaran/{expense_id}", response_model=PengeluaranResponse)
def update_pengeluaran(
    expense_id: int,
    payload: PengeluaranUpdateRequest,
    _: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> PengeluaranResponse:
    expense = ExpenseService(db, storage=storage).update(
        expense_id, title=payload.title, items=_items(payload.items), total=payload.total
    )
    return PengeluaranResponse.model_validate(expense)


@router.delete("/pengeluaran/{expense_id}", response_model=MessageResponse)
def delete_pengeluaran(
    expense_id: int,
    _: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    ExpenseService(db, storage=storage).delete(expense_id)
    return MessageResponse(message="Pengeluaran deleted")
