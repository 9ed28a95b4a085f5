"""Community event routes: CRUD, donation/expense ledgers, completion and report."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from rukun.api.deps import (
    get_current_user,
    get_db,
    get_storage,
    require_officer,
    require_treasurer,
    save_upload,
)
from rukun.api.schemas import (
    DonationCreateRequest,
    EventCompletionResponse,
    EventCreateRequest,
    EventResponse,
    EventUpdateRequest,
    MessageResponse,
    Page,
    Pagination,
)
from rukun.models.event import ExpenseCategory
from rukun.models.user import User
from rukun.services.errors import AppError
from rukun.services.event_report import build_event_report
from rukun.services.event_service import EventService
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=Page[EventResponse])
def list_events(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Page[EventResponse]:
    events, total = EventService(db).list_events(
        status=status, search=search, page=page, limit=limit
    )
    return Page[EventResponse](
        data=[EventResponse.model_validate(e) for e in events],
        pagination=Pagination.build(total, page, limit),
    )


@router.get("/slug/{slug}", response_model=EventResponse)
def get_event_by_slug(
    slug: str, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> EventResponse:
    return EventResponse.model_validate(EventService(db).get_by_slug(slug))


@router.get("/{event_id}", response_model=EventResponse)
def get_event(
    event_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> EventResponse:
    return EventResponse.model_validate(EventService(db).get(event_id))


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreateRequest,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> EventResponse:
    event = EventService(db).create(
        payload.name, payload.description, payload.event_date, created_by=officer.id
    )
    return EventResponse.model_validate(event)


@router.put("/{event_id}", response_model=EventResponse)
def update_event(
    event_id: int,
    payload: EventUpdateRequest,
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> EventResponse:
    """Update details; completed events are read-only."""
    event = EventService(db).update(
        event_id,
        name=payload.name,
        description=payload.description,
        event_date=payload.event_date,
        status=payload.status,
    )
    return EventResponse.model_validate(event)


@router.delete("/{event_id}", response_model=MessageResponse)
def delete_event(
    event_id: int,
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    EventService(db, storage=storage).delete(event_id)
    return MessageResponse(message="Event deleted")


@router.post(
    "/{event_id}/donations", response_model=EventResponse, status_code=status.HTTP_201_CREATED
)
def add_donation(
    event_id: int,
    payload: DonationCreateRequest,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> EventResponse:
    event = EventService(db).add_donation(
        event_id, payload.donor_name, payload.amount, payload.donated_at, actor=officer
    )
    return EventResponse.model_validate(event)


@router.delete("/{event_id}/donations/{donation_id}", response_model=EventResponse)
def remove_donation(
    event_id: int,
    donation_id: int,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> EventResponse:
    event = EventService(db).remove_donation(event_id, donation_id, actor=officer)
    return EventResponse.model_validate(event)


@router.post(
    "/{event_id}/expenses", response_model=EventResponse, status_code=status.HTTP_201_CREATED
)
def add_expense(
    event_id: int,
    description: str = Form(...),
    amount: Decimal = Form(...),
    category: Optional[ExpenseCategory] = Form(None),
    expense_date: Optional[datetime] = Form(None, alias="date"),
    proofs: Optional[list[UploadFile]] = File(None),
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> EventResponse:
    """Append an expense with optional proof images (multipart)."""
    urls = [url for url in (save_upload(storage, p) for p in proofs or []) if url]
    try:
        event = EventService(db, storage=storage).add_expense(
            event_id,
            description,
            amount,
            expense_date=expense_date,
            category=category,
            proof_image_urls=urls,
            actor=officer,
        )
    except AppError:
        for url in urls:
            storage.delete(url)
        raise
    return EventResponse.model_validate(event)


@router.delete("/{event_id}/expenses/{expense_id}", response_model=EventResponse)
def remove_expense(
    event_id: int,
    expense_id: int,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> EventResponse:
    event = EventService(db, storage=storage).remove_expense(event_id, expense_id, actor=officer)
    return EventResponse.model_validate(event)


@router.post("/{event_id}/complete", response_model=EventCompletionResponse)
def complete_event(
    event_id: int,
    officer: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
) -> EventCompletionResponse:
    """
    Complete the event and copy each of its expenses into pengeluaran.

    Returns:
        200: Totals, number of pengeluaran created and a summary
        409: Event already completed
    """
    result = EventService(db).complete_event(event_id, completed_by=officer.id)
    return EventCompletionResponse.model_validate(result)


@router.get("/{event_id}/report")
def download_report(
    event_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> Response:
    event = EventService(db).get(event_id)
    filename = f"laporan_{event.slug}_{date.today():%Y%m%d}.xlsx"
    return Response(
        content=build_event_report(event),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
