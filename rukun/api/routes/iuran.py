"""Iuran (dues) routes: generation, payment submission, confirmation and spreadsheets."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from rukun.api.deps import (
    get_current_user,
    get_db,
    get_notifier,
    get_storage,
    require_admin,
    require_officer,
    require_treasurer,
    save_upload,
)
from rukun.api.schemas import (
    GenerateCustomRequest,
    GeneratePeriodicRequest,
    GenerateYearlyRequest,
    GenerationResponse,
    ImportErrorResponse,
    ImportResponse,
    ImportRowResponse,
    IuranResponse,
    IuranStatusRequest,
    Page,
    Pagination,
    RecordPaymentRequest,
    RecordPaymentResponse,
    ReminderResponse,
    StatusSummaryResponse,
    UserYearResponse,
    YearlyGenerationResponse,
)
from rukun.models.user import User
from rukun.services.errors import AppError, ForbiddenError, ValidationError
from rukun.services.iuran_service import IuranService
from rukun.services.iuran_spreadsheet import IuranSpreadsheetService, build_template
from rukun.services.notification_service import NotificationService
from rukun.services.period_service import current_period
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/iuran", tags=["iuran"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("", response_model=Page[IuranResponse])
def list_iuran(
    period: Optional[str] = None,
    status: Optional[str] = Query(None, description="Status or comma-separated statuses"),
    search: Optional[str] = None,
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> Page[IuranResponse]:
    items, total = IuranService(db).list_iurans(
        user_id=user_id, period=period, statuses=status, search=search, page=page, limit=limit
    )
    return Page[IuranResponse](
        data=[IuranResponse.model_validate(i) for i in items],
        pagination=Pagination.build(total, page, limit),
    )


@router.get("/me", response_model=list[IuranResponse])
def my_iuran(
    year: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[IuranResponse]:
    """The caller's own dues, latest period first."""
    return [IuranResponse.model_validate(i) for i in IuranService(db).my_history(user.id, year)]


@router.get("/period/{period}", response_model=list[IuranResponse])
def iuran_by_period(
    period: str, _: User = Depends(require_officer), db: Session = Depends(get_db)
) -> list[IuranResponse]:
    return [IuranResponse.model_validate(i) for i in IuranService(db).history_by_period(period)]


@router.get("/summary", response_model=StatusSummaryResponse)
def status_summary(
    period: Optional[str] = None,
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> StatusSummaryResponse:
    """Counts per status for a period (default: current month)."""
    return StatusSummaryResponse(**IuranService(db).status_summary(period or current_period()))


@router.post("/generate", response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
def generate_periodic(
    payload: GeneratePeriodicRequest,
    _: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> GenerationResponse:
    result = IuranService(db, notifier=notifier).generate_periodic(
        period=payload.period, amount=payload.amount, user_ids=payload.user_ids
    )
    return GenerationResponse(period=result.period, created=result.created, skipped=result.skipped)


@router.post(
    "/generate/yearly",
    response_model=YearlyGenerationResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_yearly(
    payload: GenerateYearlyRequest,
    _: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> YearlyGenerationResponse:
    result = IuranService(db, notifier=notifier).generate_yearly(
        payload.year, user_ids=payload.user_ids
    )
    return YearlyGenerationResponse(
        year=result.year,
        created=result.created,
        skipped=result.skipped,
        users=[UserYearResponse(**u.__dict__) for u in result.users],
    )


@router.post(
    "/generate/custom", response_model=GenerationResponse, status_code=status.HTTP_201_CREATED
)
def generate_custom(
    payload: GenerateCustomRequest,
    _: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> GenerationResponse:
    """One-off dues (e.g. a levy) for all eligible residents or a subset."""
    result = IuranService(db, notifier=notifier).generate_custom(
        payload.period, payload.amount, payload.description, user_ids=payload.user_ids
    )
    return GenerationResponse(period=result.period, created=result.created, skipped=result.skipped)


@router.post("/reminders", response_model=ReminderResponse)
def send_reminders(
    period: Optional[str] = None,
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> ReminderResponse:
    period = period or current_period()
    reminded = IuranService(db, notifier=notifier).send_due_reminders(period)
    return ReminderResponse(period=period, reminded=reminded)


@router.post("/submit", response_model=IuranResponse, status_code=status.HTTP_201_CREATED)
def submit_new(
    period: str = Form(...),
    amount: Optional[Decimal] = Form(None),
    proof: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> IuranResponse:
    """Pay a period that has no iuran record yet."""
    proof_url = save_upload(storage, proof)
    try:
        iuran = IuranService(db, storage=storage).submit_new(user.id, period, proof_url, amount)
    except AppError:
        storage.delete(proof_url)
        raise
    return IuranResponse.model_validate(iuran)


@router.post("/record-payment", response_model=RecordPaymentResponse)
def record_payment(
    payload: RecordPaymentRequest,
    officer: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> RecordPaymentResponse:
    """
    Record an offline (cash/transfer) payment covering one or more periods.

    Periods without an unpaid regular iuran are reported in errors; the
    remaining periods are still recorded.
    """
    result = IuranService(db, notifier=notifier).record_payment(
        user_id=payload.user_id,
        amount=payload.amount,
        periods=payload.periods,
        recorded_by=officer.id,
        payment_date=payload.payment_date,
        method=payload.payment_method,
        note=payload.note,
    )
    return RecordPaymentResponse(
        success=result.success,
        failed=result.failed,
        updated_iuran=[IuranResponse.model_validate(i) for i in result.updated],
        errors=result.errors or None,
    )


@router.get("/template")
def download_template(_: User = Depends(require_officer)) -> Response:
    return _xlsx(build_template(), "template_iuran.xlsx")


@router.get("/export")
def export_iuran(
    start: str = Query(..., description="First period, YYYY-MM"),
    end: str = Query(..., description="Last period, YYYY-MM"),
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> Response:
    content = IuranSpreadsheetService(db).export(start, end)
    return _xlsx(content, f"iuran_{start}_{end}.xlsx")


@router.post("/import", response_model=ImportResponse)
def import_iuran(
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ImportResponse:
    """
    Rebuild residents' dues from a spreadsheet in the template layout.

    Residents that do not exist yet are created. Each row succeeds or fails
    on its own.
    """
    if not (file.filename or "").lower().endswith(".xlsx"):
        raise ValidationError("file must be an .xlsx workbook")
    result = IuranSpreadsheetService(db).import_file(file.file.read(), imported_by=admin.id)
    return ImportResponse(
        processed=[ImportRowResponse(**r.__dict__) for r in result.processed],
        errors=[ImportErrorResponse(**e.__dict__) for e in result.errors],
        users_created=result.users_created,
    )


@router.get("/{iuran_id}", response_model=IuranResponse)
def get_iuran(
    iuran_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> IuranResponse:
    iuran = IuranService(db).get(iuran_id)
    if iuran.user_id != user.id and not user.is_officer:
        raise ForbiddenError("You do not have permission to view this iuran")
    return IuranResponse.model_validate(iuran)


@router.post("/{iuran_id}/pay", response_model=IuranResponse)
def submit_payment(
    iuran_id: int,
    proof: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> IuranResponse:
    """Attach proof of payment; the iuran becomes pending."""
    proof_url = save_upload(storage, proof)
    try:
        iuran = IuranService(db, storage=storage).submit_payment(iuran_id, user.id, proof_url)
    except AppError:
        storage.delete(proof_url)
        raise
    return IuranResponse.model_validate(iuran)


@router.patch("/{iuran_id}/status", response_model=IuranResponse)
def update_status(
    iuran_id: int,
    payload: IuranStatusRequest,
    officer: User = Depends(require_treasurer),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> IuranResponse:
    """Confirm (paid) or reject a submitted payment and notify the resident."""
    iuran = IuranService(db, notifier=notifier).update_status(
        iuran_id, officer.id, payload.status, payload.note
    )
    return IuranResponse.model_validate(iuran)
