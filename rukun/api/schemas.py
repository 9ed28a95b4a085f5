"""Pydantic request/response schemas for the REST API."""

import datetime as dt
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from rukun.models.event import EventStatus, ExpenseCategory
from rukun.models.iuran import IuranStatus, IuranType
from rukun.models.user import Role, UserStatus

T = TypeVar("T")


class Pagination(BaseModel):
    total: int
    total_pages: int
    current: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, total_pages=(total + limit - 1) // limit, current=page)


class Page(BaseModel, Generic[T]):
    """Paginated list response."""

    data: list[T]
    pagination: Pagination


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Users / auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Payload for POST /auth/register."""

    email: str = Field(..., description="Unique email address")
    username: str = Field(..., description="Unique username (min 5 characters)")
    password: str = Field(..., description="Plain password, min 8 characters (hashed on save)")
    role: Role = Field(default=Role.WARGA, description="Community role")
    address: Optional[str] = None
    phone_number: Optional[str] = Field(None, description="10-15 digits")
    position: Optional[str] = None


class LoginRequest(BaseModel):
    identifier: str = Field(..., description="Email or username")
    password: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class PushTokenRequest(BaseModel):
    push_token: str = Field(..., alias="pushToken", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class UserStatusRequest(BaseModel):
    status: UserStatus
    status_note: Optional[str] = Field(None, alias="statusNote")

    model_config = ConfigDict(populate_by_name=True)


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    role: Role
    address: Optional[str] = None
    position: Optional[str] = None
    phone_number: Optional[str] = None
    image_url: Optional[str] = None
    status: UserStatus
    status_note: Optional[str] = None
    is_deleted: bool
    deleted_at: Optional[dt.datetime] = None
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class UserListItem(UserResponse):
    unpaid_iuran_count: int = 0
    unpaid_iuran_periods: list[str] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    user: UserResponse
    iuran_created: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserStatusResponse(BaseModel):
    user: UserResponse
    iuran_deleted: int
    iuran_created: int


class UserDeleteResponse(BaseModel):
    deleted_unpaid_iuran: int


class UserRestoreResponse(BaseModel):
    user: UserResponse
    iuran_created: int


class UserImportErrorResponse(BaseModel):
    row: int
    email: str
    errors: list[str]


class UserImportResponse(BaseModel):
    message: str
    success: list[str]
    skipped: list[str]
    errors: list[UserImportErrorResponse]


class UserRef(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Iuran
# ---------------------------------------------------------------------------


class IuranResponse(BaseModel):
    id: int
    user_id: int
    user: Optional[UserRef] = None
    period: str
    amount: Decimal
    status: IuranStatus
    type: IuranType
    description: Optional[str] = None
    proof_image_url: Optional[str] = None
    note: Optional[str] = None
    submitted_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None
    confirmed_by_id: Optional[int] = None
    payment_date: Optional[dt.datetime] = None
    payment_method: Optional[str] = None
    recorded_by_id: Optional[int] = None
    is_imported: bool = False
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class IuranStatusRequest(BaseModel):
    status: IuranStatus
    note: Optional[str] = None


class RecordPaymentRequest(BaseModel):
    user_id: int = Field(..., alias="userId")
    amount: Decimal = Field(..., gt=0, description="Amount paid per period")
    periods: list[str] = Field(..., min_length=1)
    payment_date: Optional[dt.datetime] = None
    payment_method: Optional[str] = None
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RecordPaymentResponse(BaseModel):
    success: int
    failed: int
    updated_iuran: list[IuranResponse]
    errors: Optional[list[str]] = None


class StatusSummaryResponse(BaseModel):
    paid: int
    pending: int
    rejected: int
    unpaid: int


class GeneratePeriodicRequest(BaseModel):
    period: Optional[str] = Field(None, description="YYYY-MM, default current month")
    amount: Optional[Decimal] = Field(None, gt=0)
    user_ids: Optional[list[int]] = None


class GenerateYearlyRequest(BaseModel):
    year: int = Field(..., ge=1900, le=9999)
    user_ids: Optional[list[int]] = None


class GenerateCustomRequest(BaseModel):
    period: str
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    user_ids: Optional[list[int]] = None


class GenerationResponse(BaseModel):
    period: str
    created: int
    skipped: int


class UserYearResponse(BaseModel):
    user_id: int
    username: str
    created: int
    skipped: int
    error: Optional[str] = None


class YearlyGenerationResponse(BaseModel):
    year: int
    created: int
    skipped: int
    users: list[UserYearResponse]


class ReminderResponse(BaseModel):
    period: str
    reminded: int


class ImportRowResponse(BaseModel):
    row_number: int
    name: str
    username: str
    user_created: bool
    paid: int
    unpaid: int


class ImportErrorResponse(BaseModel):
    row_number: int
    name: str
    error: str


class ImportResponse(BaseModel):
    processed: list[ImportRowResponse]
    errors: list[ImportErrorResponse]
    users_created: int


# ---------------------------------------------------------------------------
# Keuangan / pengeluaran
# ---------------------------------------------------------------------------


class PengeluaranItemRequest(BaseModel):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    image_url: Optional[str] = None


class PengeluaranCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    items: list[PengeluaranItemRequest] = Field(..., min_length=1)
    total: Optional[Decimal] = Field(None, gt=0, description="Default: sum of item prices")


class PengeluaranUpdateRequest(BaseModel):
    title: Optional[str] = None
    items: Optional[list[PengeluaranItemRequest]] = None
    total: Optional[Decimal] = Field(None, gt=0)


class PengeluaranItemResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PengeluaranResponse(BaseModel):
    id: int
    title: str
    slug: str
    total: Decimal
    items: list[PengeluaranItemResponse]
    created_by: Optional[UserRef] = None
    event_id: Optional[int] = None
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class EventTotalsResponse(BaseModel):
    id: int
    name: str
    slug: str
    total_donations: Decimal
    total_expenses: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class BalanceReportResponse(BaseModel):
    initial_balance: Decimal
    total_income: Decimal
    total_iuran_income: Decimal
    total_event_donations: Decimal
    total_expense: Decimal
    balance: Decimal
    events: list[EventTotalsResponse]

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    event_date: dt.date = Field(..., alias="date")

    model_config = ConfigDict(populate_by_name=True)


class EventUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[dt.date] = Field(None, alias="date")
    status: Optional[EventStatus] = None

    model_config = ConfigDict(populate_by_name=True)


class DonationCreateRequest(BaseModel):
    donor_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    donated_at: Optional[dt.datetime] = Field(None, alias="date")

    model_config = ConfigDict(populate_by_name=True)


class DonationResponse(BaseModel):
    id: int
    donor_name: str
    amount: Decimal
    date: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class EventExpenseResponse(BaseModel):
    id: int
    description: str
    amount: Decimal
    date: dt.datetime
    category: ExpenseCategory
    proof_image_urls: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class EventResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str
    event_date: dt.date = Field(..., serialization_alias="date")
    total_donations: Decimal
    total_expenses: Decimal
    balance: Decimal
    status: EventStatus
    completed_at: Optional[dt.datetime] = None
    created_by_id: Optional[int] = None
    donations: list[DonationResponse] = Field(default_factory=list)
    expenses: list[EventExpenseResponse] = Field(default_factory=list)
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class EventCompletionResponse(BaseModel):
    event: EventResponse
    total_donations: Decimal
    total_expenses: Decimal
    balance: Decimal
    pengeluaran_created: int
    summary: str

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Settings / inventory / media
# ---------------------------------------------------------------------------


class InitialBalanceRequest(BaseModel):
    initial_balance: Decimal


class InitialBalanceResponse(BaseModel):
    initial_balance: Decimal


class SettingsResponse(BaseModel):
    settings: dict[str, Any]


class InventoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class InventoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    quantity: Optional[int] = Field(None, ge=0)


class InventoryResponse(BaseModel):
    id: int
    name: str
    quantity: int
    created_by: Optional[UserRef] = None
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class UploadResponse(BaseModel):
    url: str
