"""Resident management routes for officers."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.orm import Session

from rukun.api.deps import get_db, get_storage, require_admin, require_officer
from rukun.api.schemas import (
    Page,
    Pagination,
    UserDeleteResponse,
    UserImportErrorResponse,
    UserImportResponse,
    UserListItem,
    UserResponse,
    UserRestoreResponse,
    UserStatusRequest,
    UserStatusResponse,
)
from rukun.models.user import User
from rukun.services.errors import ValidationError
from rukun.services.storage import FileStorage
from rukun.services.user_service import UserService
from rukun.services.user_spreadsheet import UserSpreadsheetService, build_user_template

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("", response_model=Page[UserListItem])
def list_users(
    search: Optional[str] = None,
    status: Optional[str] = None,
    include_deleted: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> Page[UserListItem]:
    """Residents, active first, each with their unpaid regular periods."""
    entries, total = UserService(db).list_users(
        search=search, status=status, include_deleted=include_deleted, page=page, limit=limit
    )
    data = [
        UserListItem.model_validate(entry.user).model_copy(
            update={
                "unpaid_iuran_count": entry.unpaid_count,
                "unpaid_iuran_periods": entry.unpaid_periods,
            }
        )
        for entry in entries
    ]
    return Page[UserListItem](data=data, pagination=Pagination.build(total, page, limit))


@router.get("/template")
def download_template(_: User = Depends(require_officer)) -> Response:
    return _xlsx(build_user_template(), "Template_Import_User.xlsx")


@router.get("/export")
def export_users(
    ids: Optional[list[int]] = Query(None),
    _: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> Response:
    """Export the selected users, or every non-deleted user when no ids are given."""
    content = UserSpreadsheetService(db).export(ids)
    scope = "Selected" if ids else "All"
    return _xlsx(content, f"Export_{scope}_Users_{date.today().isoformat()}.xlsx")


@router.post("/import", response_model=UserImportResponse)
def import_users(
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserImportResponse:
    """
    Create users from a "Data Pengguna" workbook.

    Invalid rows are reported, existing emails or usernames are skipped and
    every other row becomes a user with the default import password.
    """
    if not (file.filename or "").lower().endswith(".xlsx"):
        raise ValidationError("file must be an .xlsx workbook")
    result = UserSpreadsheetService(db).import_file(file.file.read())
    logger.info("Admin %s imported users: %s", admin.id, result.message)
    return UserImportResponse(
        message=result.message,
        success=result.success,
        skipped=result.skipped,
        errors=[UserImportErrorResponse(**e.__dict__) for e in result.errors],
    )


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int, _: User = Depends(require_officer), db: Session = Depends(get_db)
) -> UserResponse:
    return UserResponse.model_validate(UserService(db).get(user_id))


@router.patch("/{user_id}/status", response_model=UserStatusResponse)
def update_status(
    user_id: int,
    payload: UserStatusRequest,
    officer: User = Depends(require_officer),
    db: Session = Depends(get_db),
) -> UserStatusResponse:
    """
    Change residency status.

    Leaving active removes the resident's non-paid dues; returning to active
    back-fills dues through December.
    """
    user, deleted, created = UserService(db).update_status(
        user_id, payload.status, payload.status_note
    )
    logger.info("Officer %s set status of user %s to %s", officer.id, user.id, user.status.value)
    return UserStatusResponse(
        user=UserResponse.model_validate(user), iuran_deleted=deleted, iuran_created=created
    )


@router.delete("/{user_id}", response_model=UserDeleteResponse)
def delete_user(
    user_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> UserDeleteResponse:
    """Soft delete. Paid history is kept; unpaid, pending and rejected dues are removed."""
    deleted = UserService(db, storage=storage).soft_delete(user_id)
    return UserDeleteResponse(deleted_unpaid_iuran=deleted)


@router.post("/{user_id}/restore", response_model=UserRestoreResponse)
def restore_user(
    user_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)
) -> UserRestoreResponse:
    user, created = UserService(db).restore(user_id)
    return UserRestoreResponse(user=UserResponse.model_validate(user), iuran_created=created)
