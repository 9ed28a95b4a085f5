"""Administrator settings routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rukun.api.deps import get_current_user, get_db, require_admin
from rukun.api.schemas import InitialBalanceRequest, InitialBalanceResponse, SettingsResponse
from rukun.models.user import User
from rukun.services.settings_service import SettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
def list_settings(
    _: User = Depends(require_admin), db: Session = Depends(get_db)
) -> SettingsResponse:
    return SettingsResponse(settings=SettingsService(db).get_all())


@router.get("/initial-balance", response_model=InitialBalanceResponse)
def get_initial_balance(
    _: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> InitialBalanceResponse:
    return InitialBalanceResponse(initial_balance=SettingsService(db).get_initial_balance())


@router.put("/initial-balance", response_model=InitialBalanceResponse)
def set_initial_balance(
    payload: InitialBalanceRequest,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> InitialBalanceResponse:
    """Set the opening balance added to every balance computation."""
    amount = SettingsService(db).set_initial_balance(payload.initial_balance)
    return InitialBalanceResponse(initial_balance=amount)
