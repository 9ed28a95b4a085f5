"""Registration, login and own-profile routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from rukun.api.deps import get_current_user, get_db, get_storage, save_upload
from rukun.api.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PushTokenRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from rukun.models.user import User
from rukun.services.auth_service import create_access_token
from rukun.services.storage import FileStorage
from rukun.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> RegisterResponse:
    """
    Register a resident and back-fill dues from the current month through December.

    Returns:
        201: Created user and number of iuran generated
        400: Validation error
        409: Username or email already taken
    """
    user, created = UserService(db).register(
        email=payload.email,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        address=payload.address,
        phone_number=payload.phone_number,
        position=payload.position,
    )
    return RegisterResponse(user=UserResponse.model_validate(user), iuran_created=created)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Exchange email/username and password for a bearer token."""
    user = UserService(db).authenticate(payload.identifier, payload.password)
    token = create_access_token(user.id, user.role.value)
    logger.info("User %s logged in", user.id)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.put("/profile", response_model=UserResponse)
def update_profile(
    username: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> UserResponse:
    """Update own profile. A new image replaces the previous one."""
    image_url = save_upload(storage, image)
    updated = UserService(db, storage=storage).update_profile(
        user.id,
        username=username,
        address=address,
        position=position,
        phone_number=phone_number,
        image_url=image_url,
    )
    return UserResponse.model_validate(updated)


@router.put("/push-token", response_model=UserResponse)
def update_push_token(
    payload: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    updated = UserService(db).update_push_token(user.id, payload.push_token)
    return UserResponse.model_validate(updated)


@router.put("/password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    UserService(db).change_password(user.id, payload.old_password, payload.new_password)
    return MessageResponse(message="Password changed")
