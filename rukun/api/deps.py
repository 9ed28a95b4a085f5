"""FastAPI dependencies: database session, current user, roles and services."""

import logging
from typing import Callable, Optional

from fastapi import Depends, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from rukun.config import get_settings
from rukun.models.user import OFFICER_ROLES, TREASURER_ROLES, Role, User
from rukun.services import get_db
from rukun.services.auth_service import decode_access_token
from rukun.services.errors import ForbiddenError, UnauthorizedError, ValidationError
from rukun.services.notification_service import ExpoPushClient, NotificationService
from rukun.services.storage import FileStorage, LocalFileStorage

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_storage() -> FileStorage:
    return LocalFileStorage()


def get_push_client() -> Optional[ExpoPushClient]:
    """Expo client, or None when push delivery is disabled."""
    if not get_settings().push_enabled:
        return None
    return ExpoPushClient()


def get_notifier(
    db: Session = Depends(get_db),
    client: Optional[ExpoPushClient] = Depends(get_push_client),
) -> NotificationService:
    return NotificationService(db, client=client)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a live user.

    Raises:
        UnauthorizedError: If the token is missing, invalid or expired, or the
            user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    claims = decode_access_token(credentials.credentials)
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token") from None
    user = db.get(User, user_id)
    if user is None or user.is_deleted:
        raise UnauthorizedError("user not found")
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    """Dependency factory admitting only users holding one of roles."""
    allowed = frozenset(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.info("User %s (%s) denied access", user.id, user.role.value)
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return dependency


def save_upload(storage: FileStorage, upload: Optional[UploadFile]) -> Optional[str]:
    """Store an uploaded file and return its URL; None when nothing was sent."""
    if upload is None or not upload.filename:
        return None
    content = upload.file.read()
    if not content:
        raise ValidationError(f"{upload.filename} is empty")
    return storage.save(content, upload.filename)


require_officer = require_roles(*OFFICER_ROLES)
require_treasurer = require_roles(*TREASURER_ROLES)
require_admin = require_roles(Role.ADMIN)


__all__ = [
    "get_db",
    "get_storage",
    "get_push_client",
    "get_notifier",
    "get_current_user",
    "require_roles",
    "require_officer",
    "require_treasurer",
    "require_admin",
    "save_upload",
]
