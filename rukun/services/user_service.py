"""Resident registration, authentication and lifecycle management."""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from rukun.models import utcnow
from rukun.models.user import Role, User, UserStatus
from rukun.services.auth_service import hash_password, verify_password
from rukun.services.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rukun.services.iuran_service import IuranService
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^[0-9]{10,15}$")

MIN_USERNAME_LENGTH = 5
MIN_PASSWORD_LENGTH = 8


@dataclass
class UserListEntry:
    """User with the unpaid regular periods shown in the resident list."""

    user: User
    unpaid_periods: list[str]

    @property
    def unpaid_count(self) -> int:
        return len(self.unpaid_periods)


def _parse_role(role: Role | str | None) -> Role:
    if role is None or role == "":
        return Role.WARGA
    try:
        return Role(role)
    except ValueError:
        raise ValidationError(
            f"role must be one of: {', '.join(r.value for r in Role)}"
        ) from None


def _validate_phone(phone_number: Optional[str]) -> Optional[str]:
    if not phone_number:
        return None
    if not _PHONE_RE.match(phone_number):
        raise ValidationError("phone_number must be 10-15 digits")
    return phone_number


class UserService:
    """Residents and officers."""

    def __init__(self, db: Session, storage: Optional[FileStorage] = None):
        """Initialize user service.

        Args:
            db: SQLAlchemy database session
            storage: File storage used to drop replaced profile images
        """
        self.db = db
        self.storage = storage
        self.iurans = IuranService(db, storage=storage)

    def get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.execute(select(User).where(User.username == username)).scalar_one_or_none()

    def get_by_identifier(self, identifier: str) -> Optional[User]:
        """Find a user by email or username."""
        return self.db.execute(
            select(User).where(or_(User.email == identifier, User.username == identifier))
        ).scalar_one_or_none()

    def _ensure_unique(
        self, username: Optional[str] = None, email: Optional[str] = None, exclude_id=None
    ) -> None:
        if username:
            stmt = select(User.id).where(User.username == username)
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if self.db.execute(stmt).first():
                raise ConflictError("Username is already taken")
        if email:
            stmt = select(User.id).where(User.email == email)
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if self.db.execute(stmt).first():
                raise ConflictError("Email is already taken")

    def create_user(
        self,
        email: str,
        username: str,
        password: str,
        role: Role = Role.WARGA,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        position: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> User:
        """Insert a user without input-length rules (used by spreadsheet import).

        Raises:
            ConflictError: On duplicate username or email
        """
        self._ensure_unique(username=username, email=email)
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            role=role,
            address=address or None,
            phone_number=phone_number or None,
            position=position or None,
            image_url=image_url or None,
            status=UserStatus.ACTIVE,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Created user %s (%s, role=%s)", user.id, user.username, user.role.value)
        return user

    def register(
        self,
        email: str,
        username: str,
        password: str,
        role: Role | str | None = None,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        position: Optional[str] = None,
        image_url: Optional[str] = None,
        today: Optional[date] = None,
    ) -> tuple[User, int]:
        """Register a user and back-fill dues through December.

        Returns:
            Tuple of (user, number of iuran created)

        Raises:
            ValidationError: On malformed input
            ConflictError: On duplicate username or email
        """
        email = (email or "").strip().lower()
        username = (username or "").strip()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Email is invalid")
        if len(username) < MIN_USERNAME_LENGTH:
            raise ValidationError(f"Name length min {MIN_USERNAME_LENGTH}")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password length min {MIN_PASSWORD_LENGTH}")

        user = self.create_user(
            email=email,
            username=username,
            password=password,
            role=_parse_role(role),
            address=address,
            phone_number=_validate_phone(phone_number),
            position=position,
            image_url=image_url,
        )
        created = self.iurans.backfill_for_user(user, today)
        return user, created

    def authenticate(self, identifier: str, password: str) -> User:
        """Resolve login credentials to a user.

        Raises:
            UnauthorizedError: If the user is unknown, deleted or the password
                does not match
        """
        user = self.get_by_identifier((identifier or "").strip())
        if user is None or user.is_deleted:
            raise UnauthorizedError("user not found")
        if not verify_password(password or "", user.password_hash):
            logger.info("Failed login for %s", identifier)
            raise UnauthorizedError("user not found")
        return user

    def list_users(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        include_deleted: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[UserListEntry], int]:
        """Users sorted active-first then by name, with unpaid regular periods."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        conditions = []
        if not include_deleted:
            conditions.append(User.is_deleted.is_(False))
        if status:
            try:
                conditions.append(User.status == UserStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status '{status}'") from None
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    User.username.ilike(pattern),
                    User.email.ilike(pattern),
                    User.address.ilike(pattern),
                )
            )

        total = self.db.execute(select(func.count(User.id)).where(*conditions)).scalar_one()
        users = (
            self.db.execute(
                select(User)
                .where(*conditions)
                .order_by(User.is_deleted, User.status, User.username)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        unpaid = self.iurans.unpaid_periods_by_user(u.id for u in users)
        return [UserListEntry(user=u, unpaid_periods=unpaid.get(u.id, [])) for u in users], total

    def update_profile(
        self,
        user_id: int,
        username: Optional[str] = None,
        address: Optional[str] = None,
        position: Optional[str] = None,
        phone_number: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> User:
        """Update the caller's own profile; only given fields change.

        A new image replaces the old one, which is deleted best-effort.
        """
        user = self.get(user_id)
        if username is not None:
            username = username.strip()
            if len(username) < MIN_USERNAME_LENGTH:
                raise ValidationError(f"Name length min {MIN_USERNAME_LENGTH}")
            self._ensure_unique(username=username, exclude_id=user.id)
            user.username = username
        if address is not None:
            user.address = address
        if position is not None:
            user.position = position
        if phone_number is not None:
            user.phone_number = _validate_phone(phone_number)

        old_image = None
        if image_url:
            old_image = user.image_url
            user.image_url = image_url

        self.db.commit()
        self.db.refresh(user)
        logger.info("Updated profile of user %s", user.id)

        if old_image and old_image != image_url and self.storage is not None:
            self.storage.delete(old_image)
        return user

    def update_push_token(self, user_id: int, push_token: str) -> User:
        if not push_token or not push_token.strip():
            raise ValidationError("pushToken is required")
        user = self.get(user_id)
        user.push_token = push_token.strip()
        self.db.commit()
        self.db.refresh(user)
        logger.info("Registered push token for user %s", user.id)
        return user

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        user = self.get(user_id)
        if not verify_password(old_password or "", user.password_hash):
            raise UnauthorizedError("current password is incorrect")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password length min {MIN_PASSWORD_LENGTH}")
        user.password_hash = hash_password(new_password)
        self.db.commit()
        logger.info("Password changed for user %s", user.id)

    def update_status(
        self,
        user_id: int,
        status: UserStatus | str,
        status_note: Optional[str] = None,
        today: Optional[date] = None,
    ) -> tuple[User, int, int]:
        """Change residency status.

        Leaving active deletes the resident's non-paid dues; returning to
        active back-fills them through December.

        Returns:
            Tuple of (user, iuran deleted, iuran created)
        """
        try:
            new_status = UserStatus(status)
        except ValueError:
            raise ValidationError(
                f"status must be one of: {', '.join(s.value for s in UserStatus)}"
            ) from None

        user = self.get(user_id)
        old_status = user.status
        user.status = new_status
        user.status_note = status_note or None
        self.db.commit()
        self.db.refresh(user)

        deleted = created = 0
        if old_status == UserStatus.ACTIVE and new_status != UserStatus.ACTIVE:
            deleted = self.iurans.delete_unsettled_for_user(user.id)
        elif old_status != UserStatus.ACTIVE and new_status == UserStatus.ACTIVE:
            created = self.iurans.backfill_for_user(user, today)
        logger.info(
            "User %s status %s -> %s (deleted=%d, created=%d)",
            user.username,
            old_status.value,
            new_status.value,
            deleted,
            created,
        )
        return user, deleted, created

    def soft_delete(self, user_id: int) -> int:
        """Mark the user deleted and drop non-paid dues; paid history stays.

        Returns:
            Number of iuran records removed
        """
        user = self.get(user_id)
        user.is_deleted = True
        user.deleted_at = utcnow()
        self.db.commit()
        deleted = self.iurans.delete_unsettled_for_user(user.id)
        logger.info("Soft deleted user %s, removed %d unpaid iuran", user.username, deleted)
        return deleted

    def restore(self, user_id: int, today: Optional[date] = None) -> tuple[User, int]:
        """Undo a soft delete, reset status to active and back-fill dues.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If the user is not deleted
        """
        user = self.get(user_id)
        if not user.is_deleted:
            raise ValidationError("user is not deleted")
        user.is_deleted = False
        user.deleted_at = None
        user.status = UserStatus.ACTIVE
        self.db.commit()
        self.db.refresh(user)
        created = self.iurans.backfill_for_user(user, today)
        logger.info("Restored user %s, created %d iuran", user.username, created)
        return user, created


__all__ = ["UserService", "UserListEntry"]
