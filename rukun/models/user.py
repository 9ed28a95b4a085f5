"""Resident (user) ORM model with role-based access control."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rukun.models import Base, BaseModel


class Role(str, Enum):
    """Community role of a user."""

    ADMIN = "admin"
    RT = "rt"
    RW = "rw"
    BENDAHARA = "bendahara"
    SEKRETARIS = "sekretaris"
    SATPAM = "satpam"
    WARGA = "warga"


# Roles allowed to manage residents and read community-wide data
OFFICER_ROLES = frozenset({Role.ADMIN, Role.RT, Role.RW, Role.BENDAHARA, Role.SEKRETARIS})

# Roles with payment-confirmation and expense authority
TREASURER_ROLES = frozenset({Role.ADMIN, Role.BENDAHARA})


class UserStatus(str, Enum):
    """Residency status of a user."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    AWAY = "away"


class User(Base, BaseModel):
    """
    A registered member of the community: resident or officer.

    - role: one of Role; admins never receive dues
    - status: active residents receive generated dues, inactive/away do not
    - is_deleted/deleted_at: soft delete; paid dues history is kept
    - push_token: Expo push token registered by the mobile app
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[Role] = mapped_column(SQLEnum(Role), nullable=False, default=Role.WARGA)

    # Profile
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(15), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    push_token: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Expo push token"
    )

    # Lifecycle
    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus), nullable=False, default=UserStatus.ACTIVE
    )
    status_note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_user_role", "role"),
        Index("idx_user_status_deleted", "status", "is_deleted"),
    )

    iurans: Mapped[list["Iuran"]] = relationship(  # noqa: F821
        "Iuran",
        back_populates="user",
        foreign_keys="Iuran.user_id",
        cascade="all, delete-orphan",
    )

    @property
    def is_officer(self) -> bool:
        return self.role in OFFICER_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, username={self.username}, role={self.role}, "
            f"status={self.status}, is_deleted={self.is_deleted})>"
        )


__all__ = ["User", "Role", "UserStatus", "OFFICER_ROLES", "TREASURER_ROLES"]
