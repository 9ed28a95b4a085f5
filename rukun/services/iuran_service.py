"""Iuran (dues) lifecycle service.

Provides methods for:
- Generating regular, yearly and custom dues for eligible residents
- Resident proof-of-payment submission
- Officer confirmation/rejection and bulk recording of offline payments
- Status summaries, listings and resident history
- Due-date (jatuh tempo) reminders

Status transitions per record:

    unpaid -> pending -> paid | rejected
    rejected -> pending (resubmission)
    unpaid -> paid (officer-recorded payment)

Officers may force paid/rejected from any state.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from rukun.config import get_settings
from rukun.models import utcnow
from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.models.user import Role, User, UserStatus
from rukun.services import notification_service as notifications
from rukun.services.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rukun.services.notification_service import NotificationPayload, NotificationService
from rukun.services.period_service import (
    current_period,
    dues_amount,
    parse_period,
    periods_of_year,
    periods_until_year_end,
)
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

CONFIRMATION_STATUSES = (IuranStatus.PAID, IuranStatus.REJECTED)


@dataclass
class GenerationResult:
    """Outcome of a single-period generation run."""

    period: str
    created: int = 0
    skipped: int = 0
    user_ids: list[int] = field(default_factory=list)


@dataclass
class UserYearResult:
    user_id: int
    username: str
    created: int = 0
    skipped: int = 0
    error: Optional[str] = None


@dataclass
class YearlyGenerationResult:
    year: int
    users: list[UserYearResult] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(u.created for u in self.users)

    @property
    def skipped(self) -> int:
        return sum(u.skipped for u in self.users)


@dataclass
class RecordPaymentResult:
    """Per-period outcome of an officer-recorded payment.

    success + failed always equals the number of requested periods.
    """

    updated: list[Iuran] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> int:
        return len(self.updated)

    @property
    def failed(self) -> int:
        return len(self.errors)


def _parse_amount(value, field_name: str = "amount") -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return amount


def _validate_period(period: str) -> str:
    try:
        parse_period(period)
    except ValueError as e:
        raise ValidationError(str(e)) from None
    return period


def _as_datetime(value: date | datetime | None) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _parse_statuses(statuses: str | Iterable[str] | None) -> list[IuranStatus]:
    if not statuses:
        return []
    if isinstance(statuses, str):
        statuses = statuses.split(",")
    parsed = []
    for raw in statuses:
        value = str(raw).strip().lower()
        if not value:
            continue
        try:
            parsed.append(IuranStatus(value))
        except ValueError:
            raise ValidationError(
                f"Invalid status '{value}'. Allowed: {', '.join(s.value for s in IuranStatus)}"
            ) from None
    return parsed


class IuranService:
    """Dues generation and status lifecycle."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationService] = None,
        storage: Optional[FileStorage] = None,
    ):
        """Initialize iuran service.

        Args:
            db: SQLAlchemy database session
            notifier: Push notification dispatcher (notifications skipped when None)
            storage: File storage used to drop replaced proof images
        """
        self.db = db
        self.notifier = notifier
        self.storage = storage

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def eligible_users(self, user_ids: Optional[Iterable[int]] = None) -> list[User]:
        """Residents that receive generated dues.

        Admins and soft-deleted users never do. Inactive/away residents are
        excluded unless GENERATION_INCLUDE_INACTIVE is on.

        Args:
            user_ids: Restrict to these users (default: everyone eligible)
        """
        stmt = select(User).where(User.role != Role.ADMIN, User.is_deleted.is_(False))
        if not get_settings().generation_include_inactive:
            stmt = stmt.where(User.status == UserStatus.ACTIVE)
        if user_ids is not None:
            ids = list(user_ids)
            if not ids:
                return []
            stmt = stmt.where(User.id.in_(ids))
        return list(self.db.execute(stmt.order_by(User.id)).scalars().all())

    def _existing_regular(self, period: str, user_ids: Sequence[int]) -> set[int]:
        if not user_ids:
            return set()
        rows = self.db.execute(
            select(Iuran.user_id).where(
                Iuran.period == period,
                Iuran.type == IuranType.REGULAR,
                Iuran.user_id.in_(user_ids),
            )
        ).scalars()
        return set(rows)

    def _regular_periods_of_user(self, user_id: int, periods: Sequence[str]) -> set[str]:
        rows = self.db.execute(
            select(Iuran.period).where(
                Iuran.user_id == user_id,
                Iuran.type == IuranType.REGULAR,
                Iuran.period.in_(list(periods)),
            )
        ).scalars()
        return set(rows)

    def generate_periodic(
        self,
        period: Optional[str] = None,
        amount: Decimal | str | int | None = None,
        user_ids: Optional[Iterable[int]] = None,
    ) -> GenerationResult:
        """Create one unpaid regular iuran per eligible resident for a period.

        Idempotent: residents that already hold a regular record for the
        period are skipped.

        Args:
            period: Period key (default: current month)
            amount: Amount per record (default: DUES_AMOUNT)
            user_ids: Optional subset of residents

        Returns:
            GenerationResult with created/skipped counts

        Raises:
            ValidationError: On malformed period or non-positive amount
        """
        period = _validate_period(period or current_period())
        amount = _parse_amount(amount) if amount is not None else dues_amount()

        users = self.eligible_users(user_ids)
        existing = self._existing_regular(period, [u.id for u in users])
        result = GenerationResult(period=period)

        for user in users:
            if user.id in existing:
                result.skipped += 1
                continue
            self.db.add(
                Iuran(
                    user_id=user.id,
                    period=period,
                    amount=amount,
                    type=IuranType.REGULAR,
                    status=IuranStatus.UNPAID,
                )
            )
            result.created += 1
            result.user_ids.append(user.id)

        self.db.commit()
        logger.info(
            "Generated iuran for %s: created=%d skipped=%d", period, result.created, result.skipped
        )

        if result.created:
            self._notify_users(result.user_ids, notifications.new_iuran(period))
        return result

    def generate_yearly(
        self, year: int, user_ids: Optional[Iterable[int]] = None
    ) -> YearlyGenerationResult:
        """Create unpaid regular iuran for all twelve months of a year.

        Each resident is committed separately; a failure is reported on that
        resident's entry and processing continues.
        """
        if not 1900 <= int(year) <= 9999:
            raise ValidationError(f"Invalid year {year}")
        periods = periods_of_year(int(year))
        amount = dues_amount()
        result = YearlyGenerationResult(year=int(year))

        for user in self.eligible_users(user_ids):
            entry = UserYearResult(user_id=user.id, username=user.username)
            try:
                existing = self._regular_periods_of_user(user.id, periods)
                for period in periods:
                    if period in existing:
                        entry.skipped += 1
                        continue
                    self.db.add(
                        Iuran(
                            user_id=user.id,
                            period=period,
                            amount=amount,
                            type=IuranType.REGULAR,
                            status=IuranStatus.UNPAID,
                        )
                    )
                    entry.created += 1
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Yearly generation failed for user %s: %s", user.id, e)
                entry.error = str(e)
                entry.created = 0
            result.users.append(entry)

        logger.info(
            "Generated yearly iuran for %s: created=%d skipped=%d",
            year,
            result.created,
            result.skipped,
        )
        notified = [u.user_id for u in result.users if u.created]
        if notified:
            self._notify_users(notified, notifications.new_yearly_iuran(int(year)))
        return result

    def generate_custom(
        self,
        period: str,
        amount: Decimal | str | int,
        description: str,
        user_ids: Optional[Iterable[int]] = None,
    ) -> GenerationResult:
        """Create one custom levy per eligible resident.

        Custom records are never deduplicated: running this twice for the
        same period leaves two records per resident.
        """
        period = _validate_period(period)
        amount = _parse_amount(amount)
        description = (description or "").strip()
        if not description:
            raise ValidationError("description is required for custom iuran")

        result = GenerationResult(period=period)
        for user in self.eligible_users(user_ids):
            self.db.add(
                Iuran(
                    user_id=user.id,
                    period=period,
                    amount=amount,
                    type=IuranType.CUSTOM,
                    status=IuranStatus.UNPAID,
                    description=description,
                )
            )
            result.created += 1
            result.user_ids.append(user.id)

        self.db.commit()
        logger.info(
            "Generated custom iuran '%s' for %s: %d records", description, period, result.created
        )

        if result.created:
            self._notify_users(
                result.user_ids, notifications.custom_iuran(period, amount, description)
            )
        return result

    def backfill_for_user(self, user: User, today: Optional[date] = None) -> int:
        """Create unpaid regular iuran from this month through December.

        Used on registration, restore and reactivation. Does nothing for
        admins, deleted or non-active residents.

        Returns:
            Number of records created
        """
        if user.role == Role.ADMIN or user.is_deleted or user.status != UserStatus.ACTIVE:
            return 0

        periods = periods_until_year_end(today)
        existing = self._regular_periods_of_user(user.id, periods)
        amount = dues_amount()
        created = 0
        for period in periods:
            if period in existing:
                continue
            self.db.add(
                Iuran(
                    user_id=user.id,
                    period=period,
                    amount=amount,
                    type=IuranType.REGULAR,
                    status=IuranStatus.UNPAID,
                )
            )
            created += 1
        self.db.commit()
        logger.info("Back-filled %d iuran for user %s (%s)", created, user.id, user.username)
        return created

    # ------------------------------------------------------------------
    # Payment workflow
    # ------------------------------------------------------------------

    def get(self, iuran_id: int) -> Iuran:
        iuran = self.db.get(Iuran, iuran_id)
        if iuran is None:
            raise NotFoundError("iuran not found")
        return iuran

    def submit_payment(self, iuran_id: int, user_id: int, proof_image_url: str) -> Iuran:
        """Attach proof of payment to a resident's own iuran.

        Raises:
            ValidationError: If no proof image is given
            NotFoundError: If the iuran does not exist
            UnauthorizedError: If the iuran belongs to another resident
            ConflictError: If the iuran is already paid or pending
        """
        if not proof_image_url:
            raise ValidationError("proof image is required")

        iuran = self.get(iuran_id)
        if iuran.user_id != user_id:
            raise UnauthorizedError("you can only pay your own iuran")
        if iuran.status == IuranStatus.PAID:
            raise ConflictError("iuran already paid")
        if iuran.status == IuranStatus.PENDING:
            raise ConflictError("iuran already submitted, waiting for confirmation")

        previous_proof = iuran.proof_image_url
        iuran.proof_image_url = proof_image_url
        iuran.submitted_at = utcnow()
        iuran.status = IuranStatus.PENDING
        self.db.commit()
        self.db.refresh(iuran)
        logger.info("Iuran %s (%s) submitted by user %s", iuran.id, iuran.period, user_id)

        if previous_proof and previous_proof != proof_image_url and self.storage is not None:
            self.storage.delete(previous_proof)
        return iuran

    def submit_new(
        self,
        user_id: int,
        period: str,
        proof_image_url: str,
        amount: Decimal | str | int | None = None,
    ) -> Iuran:
        """Resident pays a period that has no record yet.

        Raises:
            ValidationError: On malformed input
            NotFoundError: If the resident does not exist
            ConflictError: If a regular record exists for the period and
                DUES_UNIQUE_REGULAR_PERIOD is on
        """
        period = _validate_period(period)
        if not proof_image_url:
            raise ValidationError("proof image is required")
        amount = _parse_amount(amount) if amount is not None else dues_amount()

        if self.db.get(User, user_id) is None:
            raise NotFoundError("user not found")

        if get_settings().dues_unique_regular_period and self._regular_periods_of_user(
            user_id, [period]
        ):
            raise ConflictError(f"iuran for period {period} already exists")

        iuran = Iuran(
            user_id=user_id,
            period=period,
            amount=amount,
            type=IuranType.REGULAR,
            status=IuranStatus.PENDING,
            proof_image_url=proof_image_url,
            submitted_at=utcnow(),
        )
        self.db.add(iuran)
        self.db.commit()
        self.db.refresh(iuran)
        logger.info("New iuran %s for %s submitted by user %s", iuran.id, period, user_id)
        return iuran

    def update_status(
        self,
        iuran_id: int,
        officer_id: int,
        status: IuranStatus | str,
        note: Optional[str] = None,
    ) -> Iuran:
        """Confirm or reject an iuran and notify its owner.

        Raises:
            ValidationError: If status is not paid or rejected
            NotFoundError: If the iuran does not exist
        """
        try:
            new_status = IuranStatus(status)
        except ValueError:
            new_status = None
        if new_status not in CONFIRMATION_STATUSES:
            raise ValidationError("status must be one of: paid, rejected")

        iuran = self.get(iuran_id)
        iuran.status = new_status
        iuran.confirmed_at = utcnow()
        iuran.confirmed_by_id = officer_id
        if note is not None:
            iuran.note = note
        self.db.commit()
        self.db.refresh(iuran)
        logger.info("Iuran %s set to %s by officer %s", iuran.id, new_status.value, officer_id)

        self._notify_user(
            iuran.user_id,
            notifications.iuran_status_update(
                iuran.id,
                iuran.period,
                new_status.value,
                note if new_status == IuranStatus.REJECTED else None,
            ),
        )
        return iuran

    def record_payment(
        self,
        user_id: int,
        amount: Decimal | str | int,
        periods: Sequence[str],
        recorded_by: int,
        payment_date: date | datetime | None = None,
        method: Optional[str] = None,
        note: Optional[str] = None,
    ) -> RecordPaymentResult:
        """Mark unpaid regular iuran as paid for an offline payment.

        Each period is committed on its own; periods without an unpaid
        record are reported in errors without aborting the batch.

        Args:
            user_id: Resident who paid
            amount: Amount paid per period
            periods: Period keys covered by the payment
            recorded_by: Officer recording the payment
            payment_date: When the money was received (default: now)
            method: Payment method (cash, transfer...)
            note: Free-text note stored on every updated record

        Raises:
            ValidationError: On empty periods or non-positive amount
            NotFoundError: If the resident does not exist
        """
        if not periods:
            raise ValidationError("periods must be a non-empty list")
        amount = _parse_amount(amount)
        if self.db.get(User, user_id) is None:
            raise NotFoundError("user not found")

        paid_at = _as_datetime(payment_date)
        result = RecordPaymentResult()

        for period in periods:
            try:
                parse_period(period)
            except ValueError:
                result.errors.append(f"Period {period}: invalid period")
                continue
            try:
                iuran = self.db.execute(
                    select(Iuran)
                    .where(
                        Iuran.user_id == user_id,
                        Iuran.period == period,
                        Iuran.status == IuranStatus.UNPAID,
                    )
                    # Regular dues first, then custom levies
                    .order_by(case((Iuran.type == IuranType.REGULAR, 0), else_=1), Iuran.id)
                    .limit(1)
                ).scalar_one_or_none()
                if iuran is None:
                    result.errors.append(f"Period {period}: No unpaid iuran found")
                    continue

                now = utcnow()
                iuran.status = IuranStatus.PAID
                iuran.amount = amount
                iuran.payment_date = paid_at
                iuran.payment_method = method or None
                iuran.note = note or None
                iuran.confirmed_at = now
                iuran.confirmed_by_id = recorded_by
                iuran.recorded_by_id = recorded_by
                self.db.commit()
                result.updated.append(iuran)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Recording payment for %s/%s failed: %s", user_id, period, e)
                result.errors.append(f"Period {period}: {e}")

        logger.info(
            "Recorded payment for user %s: success=%d failed=%d",
            user_id,
            result.success,
            result.failed,
        )
        if result.updated:
            recorded_periods = [i.period for i in result.updated]
            self._notify_user(
                user_id,
                notifications.payment_recorded(recorded_periods, amount),
            )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status_summary(self, period: str) -> dict[str, int]:
        """Counts per status for a period, zero-filled."""
        period = _validate_period(period)
        summary = {"paid": 0, "pending": 0, "rejected": 0, "unpaid": 0}
        rows = self.db.execute(
            select(Iuran.status, func.count(Iuran.id))
            .where(Iuran.period == period)
            .group_by(Iuran.status)
        ).all()
        for status, count in rows:
            summary[IuranStatus(status).value] = count
        return summary

    def list_iurans(
        self,
        user_id: Optional[int] = None,
        period: Optional[str] = None,
        statuses: str | Iterable[str] | None = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Iuran], int]:
        """Filtered, newest-first page of iuran and the total match count.

        Args:
            statuses: One status or a comma-separated list
            search: Substring of the period, ignored when period is given
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        conditions = []
        if user_id is not None:
            conditions.append(Iuran.user_id == user_id)
        if period:
            conditions.append(Iuran.period == period)
        elif search:
            conditions.append(Iuran.period.contains(search.strip()))
        parsed = _parse_statuses(statuses)
        if parsed:
            conditions.append(Iuran.status.in_(parsed))

        total = self.db.execute(select(func.count(Iuran.id)).where(*conditions)).scalar_one()
        items = (
            self.db.execute(
                select(Iuran)
                .where(*conditions)
                .options(selectinload(Iuran.user), selectinload(Iuran.confirmed_by))
                .order_by(Iuran.created_at.desc(), Iuran.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(items), total

    def my_history(self, user_id: int, year: Optional[int] = None) -> list[Iuran]:
        """A resident's iuran, latest period first."""
        stmt = select(Iuran).where(Iuran.user_id == user_id)
        if year is not None:
            stmt = stmt.where(Iuran.period.like(f"{int(year):04d}-%"))
        return list(
            self.db.execute(stmt.order_by(Iuran.period.desc(), Iuran.id)).scalars().all()
        )

    def history_by_period(self, period: str) -> list[Iuran]:
        """All iuran of a period with their residents, ordered by username."""
        period = _validate_period(period)
        return list(
            self.db.execute(
                select(Iuran)
                .join(User, Iuran.user_id == User.id)
                .where(Iuran.period == period)
                .options(selectinload(Iuran.user))
                .order_by(User.username, Iuran.id)
            )
            .scalars()
            .all()
        )

    def unpaid_periods_by_user(self, user_ids: Iterable[int]) -> dict[int, list[str]]:
        """Unpaid regular periods per resident, oldest first."""
        ids = list(user_ids)
        if not ids:
            return {}
        rows = self.db.execute(
            select(Iuran.user_id, Iuran.period)
            .where(
                Iuran.user_id.in_(ids),
                Iuran.status == IuranStatus.UNPAID,
                Iuran.type == IuranType.REGULAR,
            )
            .order_by(Iuran.period)
        ).all()
        unpaid: dict[int, list[str]] = {}
        for user_id, period in rows:
            unpaid.setdefault(user_id, []).append(period)
        return unpaid

    # ------------------------------------------------------------------
    # Cleanup and reminders
    # ------------------------------------------------------------------

    def delete_unsettled_for_user(self, user_id: int) -> int:
        """Delete every non-paid iuran of a resident; paid history stays."""
        result = self.db.execute(
            delete(Iuran).where(Iuran.user_id == user_id, Iuran.status != IuranStatus.PAID)
        )
        self.db.commit()
        deleted = result.rowcount or 0
        logger.info("Removed %d unsettled iuran of user %s", deleted, user_id)
        return deleted

    def send_due_reminders(self, period: Optional[str] = None) -> int:
        """Remind residents with unpaid iuran for a period.

        Returns:
            Number of residents reminded
        """
        period = _validate_period(period or current_period())
        user_ids = (
            self.db.execute(
                select(Iuran.user_id)
                .join(User, Iuran.user_id == User.id)
                .where(
                    Iuran.period == period,
                    Iuran.status == IuranStatus.UNPAID,
                    User.is_deleted.is_(False),
                )
                .distinct()
            )
            .scalars()
            .all()
        )
        if user_ids:
            self._notify_users(user_ids, notifications.jatuh_tempo_reminder(period))
        logger.info("Jatuh tempo reminder for %s: %d residents", period, len(user_ids))
        return len(user_ids)

    # ------------------------------------------------------------------

    def _notify_user(self, user_id: int, payload: NotificationPayload) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_to_user(user_id, payload)
        except Exception as e:
            logger.error("Notification %s to user %s failed: %s", payload.type, user_id, e)

    def _notify_users(self, user_ids: Iterable[int], payload: NotificationPayload) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_to_users(list(user_ids), payload)
        except Exception as e:
            logger.error("Notification %s failed: %s", payload.type, e)


__all__ = [
    "IuranService",
    "GenerationResult",
    "YearlyGenerationResult",
    "UserYearResult",
    "RecordPaymentResult",
]
