"""Integration tests for registration, authentication and resident lifecycle."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.models.user import Role, UserStatus
from rukun.services.auth_service import verify_password
from rukun.services.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rukun.services.user_service import UserService

TODAY = date(2025, 10, 5)


def _iurans(db_session, user_id):
    return list(
        db_session.execute(
            select(Iuran).where(Iuran.user_id == user_id).order_by(Iuran.period)
        ).scalars()
    )


@pytest.fixture
def service(db_session, storage):
    return UserService(db_session, storage=storage)


@pytest.fixture
def registered(service):
    user, _ = service.register(
        email="Siti@Example.com",
        username="siti_aminah",
        password="rahasia123",
        address="Blok A No. 3",
        phone_number="081234567890",
        today=TODAY,
    )
    return user


class TestRegister:
    def test_register_backfills_until_december(self, db_session, service):
        user, created = service.register(
            email="budi@example.com", username="budi_s", password="rahasia123", today=TODAY
        )

        assert created == 3
        assert user.role == Role.WARGA
        assert user.status == UserStatus.ACTIVE
        assert [i.period for i in _iurans(db_session, user.id)] == [
            "2025-10",
            "2025-11",
            "2025-12",
        ]

    def test_email_normalized_and_password_hashed(self, registered):
        assert registered.email == "siti@example.com"
        assert registered.password_hash != "rahasia123"
        assert verify_password("rahasia123", registered.password_hash)

    def test_admin_gets_no_dues(self, db_session, service):
        user, created = service.register(
            email="admin@example.com",
            username="admin_rw",
            password="rahasia123",
            role="admin",
            today=TODAY,
        )
        assert created == 0
        assert _iurans(db_session, user.id) == []

    @pytest.mark.parametrize(
        "email,username,password,phone",
        [
            ("bukan-email", "budi_s", "rahasia123", None),
            ("budi@example.com", "budi", "rahasia123", None),
            ("budi@example.com", "budi_s", "pendek", None),
            ("budi@example.com", "budi_s", "rahasia123", "0812-abc"),
        ],
    )
    def test_validation(self, service, email, username, password, phone):
        with pytest.raises(ValidationError):
            service.register(email, username, password, phone_number=phone, today=TODAY)

    def test_unknown_role(self, service):
        with pytest.raises(ValidationError):
            service.register("budi@example.com", "budi_s", "rahasia123", role="lurah")

    def test_duplicates_conflict(self, service, registered):
        with pytest.raises(ConflictError, match="Username"):
            service.register("lain@example.com", "siti_aminah", "rahasia123", today=TODAY)
        with pytest.raises(ConflictError, match="Email"):
            service.register("siti@example.com", "siti_lain", "rahasia123", today=TODAY)


class TestAuthenticate:
    def test_by_username_or_email(self, service, registered):
        assert service.authenticate("siti_aminah", "rahasia123").id == registered.id
        assert service.authenticate("siti@example.com", "rahasia123").id == registered.id

    def test_wrong_password(self, service, registered):
        with pytest.raises(UnauthorizedError):
            service.authenticate("siti_aminah", "salah12345")

    def test_deleted_user_cannot_login(self, service, registered):
        service.soft_delete(registered.id)
        with pytest.raises(UnauthorizedError):
            service.authenticate("siti_aminah", "rahasia123")

    def test_change_password(self, service, registered):
        with pytest.raises(UnauthorizedError):
            service.change_password(registered.id, "salah12345", "baru12345")

        service.change_password(registered.id, "rahasia123", "baru12345")

        assert service.authenticate("siti_aminah", "baru12345").id == registered.id


class TestProfile:
    def test_update_profile_replaces_image(self, service, registered, storage):
        old = storage.save(b"a", "a.jpg")
        new = storage.save(b"b", "b.jpg")
        service.update_profile(registered.id, image_url=old)

        user = service.update_profile(registered.id, position="Sekretaris", image_url=new)

        assert user.position == "Sekretaris"
        assert user.image_url == new
        assert storage.delete(old) is False

    def test_username_taken(self, service, registered, make_user):
        make_user("ahmad_dani")
        with pytest.raises(ConflictError):
            service.update_profile(registered.id, username="ahmad_dani")

    def test_push_token(self, service, registered):
        user = service.update_push_token(registered.id, " ExponentPushToken[abc] ")
        assert user.push_token == "ExponentPushToken[abc]"
        with pytest.raises(ValidationError):
            service.update_push_token(registered.id, "  ")


class TestStatusLifecycle:
    """Test status changes, soft delete and restore against the dues ledger."""

    def test_leaving_active_drops_unsettled_dues(self, db_session, service, registered):
        records = _iurans(db_session, registered.id)
        records[0].status = IuranStatus.PAID
        records[1].status = IuranStatus.PENDING
        db_session.commit()

        user, deleted, created = service.update_status(
            registered.id, "away", "Dinas luar kota", today=TODAY
        )

        assert user.status == UserStatus.AWAY
        assert user.status_note == "Dinas luar kota"
        assert (deleted, created) == (2, 0)
        remaining = _iurans(db_session, registered.id)
        assert [i.status for i in remaining] == [IuranStatus.PAID]

    def test_returning_to_active_backfills(self, db_session, service, registered):
        service.update_status(registered.id, "inactive", today=TODAY)

        _, deleted, created = service.update_status(registered.id, "active", today=TODAY)

        assert (deleted, created) == (0, 3)

    def test_status_change_between_inactive_states(self, service, registered):
        service.update_status(registered.id, "inactive", today=TODAY)
        _, deleted, created = service.update_status(registered.id, "away", today=TODAY)
        assert (deleted, created) == (0, 0)

    def test_invalid_status(self, service, registered):
        with pytest.raises(ValidationError):
            service.update_status(registered.id, "pindah")

    def test_soft_delete_keeps_paid_history(self, db_session, service, registered):
        db_session.add(
            Iuran(
                user_id=registered.id,
                period="2025-01",
                amount=Decimal("50000"),
                type=IuranType.REGULAR,
                status=IuranStatus.PAID,
            )
        )
        db_session.commit()

        deleted = service.soft_delete(registered.id)

        assert deleted == 3
        user = service.get(registered.id)
        assert user.is_deleted is True
        assert user.deleted_at is not None
        assert [i.period for i in _iurans(db_session, registered.id)] == ["2025-01"]

    def test_restore(self, db_session, service, registered):
        service.update_status(registered.id, "away", today=TODAY)
        service.soft_delete(registered.id)

        user, created = service.restore(registered.id, today=TODAY)

        assert user.is_deleted is False
        assert user.deleted_at is None
        assert user.status == UserStatus.ACTIVE
        assert created == 3

    def test_restore_requires_deleted(self, service, registered):
        with pytest.raises(ValidationError):
            service.restore(registered.id)

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.soft_delete(999)


class TestListUsers:
    def test_active_first_with_unpaid_periods(self, db_session, service, make_user):
        away = make_user("andi_away", status=UserStatus.AWAY)
        active = make_user("zaki_active")
        make_user("gone_user", is_deleted=True)
        service.iurans.generate_periodic(period="2025-08", user_ids=[active.id])
        service.iurans.generate_periodic(period="2025-09", user_ids=[active.id])

        entries, total = service.list_users()

        assert total == 2
        assert [e.user.id for e in entries] == [active.id, away.id]
        assert entries[0].unpaid_periods == ["2025-08", "2025-09"]
        assert entries[0].unpaid_count == 2

        entries, total = service.list_users(include_deleted=True, search="gone")
        assert total == 1
