"""Integration tests for iuran generation and back-fill."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.models.user import Role, UserStatus
from rukun.services.errors import ValidationError
from rukun.services.iuran_service import IuranService


def _iurans(db_session, **filters):
    stmt = select(Iuran)
    for name, value in filters.items():
        stmt = stmt.where(getattr(Iuran, name) == value)
    return list(db_session.execute(stmt.order_by(Iuran.id)).scalars())


class TestGeneratePeriodic:
    """Test regular monthly generation."""

    def test_creates_one_unpaid_record_per_eligible_resident(
        self, db_session, notifier, push_client, make_user, admin
    ):
        first = make_user()
        second = make_user()
        make_user(status=UserStatus.AWAY)
        make_user(is_deleted=True)

        result = IuranService(db_session, notifier=notifier).generate_periodic(period="2025-09")

        assert result.created == 2
        assert result.skipped == 0
        records = _iurans(db_session, period="2025-09")
        assert {r.user_id for r in records} == {first.id, second.id}
        assert all(r.status == IuranStatus.UNPAID for r in records)
        assert all(r.type == IuranType.REGULAR for r in records)
        assert all(r.amount == Decimal("50000") for r in records)

    def test_notifies_only_residents_that_received_a_record(
        self, db_session, notifier, push_client, make_user
    ):
        existing = make_user()
        fresh = make_user()
        IuranService(db_session).generate_periodic(period="2025-09", user_ids=[existing.id])

        IuranService(db_session, notifier=notifier).generate_periodic(period="2025-09")

        sent = push_client.of_type("new_iuran")
        assert [m["to"] for m in sent] == [f"ExponentPushToken[{fresh.username}]"]

    def test_idempotent(self, db_session, make_user):
        """Test a second run for the same period creates nothing."""
        make_user()
        make_user()
        service = IuranService(db_session)

        service.generate_periodic(period="2025-09")
        again = service.generate_periodic(period="2025-09")

        assert again.created == 0
        assert again.skipped == 2
        assert len(_iurans(db_session, period="2025-09")) == 2

    def test_amount_override(self, db_session, make_user):
        make_user()
        IuranService(db_session).generate_periodic(period="2025-09", amount="75000")
        assert _iurans(db_session)[0].amount == Decimal("75000")

    def test_include_inactive_setting(self, db_session, make_user, monkeypatch):
        from rukun.config import reset_settings

        make_user()
        make_user(status=UserStatus.INACTIVE)
        monkeypatch.setenv("GENERATION_INCLUDE_INACTIVE", "true")
        reset_settings()

        result = IuranService(db_session).generate_periodic(period="2025-09")

        assert result.created == 2

    @pytest.mark.parametrize("period,amount", [("2025-13", None), ("2025-09", 0)])
    def test_invalid_input(self, db_session, make_user, period, amount):
        make_user()
        with pytest.raises(ValidationError):
            IuranService(db_session).generate_periodic(period=period, amount=amount)


class TestGenerateYearly:
    def test_twelve_months_per_resident(self, db_session, notifier, push_client, make_user):
        user = make_user()
        service = IuranService(db_session, notifier=notifier)
        service.generate_periodic(period="2026-03")

        result = service.generate_yearly(2026)

        assert result.created == 11
        assert result.skipped == 1
        assert result.users[0].username == user.username
        assert len(_iurans(db_session, user_id=user.id)) == 12
        assert len(push_client.of_type("new_yearly_iuran")) == 1

    def test_invalid_year(self, db_session):
        with pytest.raises(ValidationError):
            IuranService(db_session).generate_yearly(99999)


class TestGenerateCustom:
    def test_custom_levy_never_deduplicated(self, db_session, notifier, push_client, make_user):
        """Test running the same custom generation twice leaves two records."""
        user = make_user()
        service = IuranService(db_session, notifier=notifier)

        service.generate_custom("2025-08", 25000, "Iuran 17 Agustus")
        service.generate_custom("2025-08", 25000, "Iuran 17 Agustus")

        records = _iurans(db_session, user_id=user.id, type=IuranType.CUSTOM)
        assert len(records) == 2
        assert records[0].description == "Iuran 17 Agustus"
        assert len(push_client.of_type("custom_iuran")) == 2

    def test_custom_alongside_regular(self, db_session, make_user):
        user = make_user()
        service = IuranService(db_session)
        service.generate_periodic(period="2025-08")
        service.generate_custom("2025-08", 25000, "Iuran 17 Agustus")

        assert len(_iurans(db_session, user_id=user.id, period="2025-08")) == 2

    def test_description_required(self, db_session, make_user):
        make_user()
        with pytest.raises(ValidationError):
            IuranService(db_session).generate_custom("2025-08", 25000, "  ")


class TestBackfill:
    """Test dues created on registration, restore and reactivation."""

    def test_backfill_through_december(self, db_session, make_user):
        user = make_user()

        created = IuranService(db_session).backfill_for_user(user, today=date(2025, 10, 5))

        assert created == 3
        assert [r.period for r in _iurans(db_session, user_id=user.id)] == [
            "2025-10",
            "2025-11",
            "2025-12",
        ]

    def test_backfill_skips_existing_regular(self, db_session, make_user):
        user = make_user()
        service = IuranService(db_session)
        service.generate_periodic(period="2025-11")

        assert service.backfill_for_user(user, today=date(2025, 10, 5)) == 2

    def test_admins_and_inactive_never_backfilled(self, db_session, make_user):
        service = IuranService(db_session)
        admin = make_user(role=Role.ADMIN)
        away = make_user(status=UserStatus.AWAY)

        assert service.backfill_for_user(admin, today=date(2025, 10, 5)) == 0
        assert service.backfill_for_user(away, today=date(2025, 10, 5)) == 0
        assert _iurans(db_session) == []
