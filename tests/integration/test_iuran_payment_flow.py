"""Integration tests for the iuran payment workflow.

Covers resident submission, officer confirmation/rejection, officer-recorded
offline payments and the queries built on top of them.
"""

from datetime import date
from decimal import Decimal

import pytest

from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.services.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rukun.services.iuran_service import IuranService


@pytest.fixture
def service(db_session, notifier):
    return IuranService(db_session, notifier=notifier)


@pytest.fixture
def unpaid(db_session, warga):
    iuran = Iuran(
        user_id=warga.id,
        period="2025-08",
        amount=Decimal("50000"),
        type=IuranType.REGULAR,
        status=IuranStatus.UNPAID,
    )
    db_session.add(iuran)
    db_session.commit()
    return iuran


class TestSubmitPayment:
    """Test resident proof-of-payment submission."""

    def test_unpaid_becomes_pending(self, service, unpaid, warga):
        iuran = service.submit_payment(unpaid.id, warga.id, "/uploads/proof.jpg")

        assert iuran.status == IuranStatus.PENDING
        assert iuran.proof_image_url == "/uploads/proof.jpg"
        assert iuran.submitted_at is not None

    def test_proof_required(self, service, unpaid, warga):
        with pytest.raises(ValidationError):
            service.submit_payment(unpaid.id, warga.id, "")

    def test_other_residents_iuran(self, service, unpaid, make_user):
        other = make_user()
        with pytest.raises(UnauthorizedError):
            service.submit_payment(unpaid.id, other.id, "/uploads/proof.jpg")

    def test_unknown_iuran(self, service, warga):
        with pytest.raises(NotFoundError):
            service.submit_payment(999, warga.id, "/uploads/proof.jpg")

    @pytest.mark.parametrize("status", [IuranStatus.PAID, IuranStatus.PENDING])
    def test_paid_or_pending_conflict(self, db_session, service, unpaid, warga, status):
        unpaid.status = status
        db_session.commit()
        with pytest.raises(ConflictError):
            service.submit_payment(unpaid.id, warga.id, "/uploads/proof.jpg")

    def test_rejected_can_resubmit_and_old_proof_dropped(
        self, db_session, notifier, storage, unpaid, warga
    ):
        """Test resubmission after rejection replaces the stored proof."""
        old_url = storage.save(b"old", "old.jpg")
        new_url = storage.save(b"new", "new.jpg")
        unpaid.status = IuranStatus.REJECTED
        unpaid.proof_image_url = old_url
        db_session.commit()

        iuran = IuranService(db_session, notifier=notifier, storage=storage).submit_payment(
            unpaid.id, warga.id, new_url
        )

        assert iuran.status == IuranStatus.PENDING
        assert storage.delete(old_url) is False
        assert storage.delete(new_url) is True


class TestSubmitNew:
    def test_creates_pending_regular(self, service, warga):
        iuran = service.submit_new(warga.id, "2025-10", "/uploads/proof.jpg")

        assert iuran.status == IuranStatus.PENDING
        assert iuran.type == IuranType.REGULAR
        assert iuran.amount == Decimal("50000")

    def test_existing_regular_period_conflict(self, service, unpaid, warga):
        with pytest.raises(ConflictError):
            service.submit_new(warga.id, "2025-08", "/uploads/proof.jpg")

    def test_duplicate_allowed_when_uniqueness_off(self, service, unpaid, warga, monkeypatch):
        from rukun.config import reset_settings

        monkeypatch.setenv("DUES_UNIQUE_REGULAR_PERIOD", "false")
        reset_settings()

        iuran = service.submit_new(warga.id, "2025-08", "/uploads/proof.jpg")

        assert iuran.id != unpaid.id

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.submit_new(999, "2025-10", "/uploads/proof.jpg")


class TestUpdateStatus:
    """Test officer confirmation and rejection."""

    def test_confirm_notifies_owner(self, service, push_client, unpaid, warga, bendahara):
        service.submit_payment(unpaid.id, warga.id, "/uploads/proof.jpg")

        iuran = service.update_status(unpaid.id, bendahara.id, "paid")

        assert iuran.status == IuranStatus.PAID
        assert iuran.confirmed_by_id == bendahara.id
        assert iuran.confirmed_at is not None
        [message] = push_client.of_type("iuran_status_update")
        assert message["to"] == f"ExponentPushToken[{warga.username}]"
        assert message["data"]["status"] == "paid"

    def test_reject_with_note(self, service, push_client, unpaid, bendahara):
        iuran = service.update_status(unpaid.id, bendahara.id, "rejected", "Nominal kurang")

        assert iuran.status == IuranStatus.REJECTED
        assert iuran.note == "Nominal kurang"
        assert push_client.messages[0]["data"]["note"] == "Nominal kurang"

    @pytest.mark.parametrize("status", ["pending", "unpaid", "lunas"])
    def test_only_paid_or_rejected(self, service, unpaid, bendahara, status):
        with pytest.raises(ValidationError):
            service.update_status(unpaid.id, bendahara.id, status)

    def test_notification_failure_keeps_confirmation(
        self, db_session, failing_push_client, unpaid, bendahara
    ):
        """Test a push outage does not undo the status change."""
        from rukun.services.notification_service import NotificationService

        notifier = NotificationService(db_session, client=failing_push_client)
        iuran = IuranService(db_session, notifier=notifier).update_status(
            unpaid.id, bendahara.id, "paid"
        )

        db_session.expire_all()
        assert db_session.get(Iuran, iuran.id).status == IuranStatus.PAID


class TestRecordPayment:
    """Test bulk recording of offline payments."""

    def _generate(self, db_session, user, periods):
        service = IuranService(db_session)
        for period in periods:
            service.generate_periodic(period=period, user_ids=[user.id])

    def test_partial_success(self, db_session, service, push_client, warga, bendahara):
        """Test periods without an unpaid record are reported, the rest recorded."""
        self._generate(db_session, warga, ["2025-01", "2025-02"])

        result = service.record_payment(
            user_id=warga.id,
            amount=Decimal("50000"),
            periods=["2025-01", "2025-02", "2025-03", "bulan-lalu"],
            recorded_by=bendahara.id,
            payment_date=date(2025, 3, 5),
            method="cash",
            note="Bayar di pos ronda",
        )

        assert result.success == 2
        assert result.failed == 2
        assert result.errors == [
            "Period 2025-03: No unpaid iuran found",
            "Period bulan-lalu: invalid period",
        ]
        for iuran in result.updated:
            assert iuran.status == IuranStatus.PAID
            assert iuran.payment_method == "cash"
            assert iuran.recorded_by_id == bendahara.id
            assert iuran.payment_date.date() == date(2025, 3, 5)

        [message] = push_client.of_type("payment_recorded")
        assert message["data"]["periods"] == "2025-01, 2025-02"
        assert message["data"]["amount"] == "50000"
        assert message["data"]["total"] == "100000"

    def test_already_paid_period_fails(self, db_session, service, warga, bendahara):
        self._generate(db_session, warga, ["2025-01"])
        service.record_payment(warga.id, 50000, ["2025-01"], recorded_by=bendahara.id)

        result = service.record_payment(warga.id, 50000, ["2025-01"], recorded_by=bendahara.id)

        assert result.success == 0
        assert result.failed == 1

    def test_custom_levy_recorded(self, db_session, service, warga, bendahara):
        service.generate_custom("2025-08", 25000, "Iuran 17 Agustus", user_ids=[warga.id])

        result = service.record_payment(
            warga.id, 25000, ["2025-08"], recorded_by=bendahara.id, method="cash"
        )

        assert result.success == 1
        [iuran] = result.updated
        assert iuran.type == IuranType.CUSTOM
        assert iuran.status == IuranStatus.PAID
        assert iuran.payment_method == "cash"
        assert iuran.recorded_by_id == bendahara.id

    def test_regular_matched_before_custom(self, db_session, service, warga, bendahara):
        service.generate_custom("2025-08", 25000, "Iuran 17 Agustus", user_ids=[warga.id])
        self._generate(db_session, warga, ["2025-08"])

        result = service.record_payment(warga.id, 50000, ["2025-08"], recorded_by=bendahara.id)

        assert result.updated[0].type == IuranType.REGULAR
        result = service.record_payment(warga.id, 25000, ["2025-08"], recorded_by=bendahara.id)
        assert result.updated[0].type == IuranType.CUSTOM

    def test_empty_periods(self, service, warga, bendahara):
        with pytest.raises(ValidationError):
            service.record_payment(warga.id, 50000, [], recorded_by=bendahara.id)

    def test_unknown_user(self, service, bendahara):
        with pytest.raises(NotFoundError):
            service.record_payment(999, 50000, ["2025-01"], recorded_by=bendahara.id)


class TestQueries:
    """Test summaries, listings, history and reminders."""

    def test_status_summary_zero_filled(self, db_session, service, make_user, admin):
        users = [make_user() for _ in range(3)]
        service.generate_periodic(period="2025-08")
        paid = service.history_by_period("2025-08")[0]
        service.update_status(paid.id, admin.id, "paid")
        service.submit_payment(
            service.my_history(users[1].id)[0].id, users[1].id, "/uploads/proof.jpg"
        )

        summary = service.status_summary("2025-08")

        assert summary == {"paid": 1, "pending": 1, "rejected": 0, "unpaid": 1}
        assert service.status_summary("2030-01") == {
            "paid": 0,
            "pending": 0,
            "rejected": 0,
            "unpaid": 0,
        }

    def test_list_filters_and_pagination(self, service, make_user):
        for _ in range(3):
            make_user()
        service.generate_periodic(period="2025-08")
        service.generate_periodic(period="2025-09")

        items, total = service.list_iurans(period="2025-09", statuses="unpaid,pending", limit=2)
        assert total == 3
        assert len(items) == 2

        items, total = service.list_iurans(search="2025-0", page=2, limit=5)
        assert total == 6
        assert len(items) == 1

    def test_list_invalid_status(self, service):
        with pytest.raises(ValidationError):
            service.list_iurans(statuses="lunas")

    def test_my_history_latest_first(self, service, warga):
        for period in ("2024-12", "2025-02", "2025-01"):
            service.generate_periodic(period=period)

        assert [i.period for i in service.my_history(warga.id)] == [
            "2025-02",
            "2025-01",
            "2024-12",
        ]
        assert [i.period for i in service.my_history(warga.id, year=2024)] == ["2024-12"]

    def test_due_reminders_only_unpaid(self, service, push_client, make_user, admin):
        late = make_user()
        settled = make_user()
        service.generate_periodic(period="2025-08")
        settled_iuran = service.my_history(settled.id)[0]
        service.update_status(settled_iuran.id, admin.id, "paid")
        push_client.messages.clear()

        reminded = service.send_due_reminders("2025-08")

        assert reminded == 1
        [message] = push_client.of_type("jatuh_tempo_reminder")
        assert message["to"] == f"ExponentPushToken[{late.username}]"
