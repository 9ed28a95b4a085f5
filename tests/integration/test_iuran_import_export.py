"""Integration tests for the iuran spreadsheet import and export."""

from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook
from sqlalchemy import select

from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.models.user import Role, User
from rukun.services.auth_service import verify_password
from rukun.services.errors import ValidationError
from rukun.services.iuran_spreadsheet import ImportRow, IuranSpreadsheetService

TODAY = date(2025, 3, 10)


def _row(row_number, name, address, start=None, payments=None):
    return ImportRow(
        row_number=row_number,
        no=row_number - 1,
        name=name,
        address=address,
        start=start,
        payments={p: Decimal(a) for p, a in (payments or {}).items()},
    )


def _user(db_session, username):
    return db_session.execute(select(User).where(User.username == username)).scalar_one()


def _iurans(db_session, user_id):
    return list(
        db_session.execute(
            select(Iuran).where(Iuran.user_id == user_id).order_by(Iuran.period)
        ).scalars()
    )


@pytest.fixture
def service(db_session):
    return IuranSpreadsheetService(db_session)


class TestImportRows:
    """Test the per-resident rebuild of iuran from sheet rows."""

    def test_creates_resident_and_rebuilds_range(self, db_session, service, admin):
        rows = [_row(2, "Tommy", "AX7 No. 27", "2025-01", {"2025-01": 50000, "2025-02": 50000})]

        result = service.import_rows(rows, imported_by=admin.id, today=TODAY)

        assert result.errors == []
        assert result.users_created == 1
        [processed] = result.processed
        assert (processed.username, processed.paid, processed.unpaid) == ("tommy", 2, 10)

        user = _user(db_session, "tommy")
        assert user.email == "tommy@warga.rt"
        assert user.role == Role.WARGA
        assert user.address == "AX7 No. 27"
        assert verify_password("password123", user.password_hash)

        records = _iurans(db_session, user.id)
        assert records[0].period == "2025-01"
        assert records[-1].period == "2025-12"
        paid = [r for r in records if r.status == IuranStatus.PAID]
        assert [r.period for r in paid] == ["2025-01", "2025-02"]
        assert all(r.is_imported for r in paid)
        assert all(r.confirmed_by_id == admin.id for r in paid)
        assert all(not r.is_imported for r in records if r.status == IuranStatus.UNPAID)

    def test_existing_resident_matched_case_insensitively(self, db_session, service, make_user):
        bram = make_user("bram")
        db_session.add(
            Iuran(
                user_id=bram.id,
                period="2025-02",
                amount=Decimal("50000"),
                type=IuranType.REGULAR,
                status=IuranStatus.UNPAID,
            )
        )
        db_session.commit()

        result = service.import_rows(
            [_row(2, "BRAM", "AX7 No. 31", "2025-02", {"2025-02": 50000})], today=TODAY
        )

        assert result.users_created == 0
        records = _iurans(db_session, bram.id)
        assert len([r for r in records if r.period == "2025-02"]) == 1
        assert records[0].status == IuranStatus.PAID

    def test_payments_before_start_extend_the_range(self, db_session, service):
        service.import_rows(
            [_row(2, "Tommy", "AX7 No. 27", "2025-02", {"2024-11": 50000})], today=TODAY
        )
        records = _iurans(db_session, _user(db_session, "tommy").id)
        assert records[0].period == "2024-11"
        assert len(records) == 14

    def test_missing_start_begins_at_current_month(self, db_session, service):
        result = service.import_rows([_row(2, "Tommy", "AX7 No. 27")], today=TODAY)
        assert result.processed[0].unpaid == 10

    def test_name_collision_folds_address(self, db_session, service):
        """Test same names at different addresses become different residents."""
        rows = [
            _row(2, "Tommy", "AX7 No. 27", "2025-01"),
            _row(3, "Tommy", "AX7 No. 31", "2025-01"),
        ]

        result = service.import_rows(rows, today=TODAY)

        assert [r.username for r in result.processed] == [
            "tommy_ax7_no_27",
            "tommy_ax7_no_31",
        ]
        assert result.users_created == 2

    def test_reimport_is_idempotent(self, db_session, service):
        rows = [_row(2, "Tommy", "AX7 No. 27", "2025-01", {"2025-01": 50000})]
        service.import_rows(rows, today=TODAY)

        result = service.import_rows(rows, today=TODAY)

        assert result.users_created == 0
        assert len(_iurans(db_session, _user(db_session, "tommy").id)) == 12

    def test_failing_row_reported_and_others_processed(self, db_session, service, make_user):
        squatter = make_user("tommy_lama")
        squatter.email = "tommy@warga.rt"
        db_session.commit()

        result = service.import_rows(
            [_row(2, "Tommy", "AX7 No. 27"), _row(3, "Bram", "AX7 No. 31")], today=TODAY
        )

        [error] = result.errors
        assert (error.row_number, error.name) == (2, "Tommy")
        assert [r.username for r in result.processed] == ["bram"]


class TestImportFile:
    def _workbook(self) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Data Iuran"
        sheet.append(["No", "Nama", "Alamat", "Start", "Jan-25", "Feb-25", date(2025, 3, 1)])
        sheet.append([1, "Siti Aminah", "AX7 No. 5", "Jan-25", 50000, "50.000", None])
        sheet.append([2, None, None, None, None, None, None])
        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def test_import_uploaded_workbook(self, db_session, service):
        result = service.import_file(self._workbook(), today=TODAY)

        [processed] = result.processed
        assert processed.username == "siti_aminah"
        assert processed.paid == 2

    def test_rejects_non_workbook(self, service):
        with pytest.raises(ValidationError):
            service.import_file(b"bukan excel")


class TestExport:
    def test_paid_cells_carry_amount(self, db_session, service, make_user, admin):
        budi = make_user("budi", address="AX7 No. 1")
        ani = make_user("ani", address="AX7 No. 2")
        for user, period, status in [
            (budi, "2025-01", IuranStatus.PAID),
            (budi, "2025-02", IuranStatus.UNPAID),
            (ani, "2025-02", IuranStatus.PAID),
        ]:
            db_session.add(
                Iuran(
                    user_id=user.id,
                    period=period,
                    amount=Decimal("50000"),
                    type=IuranType.REGULAR,
                    status=status,
                )
            )
        db_session.commit()

        content = service.export("2025-01", "2025-03")

        sheet = load_workbook(BytesIO(content))["Data Iuran"]
        rows = list(sheet.iter_rows(values_only=True))
        assert rows[0] == ("No", "Nama", "Alamat", "Start", "Jan-25", "Feb-25", "Mar-25")
        assert rows[1] == (1, "ani", "AX7 No. 2", "Feb-25", None, 50000, None)
        assert rows[2] == (2, "budi", "AX7 No. 1", "Jan-25", 50000, None, None)
        assert len(rows) == 3

    @pytest.mark.parametrize("start,end", [("2025-05", "2025-01"), ("2025-1", "2025-03")])
    def test_invalid_range(self, service, start, end):
        with pytest.raises(ValidationError):
            service.export(start, end)
