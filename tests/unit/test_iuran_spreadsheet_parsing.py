"""Unit tests for spreadsheet cell parsing and the import template."""

from datetime import date, datetime
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from rukun.services.errors import ValidationError
from rukun.services.iuran_spreadsheet import (
    INSTRUCTION_SHEET_NAME,
    SHEET_NAME,
    build_template,
    derive_username,
    header_to_period,
    parse_amount,
    parse_import,
    parse_start,
)


def _workbook_bytes(rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_NAME
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestCellParsing:
    """Test parsing of individual cells."""

    def test_derive_username(self):
        assert derive_username("  Budi   Santoso ") == "budi_santoso"

    def test_derive_username_with_address(self):
        """Test colliding names are disambiguated by address."""
        assert derive_username("Tommy", "AX7 No. 27") == "tommy_ax7_no_27"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Jan-21", "2021-01"),
            (datetime(2022, 3, 1), "2022-03"),
            (date(2020, 6, 1), "2020-06"),
            ("Nama", None),
            (None, None),
        ],
    )
    def test_header_to_period(self, value, expected):
        assert header_to_period(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Feb-22", "2022-02"),
            ("2021-07", "2021-07"),
            (datetime(2023, 5, 10), "2023-05"),
            ("", None),
            ("kemarin", None),
            (None, None),
        ],
    )
    def test_parse_start(self, value, expected):
        assert parse_start(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            (50000, Decimal("50000")),
            (50000.0, Decimal("50000.0")),
            ("50.000", Decimal("50000")),
            ("50,000", Decimal("50000")),
            ("Rp 75.000", Decimal("75000")),
            ("12,5", Decimal("12.5")),
        ],
    )
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [None, "", 0, -5, "lunas", True])
    def test_parse_amount_blank_or_invalid(self, value):
        assert parse_amount(value) is None


class TestParseImport:
    """Test workbook parsing."""

    def test_rows_and_payments(self):
        content = _workbook_bytes(
            [
                ["No", "Nama", "Alamat", "Start", "Jan-25", "Feb-25", "Mar-25"],
                [1, "Tommy", "AX7 No. 27", "Jan-25", 50000, None, "50.000"],
                [2, "Bram", "AX7 No. 31", None, None, None, None],
                [None, None, None, None, None, None, None],
            ]
        )

        rows = parse_import(content)

        assert len(rows) == 2
        tommy, bram = rows
        assert tommy.row_number == 2
        assert tommy.start == "2025-01"
        assert tommy.payments == {"2025-01": Decimal("50000"), "2025-03": Decimal("50000")}
        assert bram.payments == {}
        assert bram.start is None

    def test_not_a_workbook(self):
        with pytest.raises(ValidationError):
            parse_import(b"definitely not xlsx")


class TestTemplate:
    """Test the blank import template."""

    def test_template_layout(self):
        workbook = load_workbook(BytesIO(build_template()))

        assert workbook.sheetnames == [SHEET_NAME, INSTRUCTION_SHEET_NAME]
        sheet = workbook[SHEET_NAME]
        header = [c.value for c in sheet[1]]
        assert header[:4] == ["No", "Nama", "Alamat", "Start"]
        assert header[4] == "Jun-20"
        assert header[-1] == "Dec-30"

    def test_template_examples_parse(self):
        """Test the example rows of the template are importable as-is."""
        rows = parse_import(build_template())

        assert [r.name for r in rows] == ["Tommy", "Bram"]
        assert sorted(rows[0].payments) == ["2021-02", "2021-03"]
        assert rows[1].start == "2021-01"
