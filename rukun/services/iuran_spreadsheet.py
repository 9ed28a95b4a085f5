"""Iuran spreadsheet import, export and blank template.

Sheet "Data Iuran" layout:

    No | Nama | Alamat | Start | Jan-21 | Feb-21 | ...

Month headers are "MMM-YY" labels or real dates. A positive number under a
month column means the resident paid that amount for that period.

Import is destructive per resident: every iuran inside the resident's range
is deleted and regenerated from the sheet.
"""

import logging
import re
import zipfile
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rukun.config import get_settings
from rukun.models import utcnow
from rukun.models.iuran import Iuran, IuranStatus, IuranType
from rukun.models.user import Role, User
from rukun.services.errors import AppError, ValidationError
from rukun.services.period_service import (
    current_period,
    dues_amount,
    format_period,
    label_to_period,
    parse_period,
    period_to_label,
    periods_between,
)
from rukun.services.slug import generate_slug
from rukun.services.user_service import UserService

logger = logging.getLogger(__name__)

SHEET_NAME = "Data Iuran"
INSTRUCTION_SHEET_NAME = "Instruksi"
BASE_HEADERS = ["No", "Nama", "Alamat", "Start"]
FIRST_MONTH_COLUMN = len(BASE_HEADERS) + 1

TEMPLATE_START = (2020, 6)
TEMPLATE_END = (2030, 12)

PAID_FILL = PatternFill(fill_type="solid", fgColor="FFC6EFCE")
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF000000")
HEADER_FONT = Font(bold=True, size=11, color="FFFFFFFF")

TEMPLATE_INSTRUCTIONS = [
    "",
    "CARA PENGGUNAAN:",
    "1. Isi data iuran pada sheet 'Data Iuran'",
    "2. No: Nomor urut (untuk referensi saja)",
    "3. Nama: Nama warga (pencocokan tidak membedakan huruf besar/kecil)",
    "4. Alamat: Alamat warga (contoh: AX7 No. 27)",
    "5. Start: Bulan mulai tinggal/bayar iuran (format: Jan-21, Feb-22, dst)",
    "6. Kolom bulan (Jun-20, Jul-20, dst): Isi nominal jika sudah bayar, kosongkan jika belum",
    "",
    "ATURAN IMPORT:",
    "- Warga yang sudah ada: seluruh data iuran dalam rentang bulan dibuat ulang",
    "- Warga yang belum ada: dibuat user baru dengan role warga dan password default",
    "- Nama yang sama dengan alamat berbeda dianggap warga yang berbeda",
    "- Kolom bulan yang terisi menjadi 'paid', kolom kosong menjadi 'unpaid'",
    "",
    "CATATAN:",
    "- Hapus baris contoh sebelum import",
]

_WHITESPACE_RE = re.compile(r"\s+")
_NON_NUMERIC_RE = re.compile(r"[^\d.,]")


@dataclass
class ImportRow:
    """One resident row of the import sheet."""

    row_number: int
    no: int
    name: str
    address: str
    start: Optional[str]
    payments: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class ImportRowResult:
    row_number: int
    name: str
    username: str
    user_created: bool
    paid: int
    unpaid: int


@dataclass
class ImportRowError:
    row_number: int
    name: str
    error: str


@dataclass
class ImportResult:
    processed: list[ImportRowResult] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)

    @property
    def users_created(self) -> int:
        return sum(1 for r in self.processed if r.user_created)


def derive_username(name: str, address: Optional[str] = None) -> str:
    """Username derived from a sheet name: lowercase, whitespace -> '_'.

    With an address the address is folded in, e.g. ("Tommy", "AX7 No. 27")
    -> "tommy_ax7_no_27".
    """
    username = _WHITESPACE_RE.sub("_", (name or "").strip().lower())
    if address:
        username = f"{username}_{generate_slug(address).replace('-', '_')}"
    return username


def header_to_period(value: Any) -> Optional[str]:
    """Period of a month header cell, or None for other headers."""
    if isinstance(value, (datetime, date)):
        return format_period(value.year, value.month)
    if value is None:
        return None
    return label_to_period(str(value))


def parse_start(value: Any) -> Optional[str]:
    """Period of the Start cell: a date, "Jan-21" or "2021-01"."""
    if isinstance(value, (datetime, date)):
        return format_period(value.year, value.month)
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    period = label_to_period(text)
    if period:
        return period
    try:
        parse_period(text)
    except ValueError:
        return None
    return text


def parse_amount(value: Any) -> Optional[Decimal]:
    """Positive amount of a payment cell, None for blank or invalid cells."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        text = _NON_NUMERIC_RE.sub("", str(value))
        # "50.000" and "50,000" are thousands separators
        if re.fullmatch(r"\d{1,3}([.,]\d{3})+", text):
            text = text.replace(".", "").replace(",", "")
        else:
            text = text.replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _load_sheet(content: bytes):
    try:
        workbook = load_workbook(BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ValidationError(f"File Excel tidak valid: {e}") from None
    if SHEET_NAME in workbook.sheetnames:
        return workbook[SHEET_NAME]
    if not workbook.worksheets:
        raise ValidationError(f"Worksheet '{SHEET_NAME}' tidak ditemukan")
    return workbook.worksheets[0]


def parse_import(content: bytes) -> list[ImportRow]:
    """Parse an uploaded workbook into resident rows.

    Raises:
        ValidationError: If the file is not a readable workbook
    """
    sheet = _load_sheet(content)
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        raise ValidationError("Sheet kosong")

    month_columns: dict[int, str] = {}
    for index, value in enumerate(header):
        if index < len(BASE_HEADERS):
            continue
        period = header_to_period(value)
        if period:
            month_columns[index] = period
    logger.debug("Import sheet has %d month columns", len(month_columns))

    parsed = []
    for row_number, values in enumerate(rows, start=2):
        width = max(len(header), len(BASE_HEADERS))
        values = list(values) + [None] * (width - len(values))
        name = str(values[1] or "").strip()
        if not name:
            continue
        payments: dict[str, Decimal] = {}
        for index, period in month_columns.items():
            amount = parse_amount(values[index])
            if amount is not None:
                payments[period] = amount
        try:
            no = int(values[0])
        except (TypeError, ValueError):
            no = row_number - 1
        parsed.append(
            ImportRow(
                row_number=row_number,
                no=no,
                name=name,
                address=str(values[2] or "").strip(),
                start=parse_start(values[3]),
                payments=payments,
            )
        )
    return parsed


def _style_header(sheet) -> None:
    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _set_widths(sheet, month_count: int) -> None:
    for index, width in enumerate((6, 20, 15, 10), start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
    for offset in range(month_count):
        sheet.column_dimensions[get_column_letter(FIRST_MONTH_COLUMN + offset)].width = 10


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_template() -> bytes:
    """Blank import workbook with two example rows and an instruction sheet."""
    periods = periods_between(*TEMPLATE_START, *TEMPLATE_END)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_NAME
    sheet.append(BASE_HEADERS + [period_to_label(p) for p in periods])
    _style_header(sheet)
    _set_widths(sheet, len(periods))

    examples = [
        (1, "Tommy", "AX7 No. 27", "Jan-21", ["2021-02", "2021-03"]),
        (2, "Bram", "AX7 No. 31", "Jan-21", ["2021-01", "2021-02", "2021-03"]),
    ]
    for no, name, address, start, paid in examples:
        row = [no, name, address, start] + [None] * len(periods)
        for period in paid:
            row[len(BASE_HEADERS) + periods.index(period)] = int(dues_amount())
        sheet.append(row)

    instructions = workbook.create_sheet(INSTRUCTION_SHEET_NAME)
    instructions.column_dimensions["A"].width = 100
    instructions.append(["Panduan Import Iuran"])
    instructions["A1"].font = Font(bold=True, size=14)
    for line in TEMPLATE_INSTRUCTIONS:
        instructions.append([line])
        if line.endswith(":"):
            instructions.cell(row=instructions.max_row, column=1).font = Font(bold=True, size=12)
    return _to_bytes(workbook)


class IuranSpreadsheetService:
    """Import and export of iuran spreadsheets."""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserService(db)

    def _find_user(self, row: ImportRow, username: str, folded: bool) -> Optional[User]:
        user = self.db.execute(
            select(User).where(func.lower(User.username) == username)
        ).scalar_one_or_none()
        if user is not None or not folded:
            return user
        # Residents registered before the collision carry the plain name
        base = derive_username(row.name)
        return self.db.execute(
            select(User).where(
                func.lower(User.username) == base,
                func.lower(User.address) == row.address.lower(),
            )
        ).scalar_one_or_none()

    def _import_row(
        self, row: ImportRow, folded: bool, imported_by: Optional[int], today: date
    ) -> ImportRowResult:
        username = derive_username(row.name, row.address if folded else None)
        user = self._find_user(row, username, folded)
        user_created = False
        if user is None:
            settings = get_settings()
            user = self.users.create_user(
                email=f"{username}@{settings.import_email_domain}",
                username=username,
                password=settings.import_default_password,
                role=Role.WARGA,
                address=row.address or None,
            )
            user_created = True

        candidates = list(row.payments)
        if row.start:
            candidates.append(row.start)
        start = min(candidates) if candidates else current_period(today)
        end = max([format_period(today.year, 12)] + list(row.payments))
        periods = periods_between(*parse_period(start), *parse_period(end))

        self.db.execute(
            delete(Iuran).where(Iuran.user_id == user.id, Iuran.period.in_(periods))
        )

        now = utcnow()
        amount = dues_amount()
        paid = unpaid = 0
        for period in periods:
            payment = row.payments.get(period)
            if payment is not None:
                self.db.add(
                    Iuran(
                        user_id=user.id,
                        period=period,
                        amount=payment,
                        type=IuranType.REGULAR,
                        status=IuranStatus.PAID,
                        is_imported=True,
                        confirmed_at=now,
                        confirmed_by_id=imported_by,
                        recorded_by_id=imported_by,
                    )
                )
                paid += 1
            else:
                self.db.add(
                    Iuran(
                        user_id=user.id,
                        period=period,
                        amount=amount,
                        type=IuranType.REGULAR,
                        status=IuranStatus.UNPAID,
                    )
                )
                unpaid += 1
        self.db.commit()
        return ImportRowResult(
            row_number=row.row_number,
            name=row.name,
            username=user.username,
            user_created=user_created,
            paid=paid,
            unpaid=unpaid,
        )

    def import_rows(
        self,
        rows: list[ImportRow],
        imported_by: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ImportResult:
        """Rebuild the iuran of every resident in the sheet.

        Each row is committed on its own; a failing row is rolled back,
        reported and skipped.
        """
        today = today or date.today()
        addresses: dict[str, set[str]] = defaultdict(set)
        for row in rows:
            addresses[derive_username(row.name)].add(row.address.lower())
        colliding = {name for name, found in addresses.items() if len(found) >= 2}

        result = ImportResult()
        for row in rows:
            folded = derive_username(row.name) in colliding
            try:
                result.processed.append(self._import_row(row, folded, imported_by, today))
            except AppError as e:
                self.db.rollback()
                result.errors.append(ImportRowError(row.row_number, row.name, e.message))
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Import of row %d (%s) failed", row.row_number, row.name)
                result.errors.append(ImportRowError(row.row_number, row.name, str(e)))

        logger.info(
            "Iuran import: %d rows processed, %d users created, %d errors",
            len(result.processed),
            result.users_created,
            len(result.errors),
        )
        return result

    def import_file(
        self, content: bytes, imported_by: Optional[int] = None, today: Optional[date] = None
    ) -> ImportResult:
        return self.import_rows(parse_import(content), imported_by=imported_by, today=today)

    def export(self, start_period: str, end_period: str) -> bytes:
        """Workbook in the import layout; paid cells carry the amount, filled green.

        Raises:
            ValidationError: On malformed periods or a start after the end
        """
        try:
            periods = periods_between(*parse_period(start_period), *parse_period(end_period))
        except ValueError as e:
            raise ValidationError(str(e)) from None
        if not periods:
            raise ValidationError("start period must not be after end period")

        users = (
            self.db.execute(
                select(User)
                .where(User.role != Role.ADMIN, User.is_deleted.is_(False))
                .order_by(User.username)
            )
            .scalars()
            .all()
        )
        paid_rows = self.db.execute(
            select(Iuran.user_id, Iuran.period, func.sum(Iuran.amount))
            .where(
                Iuran.type == IuranType.REGULAR,
                Iuran.status == IuranStatus.PAID,
                Iuran.period.in_(periods),
            )
            .group_by(Iuran.user_id, Iuran.period)
        ).all()
        paid = {(user_id, period): Decimal(str(total)) for user_id, period, total in paid_rows}
        first_periods = dict(
            self.db.execute(
                select(Iuran.user_id, func.min(Iuran.period))
                .where(Iuran.type == IuranType.REGULAR)
                .group_by(Iuran.user_id)
            ).all()
        )

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_NAME
        sheet.append(BASE_HEADERS + [period_to_label(p) for p in periods])
        _style_header(sheet)
        _set_widths(sheet, len(periods))

        for no, user in enumerate(users, start=1):
            first = first_periods.get(user.id)
            sheet.append(
                [no, user.username, user.address or "", period_to_label(first) if first else ""]
            )
            row_index = sheet.max_row
            for offset, period in enumerate(periods):
                amount = paid.get((user.id, period))
                if amount is None:
                    continue
                cell = sheet.cell(row=row_index, column=FIRST_MONTH_COLUMN + offset)
                cell.value = int(amount) if amount == amount.to_integral_value() else float(amount)
                cell.fill = PAID_FILL
                cell.number_format = "#,##0"

        logger.info("Exported iuran %s..%s for %d residents", start_period, end_period, len(users))
        return _to_bytes(workbook)


__all__ = [
    "IuranSpreadsheetService",
    "ImportRow",
    "ImportResult",
    "parse_import",
    "build_template",
    "derive_username",
    "header_to_period",
    "parse_start",
    "parse_amount",
]
