"""Bulk user import and export through the "Data Pengguna" workbook.

Sheet layout:

    Email | Nama Pengguna | Peran | Alamat | No. Telepon

Rows are validated one by one. Rows whose email or username already exists
are skipped with a reason; the rest are created with the default import
password and get their dues back-filled like a normal registration.
"""

import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Any, Iterable, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.datavalidation import DataValidation
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rukun.config import get_settings
from rukun.models.user import Role, User
from rukun.services.errors import AppError, NotFoundError, ValidationError
from rukun.services.user_service import UserService

logger = logging.getLogger(__name__)

SHEET_NAME = "Data Pengguna"
INSTRUCTION_SHEET_NAME = "Instruksi"
HEADERS = ["Email", "Nama Pengguna", "Peran", "Alamat", "No. Telepon"]
COLUMN_WIDTHS = [30, 20, 15, 40, 18]
VALIDATED_ROWS = 1000

HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF4472C4")
HEADER_FONT = Font(bold=True, size=12)
INSTRUCTION_FILL = PatternFill(fill_type="solid", fgColor="FF70AD47")

ROLE_DESCRIPTIONS = {
    Role.ADMIN: "Administrator sistem",
    Role.RT: "Ketua RT",
    Role.RW: "Ketua RW",
    Role.BENDAHARA: "Bendahara",
    Role.SEKRETARIS: "Sekretaris",
    Role.SATPAM: "Satpam/Keamanan",
    Role.WARGA: "Warga biasa",
}


def _instructions() -> list[str]:
    roles = ", ".join(r.value for r in Role)
    password = get_settings().import_default_password
    return [
        "",
        "CARA PENGGUNAAN:",
        "1. Isi data pengguna pada sheet 'Data Pengguna'",
        "2. Email: Harus unik dan mengandung karakter @",
        "3. Nama Pengguna: Harus unik, tidak boleh sama dengan pengguna lain",
        f"4. Peran: Pilih dari dropdown ({roles})",
        "5. Alamat: Opsional, boleh dikosongkan",
        "6. No. Telepon: Format 10-15 digit angka (contoh: 081234567890)",
        f"7. Password akan otomatis di-set menjadi '{password}' untuk semua user",
        "",
        "CATATAN PENTING:",
        "- Jika email atau username sudah ada, user tersebut TIDAK akan dibuat ulang",
        "- Hapus baris contoh sebelum melakukan import",
        "- Sistem akan membuat iuran otomatis untuk user yang bukan admin",
        "",
        "DAFTAR PERAN:",
    ] + [f"- {role.value}: {text}" for role, text in ROLE_DESCRIPTIONS.items()]


@dataclass
class UserImportRow:
    row_number: int
    email: str
    username: str
    role: str
    address: str = ""
    phone_number: str = ""


@dataclass
class UserImportRowError:
    row: int
    email: str
    errors: list[str]


@dataclass
class UserImportResult:
    """Per-row outcome of a user import."""

    success: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[UserImportRowError] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Import selesai. Berhasil: {len(self.success)}, "
            f"Dilewati: {len(self.skipped)}, Error: {len(self.errors)}"
        )


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def validate_row(row: UserImportRow) -> list[str]:
    """Validation messages for a row, empty when the row is importable."""
    errors = []
    if not row.email:
        errors.append("Email wajib diisi")
    elif "@" not in row.email:
        errors.append("Format email tidak valid")
    if not row.username:
        errors.append("Nama pengguna wajib diisi")
    if not row.role:
        errors.append("Peran wajib diisi")
    elif row.role not in {r.value for r in Role}:
        errors.append(f"Peran tidak valid. Pilihan: {', '.join(r.value for r in Role)}")
    if row.phone_number and not (
        row.phone_number.isdigit() and 10 <= len(row.phone_number) <= 15
    ):
        errors.append("No. telepon harus 10-15 digit")
    return errors


def parse_users(content: bytes) -> list[UserImportRow]:
    """Rows of the "Data Pengguna" sheet; rows without email and username are skipped.

    Raises:
        ValidationError: If the file is not a workbook or lacks the sheet
    """
    try:
        workbook = load_workbook(BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ValidationError(f"File Excel tidak valid: {e}") from None
    if SHEET_NAME not in workbook.sheetnames:
        raise ValidationError(f"Sheet '{SHEET_NAME}' tidak ditemukan di file Excel")

    rows = []
    sheet = workbook[SHEET_NAME]
    for row_number, values in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cells = [_cell_text(v) for v in values] + [""] * (len(HEADERS) - len(values))
        email, username, role, address, phone_number = cells[: len(HEADERS)]
        if not email and not username:
            continue
        rows.append(
            UserImportRow(
                row_number=row_number,
                email=email.lower(),
                username=username,
                role=role.lower(),
                address=address,
                phone_number=phone_number,
            )
        )
    return rows


def _new_workbook() -> tuple[Workbook, Any]:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_NAME
    sheet.append(HEADERS)
    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
    for index, width in enumerate(COLUMN_WIDTHS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
    return workbook, sheet


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_user_template() -> bytes:
    """Blank import workbook with an example row, a role dropdown and instructions."""
    workbook, sheet = _new_workbook()
    example = ["contoh@email.com", "nama_pengguna", Role.WARGA.value, "Jl. Contoh No. 123"]
    sheet.append(example + ["081234567890"])

    roles = DataValidation(
        type="list",
        formula1='"{}"'.format(",".join(r.value for r in Role)),
        allow_blank=False,
        showErrorMessage=True,
        errorStyle="stop",
        errorTitle="Peran tidak valid",
        error="Silakan pilih peran dari dropdown yang tersedia",
    )
    roles.add(f"C2:C{VALIDATED_ROWS}")
    sheet.add_data_validation(roles)

    emails = DataValidation(
        type="custom",
        formula1='ISNUMBER(FIND("@",A2))',
        allow_blank=False,
        showErrorMessage=True,
        errorStyle="warning",
        errorTitle="Format Email",
        error="Email harus mengandung karakter @",
    )
    emails.add(f"A2:A{VALIDATED_ROWS}")
    sheet.add_data_validation(emails)

    instructions = workbook.create_sheet(INSTRUCTION_SHEET_NAME)
    instructions.column_dimensions["A"].width = 80
    instructions.append(["Panduan Penggunaan Template Import User"])
    instructions["A1"].font = Font(bold=True, size=14)
    instructions["A1"].fill = INSTRUCTION_FILL
    for line in _instructions():
        instructions.append([line])
        if line.endswith(":"):
            instructions.cell(row=instructions.max_row, column=1).font = Font(bold=True, size=12)
    return _to_bytes(workbook)


class UserSpreadsheetService:
    """Bulk creation and export of users."""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserService(db)

    def _skip_reasons(self, row: UserImportRow) -> list[str]:
        reasons = []
        if self.db.execute(select(User.id).where(func.lower(User.email) == row.email)).first():
            reasons.append("email sudah terdaftar")
        if self.db.execute(select(User.id).where(User.username == row.username)).first():
            reasons.append("username sudah terdaftar")
        return reasons

    def import_rows(
        self, rows: Iterable[UserImportRow], today: Optional[date] = None
    ) -> UserImportResult:
        """Create every valid, new user; each row is committed on its own."""
        result = UserImportResult()
        password = get_settings().import_default_password
        for row in rows:
            errors = validate_row(row)
            if errors:
                result.errors.append(UserImportRowError(row.row_number, row.email or "N/A", errors))
                continue

            reasons = self._skip_reasons(row)
            if reasons:
                result.skipped.append(
                    f"Baris {row.row_number} ({row.email}): {', '.join(reasons)}"
                )
                continue

            try:
                user = self.users.create_user(
                    email=row.email,
                    username=row.username,
                    password=password,
                    role=Role(row.role),
                    address=row.address,
                    phone_number=row.phone_number,
                )
                self.users.iurans.backfill_for_user(user, today)
            except AppError as e:
                self.db.rollback()
                result.errors.append(UserImportRowError(row.row_number, row.email, [e.message]))
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Import of user row %d (%s) failed", row.row_number, row.email)
                result.errors.append(UserImportRowError(row.row_number, row.email, [str(e)]))
                continue
            result.success.append(f"Baris {row.row_number} ({row.email}): berhasil dibuat")

        logger.info(result.message)
        return result

    def import_file(self, content: bytes, today: Optional[date] = None) -> UserImportResult:
        return self.import_rows(parse_users(content), today=today)

    def export(self, ids: Optional[Iterable[int]] = None) -> bytes:
        """Workbook of the selected users, or of every non-deleted user.

        Raises:
            NotFoundError: If no user matches
        """
        stmt = select(User).order_by(User.id)
        if ids:
            stmt = stmt.where(User.id.in_(list(ids)))
        else:
            stmt = stmt.where(User.is_deleted.is_(False))
        users = self.db.execute(stmt).scalars().all()
        if not users:
            raise NotFoundError("Tidak ada user yang ditemukan untuk di-export")

        workbook, sheet = _new_workbook()
        for user in users:
            sheet.append(
                [
                    user.email,
                    user.username,
                    user.role.value,
                    user.address or "",
                    user.phone_number or "",
                ]
            )
        logger.info("Exported %d users", len(users))
        return _to_bytes(workbook)


__all__ = [
    "UserSpreadsheetService",
    "UserImportRow",
    "UserImportResult",
    "build_user_template",
    "parse_users",
    "validate_row",
]
