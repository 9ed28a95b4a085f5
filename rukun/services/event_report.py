"""Excel report of an event: expenses grouped by category, then totals.

Layout of sheet "Laporan Event":

    KAT | ITEM | BIAYA | SUB TOTAL | KET

One block per non-empty category (HIBURAN, LOMBA, KONSUMSI, LAINNYA) with the
category and subtotal cells merged over the block, followed by the
TOTAL PENGELUARAN, TOTAL SUMBANGAN and DANA KAS rows.
"""

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from rukun.models.event import Event, ExpenseCategory

SHEET_NAME = "Laporan Event"
HEADERS = ["KAT", "ITEM", "BIAYA", "SUB TOTAL", "KET"]
COLUMN_WIDTHS = {"A": 15, "B": 40, "C": 20, "D": 20, "E": 30}

CATEGORY_ORDER = [
    ExpenseCategory.HIBURAN,
    ExpenseCategory.LOMBA,
    ExpenseCategory.KONSUMSI,
    ExpenseCategory.LAINNYA,
]
CATEGORY_COLORS = {
    ExpenseCategory.HIBURAN: "FFADD8E6",
    ExpenseCategory.LOMBA: "FFFFC0CB",
    ExpenseCategory.KONSUMSI: "FFCCFFCC",
    ExpenseCategory.LAINNYA: "FFFFFFE0",
}
HEADER_COLOR = "FFFFFF00"
TOTAL_COLOR = "FFFFFFFF"
SUMMARY_COLOR = "FFADD8E6"
MONEY_FORMAT = "#,##0"

_THIN = Side(style="thin")
BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)


def _fill(color: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=color)


def group_expenses(event: Event) -> list[tuple[ExpenseCategory, list[tuple[str, int | float]]]]:
    """(category, [(description, amount)]) for categories that have expenses."""
    grouped: dict[ExpenseCategory, list] = {category: [] for category in CATEGORY_ORDER}
    for expense in event.expenses:
        category = expense.category or ExpenseCategory.LAINNYA
        grouped[ExpenseCategory(category)].append((expense.description, _number(expense.amount)))
    return [(category, grouped[category]) for category in CATEGORY_ORDER if grouped[category]]


def _number(value) -> int | float:
    """Excel-friendly number for a Decimal amount."""
    return int(value) if value == int(value) else float(value)


def _style_total_row(sheet, row: int, color: str) -> None:
    for column in range(1, len(HEADERS) + 1):
        cell = sheet.cell(row=row, column=column)
        cell.font = Font(bold=True, size=12)
        cell.fill = _fill(color)
        cell.border = BORDER
        if column in (3, 4):
            cell.number_format = MONEY_FORMAT
            cell.alignment = Alignment(horizontal="right")


def build_event_report(event: Event) -> bytes:
    """Render the event report workbook and return the .xlsx bytes."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_NAME
    for column, width in COLUMN_WIDTHS.items():
        sheet.column_dimensions[column].width = width

    sheet.append(HEADERS)
    for cell in sheet[1]:
        cell.font = Font(bold=True, size=12)
        cell.fill = _fill(HEADER_COLOR)
        cell.alignment = Alignment(horizontal="center", vertical="center")

    current_row = 2
    for category, items in group_expenses(event):
        color = CATEGORY_COLORS[category]
        start_row = current_row
        for name, cost in items:
            sheet.append(["", name, cost, "", ""])
            for column in range(1, len(HEADERS) + 1):
                cell = sheet.cell(row=current_row, column=column)
                cell.fill = _fill(color)
                cell.border = BORDER
                if column == 3:
                    cell.number_format = MONEY_FORMAT
                    cell.alignment = Alignment(horizontal="right")
            current_row += 1
        end_row = current_row - 1

        sheet.merge_cells(f"A{start_row}:A{end_row}")
        category_cell = sheet.cell(row=start_row, column=1)
        category_cell.value = category.value
        category_cell.font = Font(bold=True, size=11)
        category_cell.alignment = Alignment(horizontal="center", vertical="center")

        sheet.merge_cells(f"D{start_row}:D{end_row}")
        subtotal_cell = sheet.cell(row=start_row, column=4)
        subtotal_cell.value = f"=SUM(C{start_row}:C{end_row})"
        subtotal_cell.font = Font(bold=True, size=11)
        subtotal_cell.number_format = MONEY_FORMAT
        subtotal_cell.alignment = Alignment(horizontal="right", vertical="center")

    last_item_row = current_row - 1
    if last_item_row >= 2:
        total_expense = [f"=SUM(C2:C{last_item_row})", f"=SUM(D2:D{last_item_row})"]
    else:
        total_expense = [0, 0]
    sheet.append(["", "TOTAL PENGELUARAN", *total_expense, ""])
    _style_total_row(sheet, current_row, TOTAL_COLOR)
    expense_row = current_row
    current_row += 1

    donations = _number(event.total_donations)
    name = event.name.upper()
    sheet.append(["", f"TOTAL SUMBANGAN {name}", donations, donations, ""])
    _style_total_row(sheet, current_row, SUMMARY_COLOR)
    donation_row = current_row
    current_row += 1

    sheet.append(
        [
            "",
            f"DANA KAS UNTUK {name}",
            f"=C{donation_row}-C{expense_row}",
            f"=D{donation_row}-D{expense_row}",
            "",
        ]
    )
    _style_total_row(sheet, current_row, SUMMARY_COLOR)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


__all__ = ["build_event_report", "group_expenses"]
