"""Period keys and dues amounts.

A period is a calendar month written as "YYYY-MM". Spreadsheets label the
same month as "MMM-YY" (e.g. "Jan-25").
"""

import re
from datetime import date
from decimal import Decimal

from rukun.config import get_settings

FIXED_DUES_AMOUNT = Decimal("50000")

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")
_LABEL_RE = re.compile(r"^([A-Za-z]{3})-(\d{2})$")


def dues_amount() -> Decimal:
    """Amount of a regular monthly iuran (DUES_AMOUNT setting)."""
    return get_settings().dues_amount or FIXED_DUES_AMOUNT


def format_period(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def current_period(today: date | None = None) -> str:
    """Period key of the current month (or of the given date)."""
    today = today or date.today()
    return format_period(today.year, today.month)


def parse_period(period: str) -> tuple[int, int]:
    """Split a period key into (year, month).

    Raises:
        ValueError: If the key is not a valid "YYYY-MM" month
    """
    match = _PERIOD_RE.match(period or "")
    if not match:
        raise ValueError(f"Invalid period '{period}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in period '{period}'")
    return year, month


def is_valid_period(period: str) -> bool:
    try:
        parse_period(period)
    except ValueError:
        return False
    return True


def periods_between(
    start_year: int, start_month: int, end_year: int, end_month: int
) -> list[str]:
    """Ordered period keys from start to end, both inclusive.

    Returns an empty list when the start lies after the end.
    """
    periods = []
    year, month = start_year, start_month
    while (year, month) <= (end_year, end_month):
        periods.append(format_period(year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return periods


def periods_of_year(year: int) -> list[str]:
    return periods_between(year, 1, year, 12)


def periods_until_year_end(today: date | None = None) -> list[str]:
    """Periods from the current month through December of the same year."""
    today = today or date.today()
    return periods_between(today.year, today.month, today.year, 12)


def period_to_label(period: str) -> str:
    """Spreadsheet label of a period: "2025-01" -> "Jan-25"."""
    year, month = parse_period(period)
    return f"{MONTH_ABBREVIATIONS[month - 1]}-{year % 100:02d}"


def label_to_period(label: str) -> str | None:
    """Period key of a spreadsheet label: "Jan-25" -> "2025-01".

    Returns None when the label is not a month header.

    Two-digit years below 50 map to 20xx, the rest to 19xx.
    """
    match = _LABEL_RE.match((label or "").strip())
    if not match:
        return None
    abbreviations = [m.lower() for m in MONTH_ABBREVIATIONS]
    name = match.group(1).lower()
    if name not in abbreviations:
        return None
    short_year = int(match.group(2))
    year = 2000 + short_year if short_year < 50 else 1900 + short_year
    return format_period(year, abbreviations.index(name) + 1)


__all__ = [
    "FIXED_DUES_AMOUNT",
    "dues_amount",
    "current_period",
    "parse_period",
    "is_valid_period",
    "periods_between",
    "periods_of_year",
    "periods_until_year_end",
    "period_to_label",
    "label_to_period",
]
