"""Locale formatting for amounts and dates shown to residents.

Uses babel with the LOCALE setting (default: id_ID).

Example:
    >>> format_amount(Decimal("50000"))
    'Rp 50.000'
    >>> format_period_name("2025-08")
    'Agustus 2025'
"""

import logging
from datetime import date
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.numbers import format_decimal as babel_format_decimal

from rukun.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "id_ID"


def _get_locale() -> str:
    """LOCALE setting, falling back to id_ID when babel does not know it."""
    locale_str = get_settings().locale or DEFAULT_LOCALE
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(
            "Invalid LOCALE '%s': %s. Falling back to '%s'", locale_str, e, DEFAULT_LOCALE
        )
        return DEFAULT_LOCALE


def format_amount(amount: Decimal | int | float | str) -> str:
    """Format a rupiah amount without decimals, e.g. 'Rp 1.250.000'.

    Negative amounts keep their sign after the currency prefix.
    """
    value = Decimal(str(amount))
    formatted = babel_format_decimal(abs(value), format="#,##0", locale=_get_locale())
    return f"Rp -{formatted}" if value < 0 else f"Rp {formatted}"


def format_period_name(period: str) -> str:
    """Human month name of a period key, e.g. '2025-08' -> 'Agustus 2025'."""
    year, month = (int(part) for part in period.split("-"))
    return babel_format_date(date(year, month, 1), format="LLLL yyyy", locale=_get_locale())


__all__ = ["format_amount", "format_period_name"]
