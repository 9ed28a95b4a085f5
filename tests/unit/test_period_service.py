"""Unit tests for period keys and spreadsheet labels."""

from datetime import date
from decimal import Decimal

import pytest

from rukun.services.period_service import (
    current_period,
    dues_amount,
    is_valid_period,
    label_to_period,
    parse_period,
    period_to_label,
    periods_between,
    periods_of_year,
    periods_until_year_end,
)


class TestParsePeriod:
    """Test period key parsing."""

    def test_valid_period(self):
        """Test a well-formed key splits into year and month."""
        assert parse_period("2025-08") == (2025, 8)

    @pytest.mark.parametrize("period", ["2025-13", "2025-00", "2025-8", "25-08", "", "abc"])
    def test_invalid_period(self, period):
        """Test malformed keys are rejected."""
        with pytest.raises(ValueError):
            parse_period(period)
        assert is_valid_period(period) is False

    def test_current_period_of_date(self):
        """Test current period uses the given date."""
        assert current_period(date(2025, 1, 31)) == "2025-01"


class TestPeriodRanges:
    """Test generated period sequences."""

    def test_periods_between_crosses_year(self):
        """Test ranges roll over December into January."""
        assert periods_between(2024, 11, 2025, 2) == ["2024-11", "2024-12", "2025-01", "2025-02"]

    def test_periods_between_reversed_is_empty(self):
        """Test a start after the end gives no periods."""
        assert periods_between(2025, 5, 2025, 4) == []

    def test_periods_of_year(self):
        """Test a year has twelve ordered periods."""
        periods = periods_of_year(2025)
        assert len(periods) == 12
        assert periods[0] == "2025-01"
        assert periods[-1] == "2025-12"

    def test_periods_until_year_end(self):
        """Test back-fill range runs from this month through December."""
        assert periods_until_year_end(date(2025, 10, 3)) == ["2025-10", "2025-11", "2025-12"]

    def test_periods_until_year_end_in_december(self):
        """Test December gives a single period."""
        assert periods_until_year_end(date(2025, 12, 31)) == ["2025-12"]


class TestLabels:
    """Test MMM-YY spreadsheet labels."""

    def test_period_to_label(self):
        assert period_to_label("2021-01") == "Jan-21"
        assert period_to_label("2030-12") == "Dec-30"

    def test_label_to_period(self):
        assert label_to_period("Jun-20") == "2020-06"
        assert label_to_period(" feb-22 ") == "2022-02"

    def test_label_century(self):
        """Test two-digit years from 50 map to the 1900s."""
        assert label_to_period("Mar-99") == "1999-03"

    @pytest.mark.parametrize("label", ["No", "Nama", "Foo-21", "Jan-2021", ""])
    def test_non_month_labels(self, label):
        assert label_to_period(label) is None


class TestDuesAmount:
    """Test configured dues amount."""

    def test_default_amount(self):
        assert dues_amount() == Decimal("50000")

    def test_amount_from_environment(self, monkeypatch):
        """Test DUES_AMOUNT overrides the default."""
        from rukun.config import reset_settings

        monkeypatch.setenv("DUES_AMOUNT", "75000")
        reset_settings()
        assert dues_amount() == Decimal("75000")
