from datetime import date, datetime

import pytest

from loanfolio.engine.calendar import (
    add_months,
    month_end,
    month_key,
    month_range,
    month_start,
    months_between,
    parse_iso_date,
)
from loanfolio.exceptions import InvalidLoanDateError


class TestParseIsoDate:
    def test_iso_string(self):
        assert parse_iso_date("2024-03-15") == date(2024, 3, 15)

    def test_iso_datetime_string(self):
        assert parse_iso_date("2024-03-15T10:30:00") == date(2024, 3, 15)

    def test_date_passthrough(self):
        assert parse_iso_date(date(2024, 3, 15)) == date(2024, 3, 15)

    def test_datetime_truncated(self):
        assert parse_iso_date(datetime(2024, 3, 15, 23, 59)) == date(2024, 3, 15)

    @pytest.mark.parametrize("value", ["", "   ", None, "not-a-date", "2024-13-01", 20240315])
    def test_invalid(self, value):
        with pytest.raises(InvalidLoanDateError):
            parse_iso_date(value, "loanStartDate", "7")

    def test_error_carries_context(self):
        with pytest.raises(InvalidLoanDateError) as exc:
            parse_iso_date("garbage", "purchaseDate", "7")
        assert exc.value.field == "purchaseDate"
        assert exc.value.loan_id == "7"
        assert isinstance(exc.value, ValueError)


class TestMonthArithmetic:
    def test_month_start(self):
        assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)

    def test_month_end_leap_year(self):
        assert month_end(date(2024, 2, 10)) == date(2024, 2, 29)

    def test_add_months_clamps_to_first(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 1)

    def test_add_months_across_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 1)

    def test_months_between(self):
        assert months_between(date(2024, 1, 31), date(2024, 4, 1)) == 3
        assert months_between(date(2024, 4, 1), date(2024, 1, 1)) == -3

    def test_month_key(self):
        assert month_key(date(2024, 3, 9)) == "2024-03"

    def test_month_range_inclusive(self):
        months = month_range(date(2024, 11, 20), date(2025, 2, 3))
        assert months == [date(2024, 11, 1), date(2024, 12, 1), date(2025, 1, 1), date(2025, 2, 1)]

    def test_month_range_empty_when_reversed(self):
        assert month_range(date(2025, 1, 1), date(2024, 1, 1)) == []
