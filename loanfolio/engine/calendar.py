"""Calendar-month helpers shared by all engines.

Every schedule row is keyed on the first day of its calendar month, so all
month arithmetic goes through these functions.
"""

from datetime import date, datetime

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from loanfolio.exceptions import InvalidLoanDateError


def parse_iso_date(value, field: str = "date", loan_id: str | None = None) -> date:
    """Parse an ISO date (YYYY-MM-DD, or a date/datetime) into a date.

    Raises InvalidLoanDateError for empty or unparseable input.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidLoanDateError(field, value, loan_id)
    try:
        return date_parser.isoparse(value.strip()).date()
    except (ValueError, OverflowError) as e:
        raise InvalidLoanDateError(field, value, loan_id) from e


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return month_start(d) + relativedelta(months=1, days=-1)


def add_months(d: date, n: int) -> date:
    """First of the month n months after d's month."""
    return month_start(d) + relativedelta(months=n)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month (may be negative)."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_range(first: date, last: date) -> list[date]:
    """Month starts from first's month through last's month, inclusive."""
    months = []
    cursor = month_start(first)
    end = month_start(last)
    while cursor <= end:
        months.append(cursor)
        cursor = add_months(cursor, 1)
    return months
