"""Earnings derived from an amortization schedule.

Pure functions. No I/O. The caller supplies "today" explicitly so that the
same inputs always produce the same rows.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from loanfolio.engine.calendar import month_key, month_start, months_between, parse_iso_date
from loanfolio.exceptions import InvalidLoanDateError
from loanfolio.models.loan import Event, EventType, Loan
from loanfolio.models.results import EarningsKPIs, LoanAnalysis, LoanEarningsSummary
from loanfolio.models.schedule import AmortizationRow, EarningsRow

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def _events_by_month(events: list[Event]) -> dict[str, tuple[EventType, ...]]:
    by_month: dict[str, tuple[EventType, ...]] = {}
    for event in events:
        key = month_key(event.date)
        by_month[key] = by_month.get(key, ()) + (event.type,)
    return by_month


def build_earnings_schedule(
    amort_schedule: list[AmortizationRow],
    loan_start_date: str,
    purchase_date: str,
    events: list[Event],
    today: date,
) -> list[EarningsRow]:
    """One earnings row per amortization row, in calendar order.

    Only owned months earn. Deferred months earn no interest or fees (the
    interest is capitalized, not received); a prepayment made during a
    deferral is still cash received and counts as principal.

    Raises:
        InvalidLoanDateError: loan_start_date or purchase_date is unparseable
    """
    if not amort_schedule:
        return []

    loan_start = parse_iso_date(loan_start_date, "loanStartDate")
    purchase = parse_iso_date(purchase_date, "purchaseDate")
    months_before_purchase = months_between(loan_start, purchase)
    today_month = month_start(today)
    event_types = _events_by_month(events or [])

    cum_principal = ZERO
    cum_interest = ZERO
    cum_fees = ZERO

    rows: list[EarningsRow] = []
    for row in sorted(amort_schedule, key=lambda r: r.loan_date):
        principal = ZERO
        interest = ZERO
        fees = ZERO
        if row.is_owned:
            if row.is_deferred:
                principal = row.prepayment
            else:
                principal = row.principal_paid
                interest = row.interest_paid
                fees = row.fee_this_month

        cum_principal += principal
        cum_interest += interest
        cum_fees += fees

        rows.append(EarningsRow(
            loan_date=row.loan_date,
            month_index=row.month_index,
            contractual_month=row.contractual_month,
            ownership_month_index=row.contractual_month - months_before_purchase,
            is_owned=row.is_owned,
            ownership_date=row.ownership_date,
            is_deferred=row.is_deferred,
            defaulted=row.defaulted,
            is_terminal=row.is_terminal,
            is_projected=row.loan_date > today_month,
            monthly_principal=principal,
            monthly_interest=interest,
            monthly_fees=fees,
            monthly_net=principal + interest - fees,
            cum_principal=cum_principal,
            cum_interest=cum_interest,
            cum_fees=cum_fees,
            net_earnings=cum_principal + cum_interest - cum_fees,
            balance=row.balance,
            prepayment=row.prepayment,
            event_types=event_types.get(month_key(row.loan_date), ()),
        ))

    return rows


def get_canonical_current_earnings_row(
    earnings_schedule: list[EarningsRow], today: date
) -> EarningsRow | None:
    """The authoritative "current" row.

    Today's calendar month if the schedule has it, else the last owned row,
    else the last row.
    """
    if not earnings_schedule:
        return None

    for row in earnings_schedule:
        if row.loan_date.year == today.year and row.loan_date.month == today.month:
            return row

    owned = [r for r in earnings_schedule if r.is_owned]
    if owned:
        return owned[-1]
    return earnings_schedule[-1]


def get_portfolio_start_date(loans: list[Loan], today: date) -> date:
    """Earliest loan start (or purchase) date; today if none parse."""
    dates = []
    for loan in loans:
        raw = loan.loan_start_date or loan.purchase_date
        try:
            dates.append(parse_iso_date(raw))
        except InvalidLoanDateError:
            continue
    return min(dates) if dates else today


def compute_portfolio_earnings_kpis(
    analyses: list[LoanAnalysis],
    today: date,
    portfolio_start_date: date,
) -> EarningsKPIs:
    """Portfolio-level earnings to date and projected to the end of each schedule."""
    kpis = EarningsKPIs()
    projected_net_total = ZERO
    projected_months_total = 0

    for analysis in analyses:
        loan = analysis.loan
        kpis.total_principal += loan.purchase_price

        schedule = analysis.earnings
        if not schedule:
            continue

        at_end = schedule[-1]
        kpis.loan_rows.append(LoanEarningsSummary(
            loan_id=loan.id,
            loan_name=loan.name,
            school=loan.school,
            net_earnings=at_end.net_earnings,
            principal=at_end.cum_principal,
            interest=at_end.cum_interest,
            fees=-at_end.cum_fees,
        ))

        projected_net_total += at_end.net_earnings
        projected_months_total += len(schedule)

        current = get_canonical_current_earnings_row(schedule, today)
        kpis.total_net_to_date += current.net_earnings
        kpis.total_fees_to_date += current.cum_fees
        kpis.total_net_projected += at_end.net_earnings
        kpis.total_fees_projected += at_end.cum_fees

    if projected_months_total > 0:
        kpis.projected_avg_monthly_net = (projected_net_total / projected_months_total).quantize(
            TWO_PLACES, ROUND_HALF_UP
        )

    kpis.months_counted = max(1, months_between(portfolio_start_date, today) + 1)
    kpis.avg_monthly_net = (kpis.total_net_to_date / kpis.months_counted).quantize(
        TWO_PLACES, ROUND_HALF_UP
    )
    return kpis
