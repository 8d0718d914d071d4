"""Return on investment: per-loan series, projected timeline, portfolio KPIs.

Pure functions. No I/O.

A loan's value at any owned month is what has been collected (principal +
interest - fees) plus the outstanding balance marked at a liquidation
discount, both scaled by the holder's ownership fraction.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from loanfolio.engine.calendar import (
    add_months,
    month_end,
    month_key,
    month_range,
    month_start,
    months_between,
    parse_iso_date,
)
from loanfolio.engine.ownership import ownership_basis
from loanfolio.models.loan import Holder, Loan
from loanfolio.models.results import (
    LoanAnalysis,
    LoanSeries,
    RoiKPIs,
    RoiTimeline,
    TimelinePoint,
)
from loanfolio.models.schedule import AmortizationRow, RoiEntry

TWO_PLACES = Decimal("0.01")
SIX_PLACES = Decimal("0.000001")
ZERO = Decimal("0")

LIQUIDATION_DISCOUNT = Decimal("0.95")  # Haircut applied to the outstanding balance


def _q(amount: Decimal) -> Decimal:
    return amount.quantize(TWO_PLACES, ROUND_HALF_UP)


def _ratio(value: Decimal) -> Decimal:
    return value.quantize(SIX_PLACES, ROUND_HALF_UP)


def build_roi_series(
    loan: Loan,
    schedule: list[AmortizationRow],
    holder: Holder | str | None = None,
) -> list[RoiEntry]:
    """ROI for each owned, non-terminal month of the schedule.

    Args:
        loan: Normalized loan (ownership and lots are read from it)
        schedule: Output of build_amort_schedule
        holder: Whose share to value; None values the whole loan
    """
    basis = ownership_basis(loan, holder)
    owned = [r for r in schedule if r.is_owned and not r.is_terminal]
    if not owned:
        return []

    first_owned = owned[0].loan_date
    entries: list[RoiEntry] = []
    for row in owned:
        realized = _q((row.cum_principal + row.cum_interest - row.cum_fees) * basis.pct)
        unrealized = _q(row.balance * LIQUIDATION_DISCOUNT * basis.pct)
        loan_value = realized + unrealized

        if basis.invested > 0:
            roi = _ratio((loan_value - basis.invested) / basis.invested)
        else:
            roi = ZERO

        entries.append(RoiEntry(
            loan_id=loan.id,
            date=row.loan_date,
            month=months_between(first_owned, row.loan_date) + 1,
            roi=roi,
            loan_value=loan_value,
            realized=realized,
            unrealized=unrealized,
            invested=basis.invested,
            ownership_pct=basis.pct,
            balance=row.balance,
            cum_principal=row.cum_principal,
            cum_interest=row.cum_interest,
            cum_fees=row.cum_fees,
        ))
    return entries


def get_roi_entry_as_of_month(series: list[RoiEntry], month: date) -> RoiEntry | None:
    """Latest entry dated on or before the end of the given month."""
    as_of = month_end(month)
    found = None
    for entry in series:
        if entry.date <= as_of:
            found = entry
        else:
            break
    return found


def compute_weighted_roi_as_of_month(analyses: list[LoanAnalysis], month: date) -> Decimal:
    """Invested-capital-weighted ROI across loans with an entry as of month."""
    total_invested = ZERO
    weighted_sum = ZERO

    for analysis in analyses:
        entry = get_roi_entry_as_of_month(analysis.roi_series, month)
        if entry is None or entry.invested <= 0:
            continue
        weighted_sum += entry.roi * entry.invested
        total_invested += entry.invested

    if total_invested == 0:
        return ZERO
    return _ratio(weighted_sum / total_invested)


def get_loan_maturity_date(loan: Loan, schedule: list[AmortizationRow] | None = None) -> date:
    """Calendar month of the final contractual month.

    Deferral rows in a supplied schedule push maturity out by one month each.
    """
    start = parse_iso_date(loan.loan_start_date, "loanStartDate", loan.id)
    deferred = sum(1 for r in schedule if r.is_deferred) if schedule else 0
    return add_months(start, max(loan.total_months - 1, 0) + deferred)


def build_projected_timeline(analyses: list[LoanAnalysis]) -> RoiTimeline:
    """Align every loan's ROI onto one monthly calendar.

    The calendar runs from the earliest purchase month to the latest maturity
    (or last ROI observation, if later). Each loan is None before its
    purchase month and forward-filled after it. The weighted series averages
    the loans that have a value that month, weighted by invested capital.
    """
    if not analyses:
        return RoiTimeline()

    purchase_months = {
        a.loan_id: month_start(parse_iso_date(a.loan.purchase_date, "purchaseDate", a.loan_id))
        for a in analyses
    }
    first = min(purchase_months.values())

    last = first
    for analysis in analyses:
        last = max(last, get_loan_maturity_date(analysis.loan, analysis.schedule))
        if analysis.roi_series:
            last = max(last, month_start(analysis.roi_series[-1].date))

    dates = month_range(first, last)

    per_loan: list[LoanSeries] = []
    for analysis in analyses:
        series = analysis.roi_series
        roi_by_month = {month_key(e.date): e.roi for e in series}
        last_known = series[0].roi if series else None
        purchase_month = purchase_months[analysis.loan_id]

        points = []
        for month in dates:
            if month < purchase_month:
                points.append(TimelinePoint(date=month, y=None))
                continue
            key = month_key(month)
            if key in roi_by_month:
                last_known = roi_by_month[key]
            points.append(TimelinePoint(date=month, y=last_known))

        per_loan.append(LoanSeries(id=analysis.loan_id, name=analysis.loan.name, data=points))

    weights = {
        a.loan_id: (a.roi_series[0].invested if a.roi_series else ZERO)
        for a in analyses
    }

    weighted: list[TimelinePoint] = []
    for i, month in enumerate(dates):
        weighted_sum = ZERO
        total = ZERO
        for loan_series in per_loan:
            roi = loan_series.data[i].y
            invested = weights[loan_series.id]
            if roi is None or invested <= 0:
                continue
            weighted_sum += roi * invested
            total += invested
        weighted.append(TimelinePoint(date=month, y=_ratio(weighted_sum / total) if total else ZERO))

    return RoiTimeline(dates=dates, per_loan_series=per_loan, weighted_series=weighted)


def compute_kpis(analyses: list[LoanAnalysis], as_of: date) -> RoiKPIs:
    """Portfolio ROI KPIs as of a month, plus the projected terminal ROI."""
    last_entries = [a.roi_series[-1] for a in analyses if a.roi_series]
    total_invested = sum((e.invested for e in last_entries), ZERO)
    if total_invested <= 0:
        return RoiKPIs()

    projected = sum((e.roi * e.invested for e in last_entries), ZERO) / total_invested

    cutoff = month_end(as_of)
    recovered = ZERO
    for analysis in analyses:
        if not analysis.roi_series:
            continue
        pct = analysis.roi_series[-1].ownership_pct
        for row in analysis.schedule:
            if row.is_owned and row.loan_date <= cutoff:
                recovered += row.principal_paid * pct

    recovered = _q(recovered)
    return RoiKPIs(
        total_invested=total_invested,
        weighted_roi=compute_weighted_roi_as_of_month(analyses, as_of),
        projected_weighted_roi=_ratio(projected),
        capital_recovered_amount=recovered,
        capital_recovery_pct=_ratio(recovered / total_invested),
    )
