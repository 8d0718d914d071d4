"""Portfolio orchestrator: composes the per-loan engines into portfolio views.

Pure computation. No I/O. Loans in, PortfolioAnalysis out.
"""

import logging
from datetime import date
from decimal import Decimal

from loanfolio.engine.amortization import build_amort_schedule
from loanfolio.engine.calendar import add_months, month_key, month_start
from loanfolio.engine.earnings import (
    build_earnings_schedule,
    compute_portfolio_earnings_kpis,
    get_canonical_current_earnings_row,
    get_portfolio_start_date,
)
from loanfolio.engine.ownership import ownership_basis
from loanfolio.engine.roi import build_projected_timeline, build_roi_series, compute_kpis
from loanfolio.exceptions import LoanfolioError
from loanfolio.models.loan import Holder, Loan
from loanfolio.models.results import (
    IncomePoint,
    LoanAnalysis,
    PortfolioAnalysis,
    PortfolioTotals,
    StackedTimeline,
    TpvPoint,
)
from loanfolio.models.schedule import AmortizationRow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def build_expected_income(analyses: list[LoanAnalysis], today: date) -> list[IncomePoint]:
    """Scheduled payments per calendar month from today's month onward.

    Owned rows only; default recoveries are not scheduled income.
    """
    current = month_start(today)
    by_month: dict[date, IncomePoint] = {}

    for analysis in analyses:
        for row in analysis.schedule:
            if not row.is_owned or row.is_terminal or row.loan_date < current:
                continue
            if row.payment <= 0:
                continue
            point = by_month.setdefault(row.loan_date, IncomePoint(month=row.loan_date, amount=ZERO))
            point.amount += row.payment
            point.by_loan[analysis.loan_id] = point.by_loan.get(analysis.loan_id, ZERO) + row.payment

    return [by_month[m] for m in sorted(by_month)]


def next_month_expected_income(analyses: list[LoanAnalysis], today: date) -> Decimal:
    target = add_months(today, 1)
    for point in build_expected_income(analyses, today):
        if point.month == target:
            return point.amount
    return ZERO


def compute_portfolio_totals(analyses: list[LoanAnalysis]) -> PortfolioTotals:
    """Invested capital and current value (sum of each schedule's final balance)."""
    totals = PortfolioTotals(loan_count=len(analyses))
    for analysis in analyses:
        totals.total_invested += analysis.invested
        totals.total_purchase_price += analysis.loan.purchase_price
        if analysis.schedule:
            totals.current_value += analysis.schedule[-1].balance
    return totals


def build_loan_tpv_timeline(loan: Loan, schedule: list[AmortizationRow]) -> list[TpvPoint]:
    """Total portfolio value per owned month.

    value = purchase price + capitalized grace/deferral interest + principal collected
    """
    accrued = ZERO
    cum_principal = ZERO
    points: list[TpvPoint] = []

    for row in schedule:
        if not row.is_owned:
            continue
        accrued += row.accrued_interest
        if not row.is_deferred:
            cum_principal += row.principal_paid

        points.append(TpvPoint(
            month_key=month_key(row.loan_date),
            loan_id=loan.id,
            loan_name=loan.name,
            value=loan.purchase_price + accrued + cum_principal,
            purchase_price=loan.purchase_price,
            accrued_interest=accrued,
            cumulative_principal=cum_principal,
        ))
    return points


def build_stacked_tpv(analyses: list[LoanAnalysis]) -> StackedTimeline:
    """Align every loan's TPV on one sorted month axis; missing months are 0."""
    months = sorted({p.month_key for a in analyses for p in a.tpv})
    stacked = StackedTimeline(months=months)

    for analysis in analyses:
        by_month = {p.month_key: p.value for p in analysis.tpv}
        stacked.series_by_loan[analysis.loan_id] = [by_month.get(m, ZERO) for m in months]
        stacked.loan_names[analysis.loan_id] = analysis.loan.name

    stacked.totals_by_month = [
        sum((values[i] for values in stacked.series_by_loan.values()), ZERO)
        for i in range(len(months))
    ]
    return stacked


def analyze_loan(loan: Loan, today: date, holder: Holder | str | None = None) -> LoanAnalysis:
    """Schedule, earnings, ROI and TPV for one loan.

    Raises:
        InvalidLoanDateError: the loan's start or purchase date is unparseable
    """
    schedule = build_amort_schedule(loan)
    earnings = build_earnings_schedule(
        schedule, loan.loan_start_date, loan.purchase_date, loan.events, today
    )
    basis = ownership_basis(loan, holder)

    return LoanAnalysis(
        loan=loan,
        schedule=schedule,
        earnings=earnings,
        roi_series=build_roi_series(loan, schedule, holder),
        tpv=build_loan_tpv_timeline(loan, schedule),
        current_earnings=get_canonical_current_earnings_row(earnings, today),
        invested=basis.invested,
        ownership_pct=basis.pct,
    )


def analyze_portfolio(
    loans: list[Loan],
    today: date,
    holder: Holder | str | None = None,
) -> PortfolioAnalysis:
    """Run every engine over a loan list.

    A loan that fails (e.g. a malformed date) is logged and reported in
    failures; the rest of the batch still runs. When a holder is given, loans
    the holder has no share in are left out.
    """
    result = PortfolioAnalysis(today=today)

    for loan in loans:
        if holder is not None and ownership_basis(loan, holder).pct <= 0:
            logger.debug("Loan %s not held by %s, skipping", loan.id, holder)
            continue
        try:
            result.loans.append(analyze_loan(loan, today, holder))
        except LoanfolioError as e:
            logger.warning("Skipping loan %s: %s", loan.id, e)
            result.failures[loan.id] = str(e)

    analyses = result.loans
    start = get_portfolio_start_date([a.loan for a in analyses], today)

    result.roi_kpis = compute_kpis(analyses, today)
    result.earnings_kpis = compute_portfolio_earnings_kpis(analyses, today, start)
    result.roi_timeline = build_projected_timeline(analyses)
    result.expected_income = build_expected_income(analyses, today)
    result.next_month_income = next_month_expected_income(analyses, today)
    result.totals = compute_portfolio_totals(analyses)
    result.tpv = build_stacked_tpv(analyses)
    return result
