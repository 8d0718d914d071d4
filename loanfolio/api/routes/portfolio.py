"""Portfolio analysis routes. Read-only views over the engine."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from loanfolio.api.deps import get_loans
from loanfolio.api.schemas import (
    AmortizationRowResponse,
    EarningsKPIsResponse,
    EarningsResponse,
    EarningsRowResponse,
    IncomePointResponse,
    IncomeResponse,
    LoanEarningsResponse,
    LoanSeriesResponse,
    LoanSummaryResponse,
    PortfolioResponse,
    RoiKPIsResponse,
    RoiTimelineResponse,
    ScheduleResponse,
    TimelinePointResponse,
    TotalsResponse,
    TpvResponse,
)
from loanfolio.config import settings
from loanfolio.engine.amortization import build_amort_schedule, schedule_summary
from loanfolio.engine.earnings import build_earnings_schedule, get_canonical_current_earnings_row
from loanfolio.engine.portfolio import analyze_portfolio
from loanfolio.exceptions import InvalidLoanDateError
from loanfolio.models.loan import Loan
from loanfolio.models.results import LoanAnalysis, PortfolioAnalysis, TimelinePoint
from loanfolio.models.schedule import AmortizationRow, EarningsRow

router = APIRouter(prefix="/api/v1", tags=["portfolio"])


def _resolve_today(today: date | None) -> date:
    return today or date.today()


def _resolve_holder(holder: str | None) -> str | None:
    return holder or settings.default_holder or None


def _find_loan(loans: list[Loan], loan_id: str) -> Loan:
    for loan in loans:
        if loan.id == loan_id:
            return loan
    raise HTTPException(status_code=404, detail=f"Loan {loan_id} not found")


def _row_to_response(row: AmortizationRow) -> AmortizationRowResponse:
    return AmortizationRowResponse(
        month_index=row.month_index,
        contractual_month=row.contractual_month,
        loan_date=row.loan_date,
        phase=row.phase.value,
        payment=row.payment,
        principal_paid=row.principal_paid,
        interest=row.interest,
        accrued_interest=row.accrued_interest,
        prepayment=row.prepayment,
        balance=row.balance,
        is_deferred=row.is_deferred,
        deferral_index=row.deferral_index,
        deferral_remaining=row.deferral_remaining,
        is_owned=row.is_owned,
        defaulted=row.defaulted,
        is_terminal=row.is_terminal,
        recovery_amount=row.recovery_amount,
        fee_this_month=row.fee_this_month,
        cum_principal=row.cum_principal,
        cum_interest=row.cum_interest,
        cum_payment=row.cum_payment,
        cum_fees=row.cum_fees,
    )


def _earnings_to_response(row: EarningsRow) -> EarningsRowResponse:
    return EarningsRowResponse(
        loan_date=row.loan_date,
        month_index=row.month_index,
        ownership_month_index=row.ownership_month_index,
        is_owned=row.is_owned,
        is_deferred=row.is_deferred,
        is_terminal=row.is_terminal,
        is_projected=row.is_projected,
        monthly_principal=row.monthly_principal,
        monthly_interest=row.monthly_interest,
        monthly_fees=row.monthly_fees,
        monthly_net=row.monthly_net,
        cum_principal=row.cum_principal,
        cum_interest=row.cum_interest,
        cum_fees=row.cum_fees,
        net_earnings=row.net_earnings,
        balance=row.balance,
        event_types=[t.value for t in row.event_types],
    )


def _points(points: list[TimelinePoint]) -> list[TimelinePointResponse]:
    return [TimelinePointResponse(date=p.date, y=p.y) for p in points]


def _loan_summary(analysis: LoanAnalysis) -> LoanSummaryResponse:
    loan = analysis.loan
    current = analysis.current_earnings
    return LoanSummaryResponse(
        id=loan.id,
        name=loan.name,
        school=loan.school,
        principal=loan.principal,
        purchase_price=loan.purchase_price,
        nominal_rate=loan.nominal_rate,
        ownership_pct=analysis.ownership_pct,
        invested=analysis.invested,
        latest_roi=analysis.latest_roi,
        net_earnings_to_date=current.net_earnings if current else 0,
        current_balance=current.balance if current else None,
        schedule_months=len(analysis.schedule),
    )


def _analysis_to_response(result: PortfolioAnalysis, holder: str | None) -> PortfolioResponse:
    roi = result.roi_kpis
    earn = result.earnings_kpis
    totals = result.totals

    return PortfolioResponse(
        today=result.today,
        holder=holder,
        roi=RoiKPIsResponse(
            total_invested=roi.total_invested,
            weighted_roi=roi.weighted_roi,
            projected_weighted_roi=roi.projected_weighted_roi,
            capital_recovered_amount=roi.capital_recovered_amount,
            capital_recovery_pct=roi.capital_recovery_pct,
        ),
        earnings=EarningsKPIsResponse(
            total_net_to_date=earn.total_net_to_date,
            total_net_projected=earn.total_net_projected,
            total_fees_to_date=earn.total_fees_to_date,
            total_fees_projected=earn.total_fees_projected,
            total_principal=earn.total_principal,
            avg_monthly_net=earn.avg_monthly_net,
            projected_avg_monthly_net=earn.projected_avg_monthly_net,
            months_counted=earn.months_counted,
            loans=[
                LoanEarningsResponse(
                    loan_id=r.loan_id,
                    loan_name=r.loan_name,
                    school=r.school,
                    net_earnings=r.net_earnings,
                    principal=r.principal,
                    interest=r.interest,
                    fees=r.fees,
                )
                for r in earn.loan_rows
            ],
        ),
        totals=TotalsResponse(
            loan_count=totals.loan_count,
            total_invested=totals.total_invested,
            total_purchase_price=totals.total_purchase_price,
            current_value=totals.current_value,
        ),
        next_month_income=result.next_month_income,
        loans=[_loan_summary(a) for a in result.loans],
        failures=result.failures,
    )


@router.get("/portfolio", response_model=PortfolioResponse)
async def get_portfolio(
    today: date | None = Query(None, description="Valuation date, defaults to the current date"),
    holder: str | None = Query(None, description="Investor to value; whole loans when omitted"),
    loans: list[Loan] = Depends(get_loans),
):
    """Portfolio KPIs, totals and a per-loan summary."""
    holder = _resolve_holder(holder)
    result = analyze_portfolio(loans, _resolve_today(today), holder)
    return _analysis_to_response(result, holder)


@router.get("/portfolio/roi-timeline", response_model=RoiTimelineResponse)
async def get_roi_timeline(
    today: date | None = None,
    holder: str | None = None,
    loans: list[Loan] = Depends(get_loans),
):
    """Per-loan and capital-weighted ROI on one monthly calendar."""
    result = analyze_portfolio(loans, _resolve_today(today), _resolve_holder(holder))
    timeline = result.roi_timeline
    return RoiTimelineResponse(
        dates=timeline.dates,
        per_loan=[
            LoanSeriesResponse(id=s.id, name=s.name, data=_points(s.data))
            for s in timeline.per_loan_series
        ],
        weighted=_points(timeline.weighted_series),
    )


@router.get("/portfolio/income", response_model=IncomeResponse)
async def get_expected_income(
    today: date | None = None,
    loans: list[Loan] = Depends(get_loans),
):
    """Scheduled payments by month from the current month onward."""
    today = _resolve_today(today)
    result = analyze_portfolio(loans, today)
    return IncomeResponse(
        today=today,
        next_month=result.next_month_income,
        months=[
            IncomePointResponse(month=p.month, amount=p.amount, by_loan=p.by_loan)
            for p in result.expected_income
        ],
    )


@router.get("/portfolio/tpv", response_model=TpvResponse)
async def get_tpv(
    today: date | None = None,
    loans: list[Loan] = Depends(get_loans),
):
    """Total portfolio value by month, stacked per loan."""
    stacked = analyze_portfolio(loans, _resolve_today(today)).tpv
    return TpvResponse(
        months=stacked.months,
        series_by_loan=stacked.series_by_loan,
        loan_names=stacked.loan_names,
        totals_by_month=stacked.totals_by_month,
    )


@router.get("/loans/{loan_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(loan_id: str, loans: list[Loan] = Depends(get_loans)):
    """Full amortization schedule for one loan."""
    loan = _find_loan(loans, loan_id)
    try:
        schedule = build_amort_schedule(loan)
    except InvalidLoanDateError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ScheduleResponse(
        loan_id=loan.id,
        loan_name=loan.name,
        total_months=loan.total_months,
        rows=[_row_to_response(r) for r in schedule],
        summary=schedule_summary(schedule),
    )


@router.get("/loans/{loan_id}/earnings", response_model=EarningsResponse)
async def get_earnings(
    loan_id: str,
    today: date | None = None,
    loans: list[Loan] = Depends(get_loans),
):
    """Earnings rows for one loan and the canonical current row."""
    loan = _find_loan(loans, loan_id)
    today = _resolve_today(today)
    try:
        schedule = build_amort_schedule(loan)
        earnings = build_earnings_schedule(
            schedule, loan.loan_start_date, loan.purchase_date, loan.events, today
        )
    except InvalidLoanDateError as e:
        raise HTTPException(status_code=422, detail=str(e))

    current = get_canonical_current_earnings_row(earnings, today)
    return EarningsResponse(
        loan_id=loan.id,
        today=today,
        current=_earnings_to_response(current) if current else None,
        rows=[_earnings_to_response(r) for r in earnings],
    )
