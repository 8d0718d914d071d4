"""Pydantic schemas for API request/response models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


# ---- Request schemas ----

class AllocationRequest(BaseModel):
    holder: str = Field(..., description="Investor name (case-insensitive)")
    percent: Decimal = Field(..., ge=0, le=100)


# ---- Response schemas ----

class AllocationResponse(BaseModel):
    holder: str
    kind: str
    percent: Decimal


class OwnershipResponse(BaseModel):
    loan_id: str
    unit: str
    step: int
    allocations: list[AllocationResponse]
    market_percent: Decimal


class AmortizationRowResponse(BaseModel):
    month_index: int
    contractual_month: int
    loan_date: date
    phase: str
    payment: Decimal
    principal_paid: Decimal
    interest: Decimal
    accrued_interest: Decimal
    prepayment: Decimal
    balance: Decimal
    is_deferred: bool
    deferral_index: int
    deferral_remaining: int
    is_owned: bool
    defaulted: bool
    is_terminal: bool
    recovery_amount: Decimal
    fee_this_month: Decimal
    cum_principal: Decimal
    cum_interest: Decimal
    cum_payment: Decimal
    cum_fees: Decimal


class ScheduleResponse(BaseModel):
    loan_id: str
    loan_name: str
    total_months: int
    rows: list[AmortizationRowResponse]
    summary: dict[str, Decimal]


class EarningsRowResponse(BaseModel):
    loan_date: date
    month_index: int
    ownership_month_index: int
    is_owned: bool
    is_deferred: bool
    is_terminal: bool
    is_projected: bool
    monthly_principal: Decimal
    monthly_interest: Decimal
    monthly_fees: Decimal
    monthly_net: Decimal
    cum_principal: Decimal
    cum_interest: Decimal
    cum_fees: Decimal
    net_earnings: Decimal
    balance: Decimal
    event_types: list[str] = []


class EarningsResponse(BaseModel):
    loan_id: str
    today: date
    current: EarningsRowResponse | None = None
    rows: list[EarningsRowResponse]


class RoiKPIsResponse(BaseModel):
    total_invested: Decimal
    weighted_roi: Decimal
    projected_weighted_roi: Decimal
    capital_recovered_amount: Decimal
    capital_recovery_pct: Decimal


class LoanEarningsResponse(BaseModel):
    loan_id: str
    loan_name: str
    school: str
    net_earnings: Decimal
    principal: Decimal
    interest: Decimal
    fees: Decimal


class EarningsKPIsResponse(BaseModel):
    total_net_to_date: Decimal
    total_net_projected: Decimal
    total_fees_to_date: Decimal
    total_fees_projected: Decimal
    total_principal: Decimal
    avg_monthly_net: Decimal
    projected_avg_monthly_net: Decimal
    months_counted: int
    loans: list[LoanEarningsResponse]


class TotalsResponse(BaseModel):
    loan_count: int
    total_invested: Decimal
    total_purchase_price: Decimal
    current_value: Decimal


class LoanSummaryResponse(BaseModel):
    id: str
    name: str
    school: str
    principal: Decimal
    purchase_price: Decimal
    nominal_rate: Decimal
    ownership_pct: Decimal
    invested: Decimal
    latest_roi: Decimal
    net_earnings_to_date: Decimal
    current_balance: Decimal | None = None
    schedule_months: int


class PortfolioResponse(BaseModel):
    today: date
    holder: str | None = None
    roi: RoiKPIsResponse
    earnings: EarningsKPIsResponse
    totals: TotalsResponse
    next_month_income: Decimal
    loans: list[LoanSummaryResponse]
    failures: dict[str, str] = {}


class TimelinePointResponse(BaseModel):
    date: date
    y: Decimal | None = None


class LoanSeriesResponse(BaseModel):
    id: str
    name: str
    data: list[TimelinePointResponse]


class RoiTimelineResponse(BaseModel):
    dates: list[date]
    per_loan: list[LoanSeriesResponse]
    weighted: list[TimelinePointResponse]


class IncomePointResponse(BaseModel):
    month: date
    amount: Decimal
    by_loan: dict[str, Decimal]


class IncomeResponse(BaseModel):
    today: date
    next_month: Decimal
    months: list[IncomePointResponse]


class TpvResponse(BaseModel):
    months: list[str]
    series_by_loan: dict[str, list[Decimal]]
    loan_names: dict[str, str]
    totals_by_month: list[Decimal]
