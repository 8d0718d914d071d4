from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from loanfolio.models.loan import Loan
from loanfolio.models.schedule import AmortizationRow, EarningsRow, RoiEntry


@dataclass(frozen=True)
class OwnershipBasis:
    pct: Decimal  # Fraction 0-1
    invested: Decimal


@dataclass(frozen=True)
class TimelinePoint:
    date: date
    y: Decimal | None


@dataclass
class LoanSeries:
    id: str
    name: str
    data: list[TimelinePoint] = field(default_factory=list)


@dataclass
class RoiTimeline:
    dates: list[date] = field(default_factory=list)
    per_loan_series: list[LoanSeries] = field(default_factory=list)
    weighted_series: list[TimelinePoint] = field(default_factory=list)


@dataclass
class RoiKPIs:
    total_invested: Decimal = Decimal("0")
    weighted_roi: Decimal = Decimal("0")
    projected_weighted_roi: Decimal = Decimal("0")
    capital_recovered_amount: Decimal = Decimal("0")
    capital_recovery_pct: Decimal = Decimal("0")


@dataclass(frozen=True)
class LoanEarningsSummary:
    loan_id: str
    loan_name: str
    school: str
    net_earnings: Decimal
    principal: Decimal
    interest: Decimal
    fees: Decimal  # Negative: fees reduce earnings


@dataclass
class EarningsKPIs:
    total_net_to_date: Decimal = Decimal("0")
    total_net_projected: Decimal = Decimal("0")
    total_fees_to_date: Decimal = Decimal("0")
    total_fees_projected: Decimal = Decimal("0")
    total_principal: Decimal = Decimal("0")
    avg_monthly_net: Decimal = Decimal("0")
    projected_avg_monthly_net: Decimal = Decimal("0")
    months_counted: int = 1
    loan_rows: list[LoanEarningsSummary] = field(default_factory=list)


@dataclass
class IncomePoint:
    month: date
    amount: Decimal
    by_loan: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class TpvPoint:
    month_key: str
    loan_id: str
    loan_name: str
    value: Decimal
    purchase_price: Decimal
    accrued_interest: Decimal
    cumulative_principal: Decimal


@dataclass
class StackedTimeline:
    months: list[str] = field(default_factory=list)
    series_by_loan: dict[str, list[Decimal]] = field(default_factory=dict)
    loan_names: dict[str, str] = field(default_factory=dict)
    totals_by_month: list[Decimal] = field(default_factory=list)


@dataclass
class PortfolioTotals:
    loan_count: int = 0
    total_invested: Decimal = Decimal("0")
    total_purchase_price: Decimal = Decimal("0")
    current_value: Decimal = Decimal("0")  # Sum of terminal balances


@dataclass
class LoanAnalysis:
    loan: Loan
    schedule: list[AmortizationRow] = field(default_factory=list)
    earnings: list[EarningsRow] = field(default_factory=list)
    roi_series: list[RoiEntry] = field(default_factory=list)
    tpv: list[TpvPoint] = field(default_factory=list)
    current_earnings: EarningsRow | None = None
    invested: Decimal = Decimal("0")
    ownership_pct: Decimal = Decimal("0")

    @property
    def loan_id(self) -> str:
        return self.loan.id

    @property
    def latest_roi(self) -> Decimal:
        return self.roi_series[-1].roi if self.roi_series else Decimal("0")


@dataclass
class PortfolioAnalysis:
    today: date
    loans: list[LoanAnalysis] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    roi_kpis: RoiKPIs = field(default_factory=RoiKPIs)
    earnings_kpis: EarningsKPIs = field(default_factory=EarningsKPIs)
    roi_timeline: RoiTimeline = field(default_factory=RoiTimeline)
    expected_income: list[IncomePoint] = field(default_factory=list)
    next_month_income: Decimal = Decimal("0")
    totals: PortfolioTotals = field(default_factory=PortfolioTotals)
    tpv: StackedTimeline = field(default_factory=StackedTimeline)
