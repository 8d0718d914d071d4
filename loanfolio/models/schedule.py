from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from loanfolio.models.loan import EventType


class SchedulePhase(Enum):
    GRACE = "grace"
    REPAYMENT = "repayment"
    DEFERRED = "deferred"
    DEFAULTED = "defaulted"  # Terminal


@dataclass(frozen=True)
class ScheduleState:
    """Scheduler state carried from one calendar month to the next."""
    phase: SchedulePhase
    contractual_index: int  # 0-based, does not advance during deferral
    calendar_date: date  # First of the month being scheduled
    balance: Decimal
    deferral_remaining: int = 0
    deferral_total: int = 0
    upfront_fee_charged: bool = False


@dataclass(frozen=True)
class AmortizationRow:
    month_index: int  # 1-based calendar month, counts deferral insertions
    contractual_month: int
    loan_date: date
    payment: Decimal
    principal_paid: Decimal
    interest: Decimal
    balance: Decimal
    phase: SchedulePhase
    prepayment: Decimal = Decimal("0")
    accrued_interest: Decimal = Decimal("0")  # Capitalized into balance this month

    # Deferral
    is_deferred: bool = False
    deferral_index: int = 0
    deferral_remaining: int = 0

    # Ownership
    is_owned: bool = False
    ownership_date: date | None = None

    # Default
    defaulted: bool = False
    is_terminal: bool = False
    recovery_amount: Decimal = Decimal("0")

    # Fees
    upfront_fee: Decimal = Decimal("0")
    monthly_fee: Decimal = Decimal("0")
    fee_this_month: Decimal = Decimal("0")

    # Running totals over owned rows
    cum_principal: Decimal = Decimal("0")
    cum_interest: Decimal = Decimal("0")
    cum_payment: Decimal = Decimal("0")
    cum_fees: Decimal = Decimal("0")

    @property
    def interest_paid(self) -> Decimal:
        return self.interest - self.accrued_interest

    @property
    def is_grace(self) -> bool:
        return self.phase is SchedulePhase.GRACE


@dataclass(frozen=True)
class EarningsRow:
    loan_date: date
    month_index: int
    contractual_month: int
    ownership_month_index: int
    is_owned: bool
    ownership_date: date | None
    is_deferred: bool
    defaulted: bool
    is_terminal: bool
    is_projected: bool  # Month lies after the reference "today"

    # Incremental
    monthly_principal: Decimal
    monthly_interest: Decimal
    monthly_fees: Decimal
    monthly_net: Decimal

    # Cumulative
    cum_principal: Decimal
    cum_interest: Decimal
    cum_fees: Decimal
    net_earnings: Decimal

    balance: Decimal
    prepayment: Decimal = Decimal("0")
    event_types: tuple[EventType, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RoiEntry:
    loan_id: str
    date: date
    month: int  # 1-based month of ownership
    roi: Decimal
    loan_value: Decimal
    realized: Decimal
    unrealized: Decimal
    invested: Decimal
    ownership_pct: Decimal
    balance: Decimal
    cum_principal: Decimal
    cum_interest: Decimal
    cum_fees: Decimal
