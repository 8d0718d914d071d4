from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class EventType(Enum):
    PREPAYMENT = "prepayment"
    DEFERRAL = "deferral"
    DEFAULT = "default"


@dataclass(frozen=True)
class PrepaymentEvent:
    date: date
    amount: Decimal
    type: EventType = field(default=EventType.PREPAYMENT, init=False)


@dataclass(frozen=True)
class DeferralEvent:
    start_date: date
    months: int
    type: EventType = field(default=EventType.DEFERRAL, init=False)

    @property
    def date(self) -> date:
        return self.start_date


@dataclass(frozen=True)
class DefaultEvent:
    date: date
    recovery_amount: Decimal = Decimal("0")
    type: EventType = field(default=EventType.DEFAULT, init=False)


Event = PrepaymentEvent | DeferralEvent | DefaultEvent


class HolderKind(Enum):
    INVESTOR = "investor"
    MARKET = "market"


@dataclass(frozen=True)
class Holder:
    """An ownership holder.

    The market remainder is tagged by kind, not by name, so an investor who
    happens to be called "market" is still a distinct holder.
    """
    kind: HolderKind
    name: str

    @classmethod
    def investor(cls, name: str) -> "Holder":
        return cls(HolderKind.INVESTOR, str(name).strip().lower())

    @property
    def is_market(self) -> bool:
        return self.kind is HolderKind.MARKET


MARKET = Holder(HolderKind.MARKET, "market")

OWNERSHIP_STEP = 5


@dataclass(frozen=True)
class OwnershipAllocation:
    holder: Holder
    percent: Decimal  # 0-100


@dataclass(frozen=True)
class Ownership:
    allocations: list[OwnershipAllocation] = field(default_factory=list)
    unit: str = "percent"
    step: int = OWNERSHIP_STEP  # UI granularity

    @property
    def total_percent(self) -> Decimal:
        return sum((a.percent for a in self.allocations), Decimal("0"))


@dataclass(frozen=True)
class OwnershipLot:
    """A priced tranche of ownership bought on a given date."""
    holder: Holder
    pct: Decimal  # Fraction of the loan, 0-1
    price_paid: Decimal
    date: str | None = None


@dataclass
class Loan:
    id: str
    name: str
    school: str
    loan_start_date: str  # ISO YYYY-MM-DD, parsed when the schedule is built
    purchase_date: str
    principal: Decimal
    purchase_price: Decimal
    nominal_rate: Decimal  # Annual, e.g. 0.07
    term_years: Decimal = Decimal("10")
    grace_years: Decimal = Decimal("0")
    upfront_fee: Decimal = Decimal("150.00")
    monthly_fee_rate: Decimal = Decimal("0.00125")
    events: list[Event] = field(default_factory=list)
    ownership: Ownership = field(default_factory=Ownership)
    ownership_lots: list[OwnershipLot] = field(default_factory=list)

    @property
    def grace_months(self) -> int:
        return int((self.grace_years * 12).to_integral_value())

    @property
    def total_months(self) -> int:
        """Contractual months: grace plus repayment term, excluding deferrals."""
        return int(((self.grace_years + self.term_years) * 12).to_integral_value())

    @property
    def deferral_months(self) -> int:
        return sum(e.months for e in self.events if isinstance(e, DeferralEvent))
