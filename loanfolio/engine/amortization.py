"""Amortization schedule computation.

Pure functions: Loan + events in, AmortizationRow list out. No I/O.

The schedule walks calendar months from the first of the loan's start month.
Each month is resolved in priority order: default (terminal), deferral
(interest capitalizes, contractual clock stops), then the normal contractual
month (grace capitalization or a dynamically recomputed annuity payment).
"""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from loanfolio.engine.calendar import add_months, month_key, month_start, parse_iso_date
from loanfolio.models.loan import DefaultEvent, DeferralEvent, Event, Loan, PrepaymentEvent
from loanfolio.models.schedule import AmortizationRow, SchedulePhase, ScheduleState

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def _q(amount: Decimal) -> Decimal:
    return amount.quantize(TWO_PLACES, ROUND_HALF_UP)


def annuity_payment(balance: Decimal, monthly_rate: Decimal, remaining_months: int) -> Decimal:
    """Level monthly payment that retires balance over remaining_months.

    Recomputed from the current balance on every repayment row, so interest
    capitalized during grace or deferral is still paid off by maturity.
    """
    if balance <= 0 or remaining_months <= 0:
        return ZERO
    if monthly_rate <= 0:
        return _q(balance / remaining_months)

    # M = B * [r(1+r)^n] / [(1+r)^n - 1]
    factor = (1 + monthly_rate) ** remaining_months
    return _q(balance * (monthly_rate * factor) / (factor - 1))


@dataclass(frozen=True)
class EventIndex:
    """Loan events keyed by calendar month (YYYY-MM)."""
    prepayments: dict[str, Decimal]
    deferrals: dict[str, int]
    default: DefaultEvent | None


def index_events(events: list[Event]) -> EventIndex:
    """Bucket events by month.

    Same-month prepayments and deferral requests are summed; only the
    earliest default is honored.
    """
    prepayments: dict[str, Decimal] = {}
    deferrals: dict[str, int] = {}
    defaults: list[DefaultEvent] = []

    for event in events:
        if isinstance(event, PrepaymentEvent):
            key = month_key(event.date)
            prepayments[key] = prepayments.get(key, ZERO) + event.amount
        elif isinstance(event, DeferralEvent):
            key = month_key(event.start_date)
            deferrals[key] = deferrals.get(key, 0) + event.months
        elif isinstance(event, DefaultEvent):
            defaults.append(event)

    default = min(defaults, key=lambda e: e.date) if defaults else None
    return EventIndex(prepayments=prepayments, deferrals=deferrals, default=default)


@dataclass(frozen=True)
class _LoanTerms:
    loan: Loan
    monthly_rate: Decimal
    grace_months: int
    total_months: int
    purchase_month: date
    events: EventIndex


def _phase_after(terms: _LoanTerms, contractual_index: int) -> SchedulePhase:
    if contractual_index < terms.grace_months:
        return SchedulePhase.GRACE
    return SchedulePhase.REPAYMENT


def _make_row(
    terms: _LoanTerms,
    state: ScheduleState,
    month_index: int,
    balance: Decimal,
    **values,
) -> tuple[AmortizationRow, bool]:
    """Attach ownership and fee fields to a row.

    Returns the row and whether the upfront fee has now been charged.
    """
    loan_date = state.calendar_date
    is_owned = loan_date >= terms.purchase_month
    phase = values["phase"]

    upfront_fee = ZERO
    monthly_fee = ZERO
    charged = state.upfront_fee_charged
    if is_owned and phase not in (SchedulePhase.DEFERRED, SchedulePhase.DEFAULTED):
        if not charged:
            upfront_fee = terms.loan.upfront_fee
            charged = True
        if balance > 0:
            monthly_fee = _q(balance * terms.loan.monthly_fee_rate)

    row = AmortizationRow(
        month_index=month_index,
        loan_date=loan_date,
        balance=balance,
        is_owned=is_owned,
        ownership_date=loan_date if is_owned else None,
        upfront_fee=upfront_fee,
        monthly_fee=monthly_fee,
        fee_this_month=upfront_fee + monthly_fee,
        **values,
    )
    return row, charged


def _default_month(
    terms: _LoanTerms, state: ScheduleState, month_index: int
) -> tuple[AmortizationRow, ScheduleState]:
    recovery = min(state.balance, terms.events.default.recovery_amount)
    balance = state.balance - recovery

    row, charged = _make_row(
        terms, state, month_index, balance,
        contractual_month=state.contractual_index + 1,
        payment=recovery,
        principal_paid=recovery,
        interest=ZERO,
        phase=SchedulePhase.DEFAULTED,
        defaulted=True,
        is_terminal=True,
        recovery_amount=recovery,
    )
    next_state = replace(
        state,
        phase=SchedulePhase.DEFAULTED,
        balance=balance,
        deferral_remaining=0,
        deferral_total=0,
        upfront_fee_charged=charged,
    )
    return row, next_state


def _deferred_month(
    terms: _LoanTerms, state: ScheduleState, month_index: int
) -> tuple[AmortizationRow, ScheduleState]:
    interest = _q(state.balance * terms.monthly_rate)
    balance = state.balance + interest

    requested = terms.events.prepayments.get(month_key(state.calendar_date), ZERO)
    prepayment = min(balance, requested)
    balance -= prepayment

    remaining = state.deferral_remaining - 1
    row, charged = _make_row(
        terms, state, month_index, balance,
        contractual_month=state.contractual_index + 1,
        payment=ZERO,
        principal_paid=prepayment,
        interest=interest,
        prepayment=prepayment,
        accrued_interest=interest,
        phase=SchedulePhase.DEFERRED,
        is_deferred=True,
        deferral_index=state.deferral_total - state.deferral_remaining + 1,
        deferral_remaining=remaining,
    )

    if remaining > 0:
        next_state = replace(
            state,
            calendar_date=add_months(state.calendar_date, 1),
            balance=balance,
            deferral_remaining=remaining,
            upfront_fee_charged=charged,
        )
    else:
        next_state = replace(
            state,
            phase=_phase_after(terms, state.contractual_index),
            calendar_date=add_months(state.calendar_date, 1),
            balance=balance,
            deferral_remaining=0,
            deferral_total=0,
            upfront_fee_charged=charged,
        )
    return row, next_state


def _contractual_month(
    terms: _LoanTerms, state: ScheduleState, month_index: int
) -> tuple[AmortizationRow, ScheduleState]:
    i = state.contractual_index
    balance = state.balance
    interest = _q(balance * terms.monthly_rate)

    if i < terms.grace_months:
        phase = SchedulePhase.GRACE
        payment = ZERO
        principal_paid = ZERO
        accrued = interest
        balance += interest
    else:
        phase = SchedulePhase.REPAYMENT
        accrued = ZERO
        remaining = terms.total_months - i
        if remaining == 1:
            # Final contractual month retires whatever is left
            principal_paid = balance
            payment = interest + principal_paid
        else:
            payment = annuity_payment(balance, terms.monthly_rate, remaining)
            principal_paid = max(ZERO, payment - interest)
            if principal_paid > balance:
                principal_paid = balance
                payment = interest + principal_paid
        balance -= principal_paid

    requested = terms.events.prepayments.get(month_key(state.calendar_date), ZERO)
    prepayment = min(balance, requested)
    balance -= prepayment
    principal_paid += prepayment

    row, charged = _make_row(
        terms, state, month_index, balance,
        contractual_month=i + 1,
        payment=payment,
        principal_paid=principal_paid,
        interest=interest,
        prepayment=prepayment,
        accrued_interest=accrued,
        phase=phase,
    )
    next_state = replace(
        state,
        phase=_phase_after(terms, i + 1),
        contractual_index=i + 1,
        calendar_date=add_months(state.calendar_date, 1),
        balance=balance,
        upfront_fee_charged=charged,
    )
    return row, next_state


def _with_running_totals(rows: list[AmortizationRow]) -> list[AmortizationRow]:
    """Running principal, interest paid, cash received and fees over owned rows."""
    cum_principal = ZERO
    cum_interest = ZERO
    cum_payment = ZERO
    cum_fees = ZERO

    out: list[AmortizationRow] = []
    for row in rows:
        if row.is_owned:
            cum_principal += row.principal_paid
            cum_interest += row.interest_paid
            cum_payment += row.payment + row.prepayment
            cum_fees += row.fee_this_month
        out.append(replace(
            row,
            cum_principal=cum_principal,
            cum_interest=cum_interest,
            cum_payment=cum_payment,
            cum_fees=cum_fees,
        ))
    return out


def build_amort_schedule(loan: Loan, events: list[Event] | None = None) -> list[AmortizationRow]:
    """Generate the calendar-month amortization schedule for a loan.

    Args:
        loan: Normalized loan
        events: Lifecycle events; defaults to loan.events

    Raises:
        InvalidLoanDateError: loan_start_date or purchase_date is unparseable
    """
    start = month_start(parse_iso_date(loan.loan_start_date, "loanStartDate", loan.id))
    purchase = parse_iso_date(loan.purchase_date, "purchaseDate", loan.id)

    terms = _LoanTerms(
        loan=loan,
        monthly_rate=loan.nominal_rate / 12,
        grace_months=loan.grace_months,
        total_months=loan.total_months,
        purchase_month=month_start(purchase),
        events=index_events(loan.events if events is None else events),
    )
    default_key = month_key(terms.events.default.date) if terms.events.default else None

    state = ScheduleState(
        phase=_phase_after(terms, 0),
        contractual_index=0,
        calendar_date=start,
        balance=_q(loan.principal),
    )

    rows: list[AmortizationRow] = []
    while state.phase is SchedulePhase.DEFERRED or state.contractual_index < terms.total_months:
        key = month_key(state.calendar_date)
        month_index = len(rows) + 1

        if key == default_key:
            row, state = _default_month(terms, state, month_index)
            rows.append(row)
            break

        months = terms.events.deferrals.get(key, 0)
        if state.phase is not SchedulePhase.DEFERRED and months > 0:
            state = replace(
                state,
                phase=SchedulePhase.DEFERRED,
                deferral_remaining=months,
                deferral_total=months,
            )

        if state.phase is SchedulePhase.DEFERRED:
            row, state = _deferred_month(terms, state, month_index)
        else:
            row, state = _contractual_month(terms, state, month_index)
        rows.append(row)

        if state.balance <= 0 and state.phase is not SchedulePhase.DEFERRED:
            break

    return _with_running_totals(rows)


def schedule_summary(schedule: list[AmortizationRow]) -> dict[str, Decimal]:
    """Totals across the whole schedule, owned or not."""
    return {
        "payments": sum((r.payment for r in schedule), ZERO),
        "principal": sum((r.principal_paid for r in schedule), ZERO),
        "interest_paid": sum((r.interest_paid for r in schedule), ZERO),
        "interest_capitalized": sum((r.accrued_interest for r in schedule), ZERO),
        "prepayments": sum((r.prepayment for r in schedule), ZERO),
        "fees": sum((r.fee_this_month for r in schedule), ZERO),
        "ending_balance": schedule[-1].balance if schedule else ZERO,
    }
