"""Raw loan records -> canonical Loan.

Stored records come from several generations of the loan store and disagree
on field names; every alias and default lives here so the engines only ever
see one shape.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from loanfolio.engine.calendar import parse_iso_date
from loanfolio.engine.ownership import normalize_ownership
from loanfolio.exceptions import InvalidLoanDateError
from loanfolio.models.loan import (
    MARKET,
    OWNERSHIP_STEP,
    DefaultEvent,
    DeferralEvent,
    Event,
    EventType,
    Holder,
    HolderKind,
    Loan,
    Ownership,
    OwnershipAllocation,
    OwnershipLot,
    PrepaymentEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_TERM_YEARS = Decimal("10")
DEFAULT_GRACE_YEARS = Decimal("0")
DEFAULT_UPFRONT_FEE = Decimal("150.00")
DEFAULT_MONTHLY_FEE_RATE = Decimal("0.00125")


def _first(raw: dict, *keys):
    """First value among keys that is present and not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _to_decimal(value, field: str, loan_id: str, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce to a non-negative Decimal; invalid or negative input becomes 0."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        logger.warning("Loan %s: boolean %s=%r coerced to 0", loan_id, field, value)
        return Decimal("0")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning("Loan %s: invalid %s=%r coerced to 0", loan_id, field, value)
        return Decimal("0")
    if not number.is_finite() or number < 0:
        logger.warning("Loan %s: invalid %s=%r coerced to 0", loan_id, field, value)
        return Decimal("0")
    return number


def _to_iso_text(value) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value is None:
        return ""
    return str(value).strip()


def _parse_event(raw: dict, loan_id: str) -> Event | None:
    """Parse one raw event dict; malformed events are dropped."""
    if not isinstance(raw, dict):
        logger.warning("Loan %s: ignoring non-object event %r", loan_id, raw)
        return None

    kind = str(raw.get("type", "")).strip().lower()
    try:
        event_type = EventType(kind)
    except ValueError:
        logger.warning("Loan %s: ignoring event with unknown type %r", loan_id, raw.get("type"))
        return None

    try:
        if event_type is EventType.PREPAYMENT:
            return PrepaymentEvent(
                date=parse_iso_date(raw.get("date"), "event date", loan_id),
                amount=_to_decimal(raw.get("amount"), "prepayment amount", loan_id),
            )
        if event_type is EventType.DEFERRAL:
            start = _first(raw, "startDate", "start_date", "date")
            months = _to_decimal(raw.get("months"), "deferral months", loan_id)
            return DeferralEvent(
                start_date=parse_iso_date(start, "deferral startDate", loan_id),
                months=int(months),
            )
        return DefaultEvent(
            date=parse_iso_date(raw.get("date"), "event date", loan_id),
            recovery_amount=_to_decimal(
                _first(raw, "recoveryAmount", "recovery_amount", "amount"),
                "recovery amount",
                loan_id,
            ),
        )
    except InvalidLoanDateError as e:
        logger.warning("Loan %s: dropping %s event: %s", loan_id, event_type.value, e)
        return None


def _parse_events(raw_events, loan_id: str) -> list[Event]:
    if not isinstance(raw_events, list):
        return []
    events = []
    for raw in raw_events:
        event = _parse_event(raw, loan_id)
        if event is None:
            continue
        if isinstance(event, DeferralEvent) and event.months <= 0:
            logger.debug("Loan %s: skipping zero-month deferral at %s", loan_id, event.start_date)
            continue
        events.append(event)
    return events


def _parse_holder(raw: dict) -> Holder:
    kind = raw.get("kind")
    user = raw.get("user")
    if kind == HolderKind.MARKET.value:
        return MARKET
    # Records written before holders were tagged used the bare "market" name
    if kind is None and str(user).strip().lower() == MARKET.name:
        return MARKET
    return Holder.investor(user if user is not None else "")


def _parse_ownership(raw, loan_id: str) -> Ownership:
    if not isinstance(raw, dict):
        return Ownership()
    allocations = []
    for item in raw.get("allocations") or []:
        if not isinstance(item, dict):
            continue
        allocations.append(OwnershipAllocation(
            holder=_parse_holder(item),
            percent=_to_decimal(item.get("percent"), "ownership percent", loan_id),
        ))
    step = raw.get("step")
    return Ownership(
        allocations=allocations,
        unit=str(raw.get("unit") or "percent"),
        step=int(step) if isinstance(step, int) and step > 0 else OWNERSHIP_STEP,
    )


def _parse_lots(raw_lots, loan_id: str) -> list[OwnershipLot]:
    if not isinstance(raw_lots, list):
        return []
    lots = []
    for item in raw_lots:
        if not isinstance(item, dict):
            continue
        lots.append(OwnershipLot(
            holder=_parse_holder(item),
            pct=_to_decimal(item.get("pct"), "lot pct", loan_id),
            price_paid=_to_decimal(_first(item, "pricePaid", "price_paid"), "lot pricePaid", loan_id),
            date=_to_iso_text(item.get("date")) or None,
        ))
    return lots


def normalize_loan(raw: dict, index: int = 0) -> Loan:
    """Build a canonical Loan from a raw record.

    Args:
        raw: Record as stored (camelCase keys, legacy aliases allowed)
        index: Position in the source list, used for a fallback id
    """
    loan_id = str(_first(raw, "id", "loanId") or index + 1)

    name = str(_first(raw, "name", "loanName") or f"Loan {loan_id}")
    school = _first(raw, "school", "institution")
    if not school:
        school = name.split(" ")[0] if " " in name else "School"

    principal = _to_decimal(
        _first(raw, "principal", "origLoanAmt", "originalBalance", "purchasePrice"),
        "principal",
        loan_id,
    )
    purchase_price = _to_decimal(
        _first(raw, "purchasePrice", "buyPrice"), "purchasePrice", loan_id, default=principal
    )

    loan_start = _to_iso_text(_first(raw, "loanStartDate", "startDate", "purchaseDate"))
    purchase = _to_iso_text(_first(raw, "purchaseDate")) or loan_start

    loan = Loan(
        id=loan_id,
        name=name,
        school=str(school),
        loan_start_date=loan_start,
        purchase_date=purchase,
        principal=principal,
        purchase_price=purchase_price,
        nominal_rate=_to_decimal(_first(raw, "nominalRate", "rate"), "nominalRate", loan_id),
        term_years=_to_decimal(
            _first(raw, "termYears", "term"), "termYears", loan_id, default=DEFAULT_TERM_YEARS
        ),
        grace_years=_to_decimal(
            _first(raw, "graceYears", "grace"), "graceYears", loan_id, default=DEFAULT_GRACE_YEARS
        ),
        upfront_fee=_to_decimal(
            _first(raw, "upfrontFee", "upfront_fee"), "upfrontFee", loan_id, default=DEFAULT_UPFRONT_FEE
        ),
        monthly_fee_rate=_to_decimal(
            _first(raw, "monthlyFeeRate", "monthly_fee_rate"),
            "monthlyFeeRate",
            loan_id,
            default=DEFAULT_MONTHLY_FEE_RATE,
        ),
        events=_parse_events(raw.get("events"), loan_id),
        ownership=_parse_ownership(raw.get("ownership"), loan_id),
        ownership_lots=_parse_lots(raw.get("ownershipLots"), loan_id),
    )
    normalize_ownership(loan)
    return loan


def normalize_loans(records: list) -> list[Loan]:
    """Normalize a batch; a record that is not an object is skipped."""
    loans = []
    for idx, raw in enumerate(records or []):
        if not isinstance(raw, dict):
            logger.warning("Skipping loan record %d: expected an object, got %s", idx, type(raw).__name__)
            continue
        loans.append(normalize_loan(raw, idx))
    return loans


def _event_to_record(event: Event) -> dict:
    if isinstance(event, PrepaymentEvent):
        return {"type": "prepayment", "date": event.date.isoformat(), "amount": float(event.amount)}
    if isinstance(event, DeferralEvent):
        return {"type": "deferral", "startDate": event.start_date.isoformat(), "months": event.months}
    return {
        "type": "default",
        "date": event.date.isoformat(),
        "recoveryAmount": float(event.recovery_amount),
    }


def _holder_to_record(holder: Holder) -> dict:
    return {"user": holder.name, "kind": holder.kind.value}


def loan_to_record(loan: Loan) -> dict:
    """Serialize a Loan back to the stored camelCase JSON shape."""
    return {
        "id": loan.id,
        "name": loan.name,
        "school": loan.school,
        "loanStartDate": loan.loan_start_date,
        "purchaseDate": loan.purchase_date,
        "principal": float(loan.principal),
        "purchasePrice": float(loan.purchase_price),
        "nominalRate": float(loan.nominal_rate),
        "termYears": float(loan.term_years),
        "graceYears": float(loan.grace_years),
        "upfrontFee": float(loan.upfront_fee),
        "monthlyFeeRate": float(loan.monthly_fee_rate),
        "events": [_event_to_record(e) for e in loan.events],
        "ownership": {
            "unit": loan.ownership.unit,
            "step": loan.ownership.step,
            "allocations": [
                {**_holder_to_record(a.holder), "percent": float(a.percent)}
                for a in loan.ownership.allocations
            ],
        },
        "ownershipLots": [
            {
                **_holder_to_record(lot.holder),
                "pct": float(lot.pct),
                "pricePaid": float(lot.price_paid),
                "date": lot.date,
            }
            for lot in loan.ownership_lots
        ],
    }
