"""Fractional loan ownership: allocations per holder plus the Market remainder.

Allocations are percents (0-100); the Market holder always absorbs whatever
the investors have not claimed, so a normalized allocation set sums to 100.
"""

import logging
from dataclasses import replace
from decimal import Decimal, ROUND_HALF_UP

from loanfolio.exceptions import OwnershipError
from loanfolio.models.loan import MARKET, Holder, Loan, Ownership, OwnershipAllocation
from loanfolio.models.results import OwnershipBasis

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")


def _resolve_holder(holder: Holder | str) -> Holder:
    if isinstance(holder, Holder):
        return holder
    return Holder.investor(holder)


def _scale_to_hundred(shares: dict[Holder, Decimal], assigned: Decimal) -> dict[Holder, Decimal]:
    """Scale investor shares down proportionally so they total exactly 100."""
    scaled = {
        h: (p * HUNDRED / assigned).quantize(FOUR_PLACES, ROUND_HALF_UP)
        for h, p in shares.items()
    }
    residue = HUNDRED - sum(scaled.values())
    if residue:
        largest = max(scaled, key=lambda h: scaled[h])
        scaled[largest] += residue
    return scaled


def normalize_ownership(loan: Loan) -> Ownership:
    """Ensure the loan has an allocation set that sums to 100.

    Duplicate holders are merged, non-positive rows dropped, and the Market
    remainder is recomputed and appended last. Idempotent.
    """
    ownership = loan.ownership or Ownership()

    shares: dict[Holder, Decimal] = {}
    for alloc in ownership.allocations:
        if alloc.holder.is_market:
            continue
        if alloc.percent <= 0:
            continue
        shares[alloc.holder] = shares.get(alloc.holder, Decimal("0")) + alloc.percent

    assigned = sum(shares.values(), Decimal("0"))
    if assigned > HUNDRED:
        logger.warning(
            "Loan %s allocations total %s%%, scaling investor shares to 100%%",
            loan.id, assigned,
        )
        shares = _scale_to_hundred(shares, assigned)
        assigned = HUNDRED

    allocations = [OwnershipAllocation(holder=h, percent=p) for h, p in shares.items()]
    allocations.append(OwnershipAllocation(holder=MARKET, percent=HUNDRED - assigned))

    normalized = replace(ownership, allocations=allocations)
    loan.ownership = normalized
    return normalized


def get_ownership_pct(loan: Loan, holder: Holder | str) -> Decimal:
    """Holder's share of the loan as a fraction in [0, 1]."""
    key = _resolve_holder(holder)
    for alloc in loan.ownership.allocations:
        if alloc.holder == key:
            return alloc.percent / HUNDRED
    return Decimal("0")


def is_owned_by(loan: Loan, holder: Holder | str) -> bool:
    return get_ownership_pct(loan, holder) > 0


def get_market_pct(loan: Loan) -> Decimal:
    """Market remainder in percent (0-100)."""
    for alloc in loan.ownership.allocations:
        if alloc.holder.is_market:
            return alloc.percent
    return Decimal("0")


def set_allocation(loan: Loan, holder: Holder | str, percent: Decimal) -> Ownership:
    """Set one investor's percent and rebalance the Market remainder.

    A percent of 0 removes the holder. The Market share cannot be set directly.
    """
    key = _resolve_holder(holder)
    if key.is_market:
        raise OwnershipError("Market share is derived and cannot be allocated", {"loan_id": loan.id})

    percent = Decimal(str(percent))
    if percent < 0 or percent > HUNDRED:
        raise OwnershipError(
            "Allocation percent must be between 0 and 100",
            {"loan_id": loan.id, "holder": key.name, "percent": str(percent)},
        )

    others = [
        a for a in loan.ownership.allocations
        if not a.holder.is_market and a.holder != key
    ]
    claimed = sum((a.percent for a in others), Decimal("0"))
    if claimed + percent > HUNDRED:
        raise OwnershipError(
            "Allocations would exceed 100%",
            {"loan_id": loan.id, "holder": key.name, "available": str(HUNDRED - claimed)},
        )

    if percent > 0:
        others.append(OwnershipAllocation(holder=key, percent=percent))
    loan.ownership = replace(loan.ownership, allocations=others)
    return normalize_ownership(loan)


def ownership_basis(loan: Loan, holder: Holder | str | None = None) -> OwnershipBasis:
    """Owned fraction and capital invested for a holder (or the whole loan).

    Priced ownership lots take precedence when present; otherwise the share
    comes from the allocation table and is priced pro rata off purchase_price.
    """
    key = _resolve_holder(holder) if holder is not None else None

    lots = loan.ownership_lots
    if key is not None:
        lots = [lot for lot in lots if lot.holder == key]
    if lots:
        pct = sum((lot.pct for lot in lots), Decimal("0"))
        invested = sum((lot.price_paid for lot in lots), Decimal("0"))
        return OwnershipBasis(pct=pct, invested=invested.quantize(TWO_PLACES, ROUND_HALF_UP))

    pct = Decimal("1") if key is None else get_ownership_pct(loan, key)
    invested = (pct * loan.purchase_price).quantize(TWO_PLACES, ROUND_HALF_UP)
    return OwnershipBasis(pct=pct, invested=invested)
