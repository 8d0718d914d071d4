"""Canonical test fixtures used across all engine tests.

Fixture: $10K loan, 12% nominal rate (1% a month), 1-year term, no grace,
started and bought on 2024-01-15.
"""

import pytest
from decimal import Decimal

from loanfolio.engine.ownership import normalize_ownership
from loanfolio.models.loan import Holder, Loan, Ownership, OwnershipAllocation


def _make_loan(**overrides) -> Loan:
    """Build a normalized Loan; any field can be overridden."""
    allocations = overrides.pop("allocations", None)
    values = dict(
        id="1",
        name="State Loan",
        school="State",
        loan_start_date="2024-01-15",
        purchase_date="2024-01-15",
        principal=Decimal("10000"),
        purchase_price=Decimal("10000"),
        nominal_rate=Decimal("0.12"),
        term_years=Decimal("1"),
        grace_years=Decimal("0"),
    )
    values.update(overrides)
    loan = Loan(**values)
    if allocations:
        loan.ownership = Ownership(allocations=[
            OwnershipAllocation(holder=Holder.investor(name), percent=Decimal(str(pct)))
            for name, pct in allocations.items()
        ])
    normalize_ownership(loan)
    return loan


@pytest.fixture
def basic_loan() -> Loan:
    """$10K at 12% over one year, no events, fees at their defaults."""
    return _make_loan()


@pytest.fixture
def feeless_loan() -> Loan:
    return _make_loan(upfront_fee=Decimal("0"), monthly_fee_rate=Decimal("0"))


@pytest.fixture
def raw_records() -> list[dict]:
    """Stored records as the loan store returns them."""
    return [
        {
            "id": "1",
            "name": "State Loan",
            "school": "State",
            "loanStartDate": "2024-01-15",
            "purchaseDate": "2024-01-15",
            "principal": 10000,
            "purchasePrice": 9500,
            "nominalRate": 0.12,
            "termYears": 1,
            "graceYears": 0,
            "ownership": {
                "unit": "percent",
                "step": 5,
                "allocations": [{"user": "alice", "percent": 60}],
            },
        },
        {
            "loanId": "2",
            "loanName": "Tech Institute",
            "origLoanAmt": "5000",
            "rate": "0.06",
            "term": 2,
            "startDate": "2024-03-01",
            "events": [{"type": "prepayment", "date": "2024-06-10", "amount": 1000}],
        },
    ]


@pytest.fixture
def loan_factory():
    """Callable building a normalized Loan from keyword overrides."""
    return _make_loan
