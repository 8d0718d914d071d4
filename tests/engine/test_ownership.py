from decimal import Decimal

import pytest

from loanfolio.engine.ownership import (
    get_market_pct,
    get_ownership_pct,
    is_owned_by,
    normalize_ownership,
    ownership_basis,
    set_allocation,
)
from loanfolio.exceptions import OwnershipError
from loanfolio.models.loan import (
    MARKET,
    Holder,
    HolderKind,
    Ownership,
    OwnershipAllocation,
    OwnershipLot,
)


class TestNormalizeOwnership:
    def test_unowned_loan_is_all_market(self, basic_loan):
        allocations = basic_loan.ownership.allocations
        assert len(allocations) == 1
        assert allocations[0].holder == MARKET
        assert allocations[0].percent == Decimal("100")

    def test_market_absorbs_remainder(self, loan_factory):
        loan = loan_factory(allocations={"alice": 60})
        assert loan.ownership.total_percent == Decimal("100")
        assert get_market_pct(loan) == Decimal("40")
        assert loan.ownership.allocations[-1].holder.is_market

    def test_idempotent(self, loan_factory):
        loan = loan_factory(allocations={"alice": 35, "bob": 15})
        once = loan.ownership
        twice = normalize_ownership(loan)
        assert twice == once

    def test_duplicates_merged(self, loan_factory):
        loan = loan_factory()
        loan.ownership = Ownership(allocations=[
            OwnershipAllocation(Holder.investor("alice"), Decimal("20")),
            OwnershipAllocation(Holder.investor("Alice "), Decimal("10")),
        ])
        normalize_ownership(loan)
        assert get_ownership_pct(loan, "alice") == Decimal("0.3")
        assert len(loan.ownership.allocations) == 2

    def test_stale_market_row_recomputed(self, loan_factory):
        loan = loan_factory()
        loan.ownership = Ownership(allocations=[
            OwnershipAllocation(Holder.investor("alice"), Decimal("25")),
            OwnershipAllocation(MARKET, Decimal("10")),
        ])
        normalize_ownership(loan)
        assert get_market_pct(loan) == Decimal("75")

    def test_over_allocation_scaled(self, loan_factory, caplog):
        loan = loan_factory(allocations={"alice": 80, "bob": 40})
        assert loan.ownership.total_percent == Decimal("100")
        assert get_market_pct(loan) == Decimal("0")
        assert get_ownership_pct(loan, "alice") > get_ownership_pct(loan, "bob")
        assert "scaling" in caplog.text

    def test_investor_named_market_is_distinct(self, loan_factory):
        loan = loan_factory()
        loan.ownership = Ownership(allocations=[
            OwnershipAllocation(Holder(HolderKind.INVESTOR, "market"), Decimal("20")),
        ])
        normalize_ownership(loan)
        assert get_ownership_pct(loan, Holder.investor("market")) == Decimal("0.2")
        assert get_market_pct(loan) == Decimal("80")

    def test_non_positive_rows_dropped(self, loan_factory):
        loan = loan_factory(allocations={"alice": 0, "bob": 10})
        holders = [a.holder.name for a in loan.ownership.allocations]
        assert holders == ["bob", "market"]


class TestOwnershipQueries:
    def test_case_insensitive_lookup(self, loan_factory):
        loan = loan_factory(allocations={"alice": 50})
        assert get_ownership_pct(loan, " ALICE ") == Decimal("0.5")

    def test_unknown_holder(self, loan_factory):
        loan = loan_factory(allocations={"alice": 50})
        assert get_ownership_pct(loan, "bob") == Decimal("0")
        assert not is_owned_by(loan, "bob")
        assert is_owned_by(loan, "alice")


class TestSetAllocation:
    def test_rebalances_market(self, loan_factory):
        loan = loan_factory(allocations={"alice": 50})
        set_allocation(loan, "alice", Decimal("30"))
        assert get_market_pct(loan) == Decimal("70")

    def test_adds_new_holder(self, loan_factory):
        loan = loan_factory(allocations={"alice": 50})
        set_allocation(loan, "bob", 25)
        assert get_ownership_pct(loan, "bob") == Decimal("0.25")
        assert get_market_pct(loan) == Decimal("25")

    def test_zero_removes_holder(self, loan_factory):
        loan = loan_factory(allocations={"alice": 50})
        set_allocation(loan, "alice", 0)
        assert not is_owned_by(loan, "alice")
        assert get_market_pct(loan) == Decimal("100")

    def test_exceeding_hundred_rejected(self, loan_factory):
        loan = loan_factory(allocations={"alice": 70})
        with pytest.raises(OwnershipError):
            set_allocation(loan, "bob", 40)
        assert get_market_pct(loan) == Decimal("30")

    def test_market_cannot_be_set(self, basic_loan):
        with pytest.raises(OwnershipError):
            set_allocation(basic_loan, MARKET, 10)

    @pytest.mark.parametrize("percent", [-5, 101])
    def test_out_of_range(self, basic_loan, percent):
        with pytest.raises(OwnershipError):
            set_allocation(basic_loan, "alice", percent)


class TestOwnershipBasis:
    def test_whole_loan(self, loan_factory):
        loan = loan_factory(purchase_price=Decimal("9000"))
        basis = ownership_basis(loan)
        assert basis.pct == Decimal("1")
        assert basis.invested == Decimal("9000.00")

    def test_allocation_share(self, loan_factory):
        loan = loan_factory(purchase_price=Decimal("8000"), allocations={"alice": 50})
        basis = ownership_basis(loan, "alice")
        assert basis.pct == Decimal("0.5")
        assert basis.invested == Decimal("4000.00")

    def test_lots_take_precedence(self, loan_factory):
        loan = loan_factory(
            allocations={"alice": 50},
            ownership_lots=[
                OwnershipLot(Holder.investor("alice"), Decimal("0.25"), Decimal("2100"), "2024-01-15"),
                OwnershipLot(Holder.investor("alice"), Decimal("0.10"), Decimal("900"), "2024-03-01"),
                OwnershipLot(Holder.investor("bob"), Decimal("0.5"), Decimal("5000")),
            ],
        )
        basis = ownership_basis(loan, "alice")
        assert basis.pct == Decimal("0.35")
        assert basis.invested == Decimal("3000.00")
