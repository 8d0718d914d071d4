from datetime import date
from decimal import Decimal, ROUND_HALF_UP

import pytest

from loanfolio.engine.amortization import build_amort_schedule
from loanfolio.engine.portfolio import analyze_loan
from loanfolio.engine.roi import (
    LIQUIDATION_DISCOUNT,
    build_projected_timeline,
    build_roi_series,
    compute_kpis,
    compute_weighted_roi_as_of_month,
    get_loan_maturity_date,
    get_roi_entry_as_of_month,
)
from loanfolio.models.loan import DefaultEvent, DeferralEvent

TODAY = date(2024, 6, 15)
SIX_PLACES = Decimal("0.000001")


def _series(loan, holder=None):
    return build_roi_series(loan, build_amort_schedule(loan), holder)


class TestBuildRoiSeries:
    def test_first_owned_month_without_realized_gain(self, loan_factory):
        """Grace month with no fees: value is the discounted balance share alone."""
        loan = loan_factory(
            purchase_price=Decimal("9000"),
            grace_years=Decimal("1"),
            upfront_fee=Decimal("0"),
            monthly_fee_rate=Decimal("0"),
            allocations={"alice": 50},
        )
        first = _series(loan, "alice")[0]

        pct = Decimal("0.5")
        invested = Decimal("4500.00")
        expected = (first.balance * LIQUIDATION_DISCOUNT * pct - invested) / invested
        assert first.realized == Decimal("0")
        assert first.balance == Decimal("10100.00")
        assert first.invested == invested
        assert first.roi == expected.quantize(SIX_PLACES, ROUND_HALF_UP)
        assert first.roi == Decimal("0.066111")

    def test_one_entry_per_owned_month(self, basic_loan):
        series = _series(basic_loan)
        assert len(series) == 12
        assert [e.month for e in series] == list(range(1, 13))

    def test_starts_at_purchase(self, loan_factory):
        series = _series(loan_factory(purchase_date="2024-04-15"))
        assert len(series) == 9
        assert series[0].date == date(2024, 4, 1)
        assert series[0].month == 1

    def test_terminal_row_excluded(self, loan_factory):
        loan = loan_factory(events=[DefaultEvent(date(2024, 6, 1), Decimal("1000"))])
        series = _series(loan)
        assert len(series) == 5
        assert series[-1].date == date(2024, 5, 1)

    def test_matured_loan_value_is_realized(self, basic_loan):
        last = _series(basic_loan)[-1]
        assert last.unrealized == Decimal("0")
        assert last.loan_value == last.realized
        assert last.realized == last.cum_principal + last.cum_interest - last.cum_fees
        assert last.roi > 0

    def test_holder_share_scales_value(self, loan_factory):
        loan = loan_factory(allocations={"alice": 25})
        whole = _series(loan)[3]
        share = _series(loan, "alice")[3]
        assert share.ownership_pct == Decimal("0.25")
        assert share.invested == Decimal("2500.00")
        assert share.roi == pytest.approx(whole.roi, abs=Decimal("0.00001"))

    def test_zero_invested(self, loan_factory):
        series = _series(loan_factory(purchase_price=Decimal("0")))
        assert all(e.roi == 0 for e in series)

    def test_never_owned(self, loan_factory):
        assert _series(loan_factory(purchase_date="2026-01-01")) == []


class TestRoiLookup:
    def test_entry_in_month(self, basic_loan):
        entry = get_roi_entry_as_of_month(_series(basic_loan), date(2024, 6, 20))
        assert entry.date == date(2024, 6, 1)

    def test_before_first_entry(self, basic_loan):
        assert get_roi_entry_as_of_month(_series(basic_loan), date(2023, 12, 1)) is None

    def test_after_last_entry(self, basic_loan):
        series = _series(basic_loan)
        assert get_roi_entry_as_of_month(series, date(2030, 1, 1)) is series[-1]


class TestWeightedRoi:
    def test_capital_weighted(self, basic_loan, loan_factory):
        small = loan_factory(id="2", principal=Decimal("2000"), purchase_price=Decimal("1500"))
        a = analyze_loan(basic_loan, TODAY)
        b = analyze_loan(small, TODAY)

        ea = get_roi_entry_as_of_month(a.roi_series, TODAY)
        eb = get_roi_entry_as_of_month(b.roi_series, TODAY)
        expected = (ea.roi * ea.invested + eb.roi * eb.invested) / (ea.invested + eb.invested)
        assert compute_weighted_roi_as_of_month([a, b], TODAY) == expected.quantize(
            SIX_PLACES, ROUND_HALF_UP
        )

    def test_no_entries(self, basic_loan):
        analysis = analyze_loan(basic_loan, TODAY)
        assert compute_weighted_roi_as_of_month([analysis], date(2020, 1, 1)) == 0


class TestMaturity:
    def test_contractual_maturity(self, basic_loan):
        assert get_loan_maturity_date(basic_loan) == date(2024, 12, 1)

    def test_deferral_extends_maturity(self, loan_factory):
        loan = loan_factory(events=[DeferralEvent(date(2024, 2, 1), 3)])
        assert get_loan_maturity_date(loan, build_amort_schedule(loan)) == date(2025, 3, 1)


class TestProjectedTimeline:
    @pytest.fixture
    def analyses(self, basic_loan, loan_factory):
        later = loan_factory(id="2", name="Later Loan", loan_start_date="2024-04-01",
                             purchase_date="2024-04-01")
        return [analyze_loan(basic_loan, TODAY), analyze_loan(later, TODAY)]

    def test_calendar_spans_purchase_to_maturity(self, analyses):
        timeline = build_projected_timeline(analyses)
        assert timeline.dates[0] == date(2024, 1, 1)
        assert timeline.dates[-1] == date(2025, 3, 1)
        assert len(timeline.dates) == 15
        assert len(timeline.weighted_series) == 15

    def test_none_before_purchase(self, analyses):
        later = build_projected_timeline(analyses).per_loan_series[1]
        assert [p.y for p in later.data[:3]] == [None, None, None]
        assert later.data[3].y == analyses[1].roi_series[0].roi

    def test_forward_filled_after_last_observation(self, analyses):
        first = build_projected_timeline(analyses).per_loan_series[0]
        assert first.data[-1].y == analyses[0].roi_series[-1].roi
        assert first.data[-1].date == date(2025, 3, 1)

    def test_weighted_series(self, analyses):
        timeline = build_projected_timeline(analyses)
        assert timeline.weighted_series[0].y == analyses[0].roi_series[0].roi

    def test_loan_without_observations(self, basic_loan, loan_factory):
        never = loan_factory(id="3", purchase_date="2026-01-01")
        timeline = build_projected_timeline([
            analyze_loan(basic_loan, TODAY),
            analyze_loan(never, TODAY),
        ])
        assert all(p.y is None for p in timeline.per_loan_series[1].data)

    def test_empty(self):
        assert build_projected_timeline([]).dates == []


class TestComputeKpis:
    def test_single_loan(self, basic_loan):
        analysis = analyze_loan(basic_loan, TODAY)
        kpis = compute_kpis([analysis], TODAY)

        recovered = sum(r.principal_paid for r in analysis.schedule[:6])
        assert kpis.total_invested == Decimal("10000.00")
        assert kpis.capital_recovered_amount == recovered
        assert kpis.capital_recovery_pct == (recovered / Decimal("10000")).quantize(SIX_PLACES)
        assert kpis.projected_weighted_roi == analysis.roi_series[-1].roi
        assert kpis.weighted_roi == analysis.roi_series[5].roi

    def test_no_loans(self):
        kpis = compute_kpis([], TODAY)
        assert kpis.total_invested == 0
        assert kpis.weighted_roi == 0
