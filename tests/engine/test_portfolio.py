from datetime import date
from decimal import Decimal

from loanfolio.engine.amortization import build_amort_schedule
from loanfolio.engine.portfolio import (
    analyze_loan,
    analyze_portfolio,
    build_expected_income,
    build_loan_tpv_timeline,
    build_stacked_tpv,
    compute_portfolio_totals,
    next_month_expected_income,
)
from loanfolio.models.loan import DefaultEvent, DeferralEvent

TODAY = date(2024, 6, 15)


class TestExpectedIncome:
    def test_from_current_month(self, basic_loan):
        analysis = analyze_loan(basic_loan, TODAY)
        income = build_expected_income([analysis], TODAY)
        assert [p.month for p in income][0] == date(2024, 6, 1)
        assert len(income) == 7
        assert income[0].amount == analysis.schedule[5].payment
        assert income[0].by_loan == {"1": analysis.schedule[5].payment}

    def test_next_month(self, basic_loan):
        analysis = analyze_loan(basic_loan, TODAY)
        assert next_month_expected_income([analysis], TODAY) == analysis.schedule[6].payment

    def test_summed_across_loans(self, basic_loan, loan_factory):
        analyses = [
            analyze_loan(basic_loan, TODAY),
            analyze_loan(loan_factory(id="2"), TODAY),
        ]
        income = build_expected_income(analyses, TODAY)
        assert income[0].amount == 2 * analyses[0].schedule[5].payment
        assert set(income[0].by_loan) == {"1", "2"}

    def test_unowned_months_excluded(self, loan_factory):
        analysis = analyze_loan(loan_factory(purchase_date="2024-09-01"), TODAY)
        income = build_expected_income([analysis], TODAY)
        assert income[0].month == date(2024, 9, 1)

    def test_nothing_after_maturity(self, basic_loan):
        analysis = analyze_loan(basic_loan, TODAY)
        assert build_expected_income([analysis], date(2025, 6, 1)) == []
        assert next_month_expected_income([analysis], date(2025, 6, 1)) == 0


class TestTpv:
    def test_first_point(self, basic_loan):
        schedule = build_amort_schedule(basic_loan)
        first = build_loan_tpv_timeline(basic_loan, schedule)[0]
        assert first.month_key == "2024-01"
        assert first.value == Decimal("10000") + schedule[0].principal_paid

    def test_capitalized_interest_included(self, loan_factory):
        loan = loan_factory(events=[DeferralEvent(date(2024, 2, 1), 2)])
        schedule = build_amort_schedule(loan)
        points = build_loan_tpv_timeline(loan, schedule)
        assert points[2].accrued_interest == schedule[1].accrued_interest + schedule[2].accrued_interest
        assert points[2].cumulative_principal == points[0].cumulative_principal

    def test_only_owned_months(self, loan_factory):
        loan = loan_factory(purchase_date="2024-04-15")
        points = build_loan_tpv_timeline(loan, build_amort_schedule(loan))
        assert len(points) == 9
        assert points[0].month_key == "2024-04"

    def test_stacked_alignment(self, basic_loan, loan_factory):
        later = loan_factory(id="2", name="Later Loan", loan_start_date="2024-07-01",
                             purchase_date="2024-07-01")
        stacked = build_stacked_tpv([analyze_loan(basic_loan, TODAY), analyze_loan(later, TODAY)])

        assert stacked.months[0] == "2024-01"
        assert stacked.months[-1] == "2025-06"
        assert all(len(v) == len(stacked.months) for v in stacked.series_by_loan.values())
        assert stacked.series_by_loan["2"][0] == 0
        assert stacked.loan_names == {"1": "State Loan", "2": "Later Loan"}

        i = stacked.months.index("2024-08")
        assert stacked.totals_by_month[i] == stacked.series_by_loan["1"][i] + stacked.series_by_loan["2"][i]


class TestTotals:
    def test_matured_loan(self, basic_loan):
        totals = compute_portfolio_totals([analyze_loan(basic_loan, TODAY)])
        assert totals.loan_count == 1
        assert totals.total_invested == Decimal("10000.00")
        assert totals.current_value == Decimal("0")

    def test_defaulted_balance_counted(self, loan_factory):
        loan = loan_factory(events=[DefaultEvent(date(2024, 6, 1), Decimal("1000"))])
        analysis = analyze_loan(loan, TODAY)
        totals = compute_portfolio_totals([analysis])
        assert totals.current_value == analysis.schedule[-1].balance
        assert totals.current_value > 0


class TestAnalyzePortfolio:
    def test_bad_loan_isolated(self, basic_loan, loan_factory, caplog):
        bad = loan_factory(id="bad", loan_start_date="01/02/2024")
        result = analyze_portfolio([bad, basic_loan], TODAY)

        assert [a.loan_id for a in result.loans] == ["1"]
        assert "bad" in result.failures
        assert "loanStartDate" in result.failures["bad"]
        assert "Skipping loan bad" in caplog.text
        assert result.totals.loan_count == 1

    def test_holder_filter(self, loan_factory):
        held = loan_factory(allocations={"alice": 50})
        not_held = loan_factory(id="2", allocations={"bob": 100})
        result = analyze_portfolio([held, not_held], TODAY, "alice")

        assert [a.loan_id for a in result.loans] == ["1"]
        assert result.loans[0].ownership_pct == Decimal("0.5")
        assert result.roi_kpis.total_invested == Decimal("5000.00")
        assert result.failures == {}

    def test_full_result(self, basic_loan):
        result = analyze_portfolio([basic_loan], TODAY)
        assert result.today == TODAY
        assert result.earnings_kpis.months_counted == 6
        assert len(result.roi_timeline.per_loan_series) == 1
        assert result.next_month_income > 0
        assert result.tpv.months[0] == "2024-01"
        assert result.loans[0].current_earnings.loan_date == date(2024, 6, 1)

    def test_deterministic(self, basic_loan):
        assert analyze_portfolio([basic_loan], TODAY) == analyze_portfolio([basic_loan], TODAY)

    def test_empty(self):
        result = analyze_portfolio([], TODAY)
        assert result.loans == []
        assert result.roi_kpis.total_invested == 0
