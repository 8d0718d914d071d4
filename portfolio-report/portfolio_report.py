"""CLI client for the Loanfolio API. Fetches a portfolio analysis and prints a terminal report.

Usage:
    python portfolio-report/portfolio_report.py
    python portfolio-report/portfolio_report.py --holder alice --today 2024-06-15
    python portfolio-report/portfolio_report.py --loan 3 --rows 24
"""

import argparse
import asyncio
import sys

import httpx


# ── Helpers ──────────────────────────────────────────────────────────────────

def _pct(v) -> str:
    """Format a decimal/float ratio as a percentage string."""
    return f"{float(v) * 100:.2f}%"


def _dollar(v) -> str:
    return f"${float(v):,.2f}"


def _header(title: str) -> None:
    print(f"\n{'=' * 64}")
    print(f"  {title}")
    print(f"{'=' * 64}")


# ── Report sections ──────────────────────────────────────────────────────────

def print_roi_kpis(data: dict) -> None:
    roi = data["roi"]
    holder = data.get("holder") or "whole loans"
    _header(f"Portfolio ROI as of {data['today']} ({holder})")
    print(f"  Total Invested:       {_dollar(roi['total_invested'])}")
    print(f"  Weighted ROI:         {_pct(roi['weighted_roi'])}")
    print(f"  Projected ROI:        {_pct(roi['projected_weighted_roi'])}")
    print(f"  Capital Recovered:    {_dollar(roi['capital_recovered_amount'])}"
          f" ({_pct(roi['capital_recovery_pct'])})")


def print_earnings_kpis(data: dict) -> None:
    earn = data["earnings"]
    _header("Earnings")
    print(f"  Net To Date:          {_dollar(earn['total_net_to_date'])}")
    print(f"  Net Projected:        {_dollar(earn['total_net_projected'])}")
    print(f"  Fees To Date:         {_dollar(earn['total_fees_to_date'])}")
    print(f"  Avg Monthly Net:      {_dollar(earn['avg_monthly_net'])}"
          f" over {earn['months_counted']} months")
    print(f"  Projected Avg/Month:  {_dollar(earn['projected_avg_monthly_net'])}")
    print(f"  Next Month Income:    {_dollar(data['next_month_income'])}")


def print_loan_table(data: dict) -> None:
    loans = data.get("loans", [])
    if not loans:
        return
    _header("Loans")
    print(f"  {'ID':>4}  {'Name':<22}  {'Own':>7}  {'Invested':>12}  {'ROI':>8}  {'Balance':>12}")
    print(f"  {'-' * 4}  {'-' * 22}  {'-' * 7}  {'-' * 12}  {'-' * 8}  {'-' * 12}")
    for loan in loans:
        balance = _dollar(loan["current_balance"]) if loan.get("current_balance") is not None else "N/A"
        print(
            f"  {loan['id']:>4}  {loan['name'][:22]:<22}  {_pct(loan['ownership_pct']):>7}  "
            f"{_dollar(loan['invested']):>12}  {_pct(loan['latest_roi']):>8}  {balance:>12}"
        )

    failures = data.get("failures") or {}
    if failures:
        print()
        for loan_id, reason in failures.items():
            print(f"  Skipped loan {loan_id}: {reason}")


def print_income(data: dict, months: int) -> None:
    points = data.get("months", [])[:months]
    if not points:
        return
    _header(f"Expected Income (next {len(points)} months)")
    for p in points:
        print(f"  {p['month'][:7]}  {_dollar(p['amount']):>12}")


def print_schedule(data: dict, rows: int) -> None:
    _header(f"Schedule: {data['loan_name']} ({data['total_months']} contractual months)")
    print(
        f"  {'#':>4}  {'Month':<7}  {'Phase':<10}  {'Payment':>10}  "
        f"{'Principal':>10}  {'Interest':>9}  {'Balance':>12}"
    )
    for r in data["rows"][:rows]:
        print(
            f"  {r['month_index']:>4}  {r['loan_date'][:7]:<7}  {r['phase']:<10}  "
            f"{_dollar(r['payment']):>10}  {_dollar(r['principal_paid']):>10}  "
            f"{_dollar(r['interest']):>9}  {_dollar(r['balance']):>12}"
        )
    if len(data["rows"]) > rows:
        print(f"  ... {len(data['rows']) - rows} more rows")

    summary = data["summary"]
    print()
    print(f"  Total Payments:       {_dollar(summary['payments'])}")
    print(f"  Interest Paid:        {_dollar(summary['interest_paid'])}")
    print(f"  Interest Capitalized: {_dollar(summary['interest_capitalized'])}")
    print(f"  Fees:                 {_dollar(summary['fees'])}")


# ── Main ─────────────────────────────────────────────────────────────────────

async def _get(client: httpx.AsyncClient, url: str, params: dict) -> dict:
    resp = await client.get(url, params=params)
    if resp.status_code != 200:
        print(f"Error: API returned {resp.status_code}", file=sys.stderr)
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        print(f"  {detail}", file=sys.stderr)
        sys.exit(1)
    return resp.json()


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Print a loan portfolio report via the Loanfolio API"
    )
    parser.add_argument("--today", help="Valuation date YYYY-MM-DD (default: current date)")
    parser.add_argument("--holder", help="Investor whose share to report")
    parser.add_argument("--loan", help="Print the amortization schedule for this loan id")
    parser.add_argument("--rows", type=int, default=36, help="Schedule rows to print (default: 36)")
    parser.add_argument("--income-months", type=int, default=12, help="Income months to print (default: 12)")
    parser.add_argument(
        "--api-url",
        default="http://localhost:8000",
        help="API base URL (default: http://localhost:8000)",
    )

    args = parser.parse_args()

    params = {k: v for k, v in (("today", args.today), ("holder", args.holder)) if v}
    base = f"{args.api_url}/api/v1"

    async with httpx.AsyncClient(timeout=60) as client:
        try:
            if args.loan:
                schedule = await _get(client, f"{base}/loans/{args.loan}/schedule", {})
            else:
                portfolio = await _get(client, f"{base}/portfolio", params)
                income = await _get(client, f"{base}/portfolio/income", params)
        except httpx.ConnectError:
            print(f"Error: Could not connect to API at {args.api_url}", file=sys.stderr)
            print("Is the server running? Start with: uvicorn loanfolio.api.app:app --reload", file=sys.stderr)
            sys.exit(1)
        except httpx.TimeoutException:
            print("Error: Request timed out", file=sys.stderr)
            sys.exit(1)

    if args.loan:
        print_schedule(schedule, args.rows)
    else:
        print_roi_kpis(portfolio)
        print_earnings_kpis(portfolio)
        print_loan_table(portfolio)
        print_income(income, args.income_months)
    print()


if __name__ == "__main__":
    asyncio.run(main())
