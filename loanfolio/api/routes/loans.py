"""Loan dataset routes: read and replace the stored loan records."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from loanfolio.api.deps import get_loan_store
from loanfolio.api.schemas import AllocationRequest, AllocationResponse, OwnershipResponse
from loanfolio.data.base import LoanStore
from loanfolio.data.loan_store import GitHubLoanStore, loans_from_payload
from loanfolio.engine.normalizer import loan_to_record, normalize_loans
from loanfolio.engine.ownership import get_market_pct, set_allocation
from loanfolio.exceptions import OwnershipError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["loans"])


@router.get("/loans")
async def get_loans(store: LoanStore = Depends(get_loan_store)):
    """Normalized loan records, plus the GitHub blob sha when that backend is active."""
    sha = None
    if isinstance(store, GitHubLoanStore):
        records, sha = await store.fetch_snapshot()
    else:
        records = await store.fetch_loans()

    loans = normalize_loans(records)
    return {"loans": [loan_to_record(loan) for loan in loans], "sha": sha}


@router.put("/loans")
async def put_loans(
    payload: list[dict[str, Any]] | dict[str, Any] = Body(...),
    store: LoanStore = Depends(get_loan_store),
):
    """Replace the dataset. Records are normalized before they are written."""
    loans = normalize_loans(loans_from_payload(payload))
    await store.save_loans([loan_to_record(loan) for loan in loans])
    return {"status": "ok", "count": len(loans)}


@router.put("/api/v1/loans/{loan_id}/ownership", response_model=OwnershipResponse)
async def put_allocation(
    loan_id: str,
    req: AllocationRequest,
    store: LoanStore = Depends(get_loan_store),
):
    """Set one investor's share of a loan; Market absorbs the remainder."""
    loans = normalize_loans(await store.fetch_loans())
    loan = next((item for item in loans if item.id == loan_id), None)
    if loan is None:
        raise HTTPException(status_code=404, detail=f"Loan {loan_id} not found")

    try:
        ownership = set_allocation(loan, req.holder, req.percent)
    except OwnershipError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await store.save_loans([loan_to_record(item) for item in loans])
    logger.info("Set %s to %s%% of loan %s", req.holder, req.percent, loan_id)

    return OwnershipResponse(
        loan_id=loan.id,
        unit=ownership.unit,
        step=ownership.step,
        allocations=[
            AllocationResponse(holder=a.holder.name, kind=a.holder.kind.value, percent=a.percent)
            for a in ownership.allocations
        ],
        market_percent=get_market_pct(loan),
    )
