"""FastAPI dependency injection."""

from fastapi import Depends

from loanfolio.data.base import LoanStore
from loanfolio.data.loan_store import create_loan_store
from loanfolio.engine.normalizer import normalize_loans
from loanfolio.models.loan import Loan


def get_loan_store() -> LoanStore:
    return create_loan_store()


async def get_loans(store: LoanStore = Depends(get_loan_store)) -> list[Loan]:
    """Fetch and normalize the current loan records."""
    return normalize_loans(await store.fetch_loans())
