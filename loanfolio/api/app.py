"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loanfolio.api.routes import loans, portfolio
from loanfolio.config import settings
from loanfolio.exceptions import LoanStoreError

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Loanfolio",
    description="Loan portfolio amortization, earnings and ROI analysis",
    version="0.1.0",
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(loans.router)
app.include_router(portfolio.router)


@app.exception_handler(LoanStoreError)
async def loan_store_error_handler(request: Request, exc: LoanStoreError):
    logger.warning("Loan store error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": exc.message, **exc.details})


@app.get("/health")
async def health():
    return {"status": "ok"}
