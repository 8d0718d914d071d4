"""Exception hierarchy for loanfolio."""


class LoanfolioError(Exception):
    """Base exception for all loanfolio errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidLoanDateError(LoanfolioError, ValueError):
    """Raised when a loan's start or purchase date cannot be parsed."""

    def __init__(self, field: str, value, loan_id: str | None = None):
        details = {"field": field, "value": value}
        if loan_id:
            details["loan_id"] = loan_id
        super().__init__(f"Invalid {field}: {value!r}", details)
        self.field = field
        self.value = value
        self.loan_id = loan_id


class OwnershipError(LoanfolioError):
    """Raised when an allocation change would break the ownership invariants."""
    pass


class LoanStoreError(LoanfolioError):
    """Raised when the loan store cannot be read or written."""
    pass
