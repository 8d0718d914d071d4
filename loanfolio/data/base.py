"""Protocol definitions for data sources.

The engine never performs I/O; callers fetch raw loan records through a
LoanStore and hand the normalized loans to the engine.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class LoanStore(Protocol):
    async def fetch_loans(self) -> list[dict]:
        """Fetch the raw loan records."""
        ...

    async def save_loans(self, loans: list[dict]) -> dict:
        """Replace the stored loan records; returns an acknowledgement."""
        ...
