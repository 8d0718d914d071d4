"""Loan store clients.

HttpLoanStore talks to the thin proxy in front of the JSON store.
GitHubLoanStore reads and writes the JSON file through the GitHub contents
API, which is what that proxy does on its side.
"""

import base64
import json
import logging

import httpx

from loanfolio.config import settings
from loanfolio.exceptions import LoanStoreError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
COMMIT_MESSAGE = "Update loans dataset"


def loans_from_payload(payload) -> list[dict]:
    """Accept either a bare list or a {"loans": [...]} envelope."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("loans"), list):
        return payload["loans"]
    return []


class HttpLoanStore:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.loan_store_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch_loans(self) -> list[dict]:
        """GET /loans. Failures are logged and yield an empty list."""
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}/loans")
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Loan store fetch failed: %s", e)
            return []
        except ValueError as e:
            logger.warning("Loan store returned invalid JSON: %s", e)
            return []

        return loans_from_payload(data)

    async def save_loans(self, loans: list[dict]) -> dict:
        """PUT /loans with the full record list."""
        try:
            async with self._client() as client:
                resp = await client.put(f"{self.base_url}/loans", json={"loans": loans})
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            raise LoanStoreError("Loan store save failed", {"error": str(e)}) from e
        except ValueError as e:
            raise LoanStoreError("Loan store returned invalid JSON", {"error": str(e)}) from e


class GitHubLoanStore:
    def __init__(
        self,
        repo: str | None = None,
        branch: str | None = None,
        path: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.repo = repo or settings.github_repo
        self.branch = branch or settings.github_branch
        self.path = path or settings.github_loans_path
        self.token = token or settings.github_token
        self.timeout = timeout or settings.request_timeout
        self._transport = transport

    @property
    def contents_url(self) -> str:
        return f"{GITHUB_API_URL}/repos/{self.repo}/contents/{self.path}"

    def _headers(self) -> dict[str, str]:
        if not self.token:
            raise LoanStoreError("Missing GitHub token", {"repo": self.repo})
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _read(self, client: httpx.AsyncClient) -> tuple[list[dict], str | None]:
        resp = await client.get(
            self.contents_url, params={"ref": self.branch}, headers=self._headers()
        )
        resp.raise_for_status()
        payload = resp.json()

        raw = base64.b64decode(payload.get("content") or "")
        content = json.loads(raw) if raw.strip() else []
        return loans_from_payload(content), payload.get("sha")

    async def fetch_snapshot(self) -> tuple[list[dict], str | None]:
        """Loans plus the blob sha a subsequent write must reference."""
        try:
            async with self._client() as client:
                return await self._read(client)
        except httpx.HTTPError as e:
            raise LoanStoreError("GitHub fetch failed", {"repo": self.repo, "error": str(e)}) from e
        except ValueError as e:
            raise LoanStoreError("GitHub loans file is not valid JSON", {"path": self.path}) from e

    async def fetch_loans(self) -> list[dict]:
        loans, _ = await self.fetch_snapshot()
        return loans

    async def save_loans(self, loans: list[dict]) -> dict:
        """Overwrite the loans file, referencing the current sha."""
        encoded = base64.b64encode(json.dumps({"loans": loans}, indent=2).encode()).decode()
        try:
            async with self._client() as client:
                _, sha = await self._read(client)
                body = {
                    "message": COMMIT_MESSAGE,
                    "content": encoded,
                    "sha": sha,
                    "branch": self.branch,
                }
                resp = await client.put(self.contents_url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise LoanStoreError("GitHub write failed", {"repo": self.repo, "error": str(e)}) from e
        except ValueError as e:
            raise LoanStoreError("GitHub loans file is not valid JSON", {"path": self.path}) from e

        logger.info("Saved %d loans to %s/%s", len(loans), self.repo, self.path)
        return {"status": "ok", "count": len(loans)}


def create_loan_store() -> HttpLoanStore | GitHubLoanStore:
    """Store selected by settings.loan_store_backend."""
    if settings.loan_store_backend == "github":
        return GitHubLoanStore()
    return HttpLoanStore()
