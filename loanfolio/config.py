from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Loan store: "http" talks to the proxy, "github" reads/writes the JSON file directly
    loan_store_backend: str = "http"
    loan_store_url: str = "http://localhost:8787"

    # GitHub contents API (used by the "github" backend)
    github_repo: str = ""
    github_branch: str = "main"
    github_loans_path: str = "data/loans.json"
    github_token: str = ""

    request_timeout: float = 15.0

    # App
    debug: bool = False
    log_level: str = "INFO"

    # Holder whose ownership share scales ROI when a request doesn't name one.
    # Empty means whole-loan figures.
    default_holder: str = ""


settings = Settings()
