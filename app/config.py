"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./checkout_flow.db"
    log_level: str = "INFO"

    # Ledger service
    ledger_base_url: str = "http://localhost:5000"
    ledger_timeout_s: float = 15.0  # Explicit per-call timeout

    # Status polling
    poll_interval_ms: int = 5000
    poll_max_attempts: int = 60  # ~5 minutes at the default interval

    # Best-effort failure reporting
    report_failure_retries: int = 2
    retry_base_delay_s: float = 1.0

    # Provider session
    provider_key_id: str = ""
    merchant_name: str = "Smart Business Bookkeeping Sheet"
    product_description: str = "Product Purchase"
    theme_color: str = "#4C5FD5"
    confirmation_url: str = "/orderconfirm"
    default_amount: int = 199

    # Checkout registry
    checkout_ttl_s: float = 1800.0  # Unread checkouts older than this are dropped
    max_checkouts: int = 10000

    mock_latency_ms: int = 100  # Delay between scripted mock provider events

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
