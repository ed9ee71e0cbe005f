"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./syncbridge.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Webhooks
    # When a secret is set, requests from that system must carry a valid HMAC-SHA256
    # signature of the raw body. When unset, signatures are not checked.
    redmine_webhook_secret: str | None = None
    jira_webhook_secret: str | None = None
    # Pending sync logs younger than this suppress duplicate webhook deliveries.
    idempotency_window_minutes: int = 5

    # Sync jobs
    sync_max_attempts: int = 3
    # Comma-separated delays (seconds) before the 1st, 2nd, ... automatic retry.
    # The last value is reused once the list is exhausted.
    sync_backoff_seconds: str = "60,300,900"
    http_timeout_seconds: float = 30.0
    worker_max_concurrent: int = 4
    # Delay before re-running a job whose issue is already being synced by another worker.
    lease_retry_seconds: int = 5

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, the operator API is protected by HTTP Basic auth.
    # /health and the webhook endpoints stay open (webhooks use signatures instead).
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
