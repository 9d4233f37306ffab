from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    APP_NAME: str = "formrelay"
    APP_DATABASE_DSN: str = "sqlite:////tmp/formrelay.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Request log store
    logging_enabled: bool = True
    log_retention_days: int = 30
    sensitive_patterns: list[str] = Field(default_factory=list)

    # Outbound delivery
    default_max_retries: int = Field(default=3, ge=0, le=10)
    default_retry_delay: float = Field(default=1.0, ge=0)
    request_timeout: float = 30.0
    max_redirects: int = 5

    # Manual replay limits
    max_manual_retries: int = 3
    max_retries_per_hour: int = 10

    # Export
    export_limit: int = 10000

    # Error-rate alerts
    alerts_enabled: bool = False
    alert_recipients: str = ""
    alert_error_threshold: int = 10
    alert_rate_threshold: float = 20.0
    alert_cooldown_hours: int = 4


settings = Settings()
