"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./recon.db"

    # External Services
    ledger_webhook_url: str = "http://localhost:8002/mock-ledger"

    # Service
    service_name: str = "recon-gateway"
    log_level: str = "INFO"

    # Matching
    amount_tolerance_cents: int = 0  # Phone + amount stage; 0 means exact
    default_country_code: str = "254"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    webhook_max_retries: int = 5
    webhook_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
