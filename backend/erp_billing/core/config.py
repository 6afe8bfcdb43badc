from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global settings of the billing engine.
    Values are read from the environment and the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "ERP Billing API"
    api_v1_str: str = "/api/v1"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./erp_billing.db"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8000",
    ]

    # Billing
    billing_default_periods: int = 12
    billing_auto_renewal_window_days: int = 7
    billing_payment_term_days: int = 14
    billing_default_tax_rate: Decimal = Decimal("0")
    billing_number_max_attempts: int = 50
    billing_upcoming_days: int = 30


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
