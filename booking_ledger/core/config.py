"""Application configuration using pydantic settings with structured sections."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./booking_ledger.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None


class CurrencySettings(BaseModel):
    default_currency: str = "USD"
    reference_currency: str = "USD"
    # units of each currency per one unit of the reference currency
    rates: dict[str, Decimal] = Field(
        default_factory=lambda: {"USD": Decimal("1"), "INR": Decimal("83")}
    )


class WalletSettings(BaseModel):
    currency_change_cooldown_seconds: int = Field(default=3600, ge=0)
    max_write_attempts: int = Field(default=5, ge=1)


class GatewaySettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_version: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    initial_delay_seconds: float = 1.0
    backoff_factor: float = 2.0
    max_delay_seconds: float = 60.0
    interval_seconds: float = 3600.0
    startup_delay_seconds: float = 10.0
    lookback_hours: int = 24
    claim_timeout_seconds: int = 900


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    project_name: str = "Booking Ledger"

    database: DatabaseSettings = DatabaseSettings()
    currency: CurrencySettings = CurrencySettings()
    wallet: WalletSettings = WalletSettings()
    gateway: GatewaySettings = GatewaySettings()
    retry: RetrySettings = RetrySettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def default_currency(self) -> str:
        return self.currency.default_currency


@lru_cache()
def get_settings() -> Settings:
    return Settings()
