from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "PayCore"
    ENV: str = "dev"

    # Backend host for pricing, payments and admin endpoints
    API_BASE_URL: str = "http://localhost:5000"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Pricing rules (INR is the pricing basis)
    TAX_RATE: Decimal = Decimal("0.18")  # GST, included in the charged amount
    ANNUAL_DISCOUNT: Decimal = Decimal("0.15")
    INR_USD_RATE: str | None = None  # Operator fallback when live rates are unavailable
    EXCHANGE_RATE_CACHE_SECONDS: int = 900
    # USD-based rate feeds answering {"rates": {"INR": ...}}, tried in order
    EXCHANGE_RATE_URLS: list[str] = [
        "https://api.exchangerate-api.com/v4/latest/USD",
        "https://open.er-api.com/v6/latest/USD",
    ]

    # Payment verification polling
    VERIFY_RETRY_DELAY_SECONDS: float = 3.0
    VERIFY_MAX_ATTEMPTS: int = 20

    # Client-side credential storage
    CREDENTIAL_STORE_PATH: str = ".paycore/credentials.json"
    CREDENTIAL_KEY: str = "token"
    ADMIN_CREDENTIAL_KEY: str = "adminToken"

    # Admin export
    EXPORT_PAGE_SIZE: int = 10_000

    # Seller block printed on invoices
    SELLER_NAME: str = "Startup Builder"
    SELLER_ADDRESS: str = "Chennai, Tamil Nadu, India"
    SELLER_GSTIN: str = "IN07AADCT2341D2Z"
    SELLER_EMAIL: str = "support@startupbuilder.in"

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"

    @field_validator("API_BASE_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Paths are joined with a leading slash, so the base must not end in one."""
        if v is None:
            return v
        return str(v).rstrip("/")

    @model_validator(mode="after")
    def _validate_numeric_fields(self) -> BaseAppSettings:
        if self.TAX_RATE < 0:
            raise ValueError("TAX_RATE must not be negative")
        if not Decimal("0") <= self.ANNUAL_DISCOUNT < Decimal("1"):
            raise ValueError("ANNUAL_DISCOUNT must be in [0, 1)")
        if self.VERIFY_MAX_ATTEMPTS < 1:
            raise ValueError("VERIFY_MAX_ATTEMPTS must be at least 1")
        if self.ENV.lower() == "prod" and self.API_BASE_URL.startswith("http://localhost"):
            raise ValueError("API_BASE_URL must point at a real backend in production")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    API_BASE_URL: str = "http://testserver"
    VERIFY_RETRY_DELAY_SECONDS: float = 0.01
    VERIFY_MAX_ATTEMPTS: int = 5
    INR_USD_RATE: str | None = "83"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    API_BASE_URL: str = "https://api.startupbuilder.in"
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
