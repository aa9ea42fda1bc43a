# storefront/settings.py
from __future__ import annotations
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


def _parse_cors(v: Optional[str | List[str]]) -> List[str]:
    """
    Accept JSON array (e.g. '["http://localhost:3000"]') or
    comma-separated string ('http://localhost:3000,http://127.0.0.1:3000').
    """
    if v is None:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    if isinstance(v, list):
        return v
    s = v.strip()
    if not s:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    # try JSON first
    try:
        parsed = json.loads(s)
        if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
            return parsed
    except ValueError:
        pass
    # fallback: comma separated
    return [p.strip() for p in s.split(",") if p.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",   # ignore unknown env keys instead of raising
        frozen=True,
    )

    # --- API ---
    api_host: str = Field(default="127.0.0.1", validation_alias=AliasChoices("API_HOST",))
    api_port: int = Field(default=8000,        validation_alias=AliasChoices("API_PORT",))
    cors_origins_raw: Optional[str | List[str]] = Field(
        default=None, validation_alias=AliasChoices("CORS_ORIGINS",)
    )

    # --- Postgres ---
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL",)
    )
    db_pool_min: int = Field(default=2,  validation_alias=AliasChoices("DB_POOL_MIN",))
    db_pool_max: int = Field(default=10, validation_alias=AliasChoices("DB_POOL_MAX",))

    # --- Admin ---
    admin_username: str = Field(default="admin",    validation_alias=AliasChoices("ADMIN_USERNAME",))
    admin_password: str = Field(default="admin123", validation_alias=AliasChoices("ADMIN_PASSWORD",))
    admin_token: str = Field(default="ok-admin",    validation_alias=AliasChoices("ADMIN_TOKEN",))

    # --- Checkout ---
    tax_rate: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("TAX_RATE",))
    shipping_fee: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("SHIPPING_FEE",))
    # orders whose discounted subtotal reaches this ship free
    free_shipping_threshold: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("FREE_SHIPPING_THRESHOLD",)
    )
    currency: str = Field(default="INR", validation_alias=AliasChoices("CURRENCY",))
    order_number_prefix: str = Field(default="ORD", validation_alias=AliasChoices("ORDER_NUMBER_PREFIX",))
    total_tolerance: Decimal = Field(
        default=Decimal("0.01"), validation_alias=AliasChoices("TOTAL_TOLERANCE",)
    )

    # --- Stripe ---
    stripe_secret_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STRIPE_SECRET_KEY",)
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STRIPE_WEBHOOK_SECRET",)
    )

    # --- Logging ---
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL",))
    log_dir: Optional[str] = Field(default=None, validation_alias=AliasChoices("LOG_DIR",))

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors(self.cors_origins_raw)


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process; routes receive it as a dependency."""
    return Settings()
