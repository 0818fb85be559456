"""Runtime settings for the marketplace core.

Values come from environment variables prefixed with ``MARKET_`` (or a local
``.env`` file). Domain-level protean configuration stays with each domain;
this module only carries the knobs the store client, monitor and orchestrator
need at runtime.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketSettings(BaseSettings):
    """Settings for relay access, payment monitoring and invoicing."""

    model_config = SettingsConfigDict(env_prefix="MARKET_", env_file=".env", extra="ignore")

    # Message store. Comma-separated relay URLs.
    relays: str = "wss://relay.damus.io,wss://nos.lol"
    dedupe_capacity: int = 10_000
    quarantine_capacity: int = 256
    catch_up_timeout_seconds: float = 10.0
    fetch_timeout_seconds: float = 30.0

    # Payment monitoring
    receipt_lookback_seconds: int = 60
    monitor_timeout_seconds: float = 90.0
    receipt_amount_tolerance: int = 2

    # Invoicing
    invoice_expiry_seconds: int = 3600
    lnurl_timeout_seconds: float = 30.0

    # Observability
    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("dedupe_capacity", "quarantine_capacity")
    @classmethod
    def positive_capacity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("capacity must be positive")
        return v

    @property
    def relay_urls(self) -> list[str]:
        return [url.strip() for url in self.relays.split(",") if url.strip()]


@lru_cache
def get_settings() -> MarketSettings:
    return MarketSettings()
