"""
Configuration loaded from environment variables (and .env). Validated once at load time.
"""

from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import Field


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Detection thresholds
    # Minimum profit per share ($) before an opportunity is reported
    min_profit_threshold: float = Field(default=0.001, ge=0)
    # Binary markets below this liquidity figure ($) are never reported
    min_liquidity_threshold: float = Field(default=500.0, ge=0)

    # Book fetching
    max_concurrent_book_fetches: int = Field(default=10, ge=1, le=32)
    # Cached prices older than this are pruned
    stale_data_max_age_ms: float = Field(default=60_000, gt=0)

    # Cross-market (reference-price zone) detection
    cross_market_enabled: bool = True
    # Share count assumed for a leg whose ask size is unknown. Over-optimistic
    # on thin books; lower it to be conservative.
    cross_market_fallback_share_size: float = Field(default=1000.0, gt=0)
    cross_market_resolution_tolerance_sec: int = Field(default=300, ge=0)

    # API endpoints
    clob_host: str = "https://clob.polymarket.com"
    gamma_host: str = "https://gamma-api.polymarket.com"
    ws_market_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    crypto_price_host: str = "https://polymarket.com/api/crypto"
    chain_id: int = 137  # Polygon mainnet

    # Market discovery
    market_mode: Literal["all", "crypto", "short"] = "all"
    max_hours: float = Field(default=24.0, gt=0)
    max_markets: int = Field(default=500, ge=1)

    # Timing
    market_refresh_sec: float = Field(default=60.0, gt=0)
    full_scan_interval_sec: float = Field(default=5.0, gt=0)
    reference_refresh_sec: float = Field(default=60.0, gt=0)
    stats_interval_sec: float = Field(default=30.0, gt=0)
    near_miss_interval_sec: float = Field(default=300.0, gt=0)

    # WebSocket
    ws_enabled: bool = True
    ws_reconnect_max: int = 5

    log_level: str = "INFO"


def load_config() -> Config:
    """Load and validate config from environment. Raises pydantic ValidationError on bad values."""
    return Config()
