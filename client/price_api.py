"""
Reference (candle open) prices from Polymarket's crypto-price endpoint, the
same figures the up/down markets resolve against.

  GET {base}/crypto-price?symbol=BTC&eventStartTime=...&variant=hourly&endDate=...
  -> {"openPrice": 88027.69, "closePrice": null, "completed": false, ...}

Any failure (null price, 404, timeout, bad payload) maps to None: the price
is simply not available yet.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx

from scanner.models import Interval

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://polymarket.com/api/crypto"
_TIMEOUT = 10.0
_HEADERS = {"Accept": "application/json", "User-Agent": "polyarb-scanner/1.0"}

_VARIANTS = {
    Interval.M15: "15m",
    Interval.M30: "30m",
    Interval.H1: "hourly",
    Interval.H4: "4h",
    Interval.D1: "daily",
}


def interval_to_variant(interval: Interval) -> str:
    return _VARIANTS.get(interval, "hourly")


def asset_to_symbol(asset: str) -> str:
    return asset.upper()


def _iso(ts: int) -> str:
    """Unix seconds -> '2025-12-23T17:00:00.000Z' (millisecond precision, UTC)."""
    dt = datetime.fromtimestamp(ts, timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class CryptoPriceClient:
    """
    Async reference-price source. Instances are callable with
    (asset, interval, resolution_ts) and return the open price or None.

    A fresh AsyncClient is opened per request so the same instance can be
    awaited from different event loops (each reference load runs its own).
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = _TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def __call__(self, asset: str, interval: Interval, resolution_ts: int) -> float | None:
        return await self.fetch_open_price(asset, interval, resolution_ts)

    async def fetch_open_price(
        self,
        asset: str,
        interval: Interval,
        resolution_ts: int,
    ) -> float | None:
        symbol = asset_to_symbol(asset)
        variant = interval_to_variant(interval)
        params = {
            "symbol": symbol,
            "eventStartTime": _iso(resolution_ts - interval.seconds),
            "variant": variant,
            "endDate": _iso(resolution_ts),
        }
        logger.debug("Fetching %s %s: start=%s end=%s", symbol, variant, params["eventStartTime"], params["endDate"])

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=_HEADERS) as client:
                resp = await client.get(f"{self.base_url}/crypto-price", params=params)
        except httpx.HTTPError as e:
            logger.debug("Failed to fetch %s %s open price: %s", symbol, variant, e)
            return None

        if resp.status_code == 404:
            logger.debug("Price not found for %s %s", symbol, variant)
            return None
        if resp.status_code != 200:
            logger.debug("Price API %s %s returned HTTP %d", symbol, variant, resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.debug("Price API %s %s returned non-JSON body", symbol, variant)
            return None

        open_price = data.get("openPrice") if isinstance(data, dict) else None
        if open_price is None:
            logger.info(
                "%s %s: openPrice=null, completed=%s",
                symbol, variant, data.get("completed") if isinstance(data, dict) else None,
            )
            return None
        try:
            price = float(open_price)
        except (TypeError, ValueError):
            logger.debug("Price API %s %s returned bad openPrice %r", symbol, variant, open_price)
            return None

        logger.info("%s %s open price: $%.2f", symbol, variant, price)
        return price
