"""
Derive cross-market metadata (asset, interval, resolution time) from a market.

All slug parsing lives here and runs once, at registration. Fallback order:
  1. explicit interval metadata on the market (series discovery)
  2. timestamp slug:    {asset}-updown-{interval}-{unix_ts}   e.g. btc-updown-15m-1734998400
  3. descriptive slug:  {asset}-up-or-down-...                e.g. bitcoin-up-or-down-december-23-10pm-et
                                                                   btc-up-or-down-4h-december-23-8pm-et
                                                                   btc-up-or-down-daily-december-23-et
  4. reject (None)
"""

from __future__ import annotations

import logging
import re

from scanner.models import Interval, MarketInfo, MarketPair

logger = logging.getLogger(__name__)

_TIMESTAMP_SLUG = re.compile(r"^([a-z]+)-updown-(15m|30m|1h|4h|1d)-(\d+)$", re.IGNORECASE)
_DESCRIPTIVE_SLUG = re.compile(
    r"^(bitcoin|ethereum|solana|xrp|btc|eth|sol)-up-or-down-(.+)$", re.IGNORECASE,
)

# (substring, prefix) checks in priority order
_ASSET_MARKERS = (
    ("btc", "bitcoin", "btc"),
    ("eth", "ethereum", "eth"),
    ("sol", "solana", "sol"),
    ("xrp", "xrp", "xrp"),
)


def detect_asset(slug: str) -> str | None:
    """Map a market slug to its asset symbol (btc/eth/sol/xrp)."""
    lowered = slug.lower()
    for asset, name, prefix in _ASSET_MARKERS:
        if name in lowered or lowered.startswith(prefix):
            return asset
    return None


def _interval_from_descriptive_slug(slug: str) -> Interval:
    if "-4h-" in slug:
        return Interval.H4
    if "-daily-" in slug:
        return Interval.D1
    return Interval.H1


def _build(pair: MarketPair, asset: str, interval: Interval, resolution_ts: int) -> MarketInfo:
    return MarketInfo(
        pair=pair,
        asset=asset,
        interval=interval,
        resolution_timestamp=resolution_ts,
        candle_start_timestamp=resolution_ts - interval.seconds,
    )


def parse_market_info(pair: MarketPair) -> MarketInfo | None:
    """
    Build MarketInfo for a crypto up/down market, or None if the market
    is not one (unknown asset, unrecognized slug, no resolution time).
    """
    market = pair.market
    slug = market.slug
    end_ts = market.end_timestamp

    if market.interval is not None:
        asset = detect_asset(slug)
        if asset is None:
            logger.debug("Unknown asset in slug: %s", slug)
            return None
        if end_ts is None:
            logger.debug("No end date for series market %s", slug)
            return None
        return _build(pair, asset, market.interval, end_ts)

    match = _TIMESTAMP_SLUG.match(slug)
    if match:
        asset = match.group(1).lower()
        interval = Interval(match.group(2).lower())
        if end_ts is None:
            # the slug timestamp is the candle start
            end_ts = int(match.group(3)) + interval.seconds
        return _build(pair, asset, interval, end_ts)

    if _DESCRIPTIVE_SLUG.match(slug):
        asset = detect_asset(slug)
        if asset is None or end_ts is None:
            return None
        return _build(pair, asset, _interval_from_descriptive_slug(slug), end_ts)

    return None
