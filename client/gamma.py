"""
Gamma API client for market discovery. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import json
import logging
import re
import time

import httpx

from scanner.models import Market, MarketPair, parse_iso_timestamp

logger = logging.getLogger(__name__)

_TIMEOUT = 30.0
PAGE_SIZE = 100

CRYPTO_KEYWORDS = ("bitcoin", "btc", "ethereum", "eth", "solana", "sol", "xrp")


def _get(base_url: str, path: str, params: dict | None = None) -> dict | list:
    """Make a GET request to the Gamma API. Raises on non-200."""
    url = f"{base_url}{path}"
    resp = httpx.get(url, params=params, timeout=_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


def _json_list(raw) -> list:
    """clobTokenIds / outcomes arrive as JSON-encoded strings; tolerate real lists too."""
    if isinstance(raw, list):
        return raw
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return parsed if isinstance(parsed, list) else []


def parse_market(raw: dict) -> Market | None:
    """Convert one raw Gamma market to a Market. Non-binary markets return None."""
    token_ids = _json_list(raw.get("clobTokenIds"))
    outcomes = _json_list(raw.get("outcomes"))
    if len(token_ids) != 2 or len(outcomes) != 2:
        return None

    end_date = str(raw.get("endDate") or raw.get("endDateIso") or "")
    liquidity = raw.get("liquidityNum", raw.get("liquidity", 0))
    try:
        liquidity = float(liquidity or 0)
    except (TypeError, ValueError):
        liquidity = 0.0

    return Market(
        market_id=str(raw.get("id", raw.get("conditionId", ""))),
        question=raw.get("question", ""),
        slug=raw.get("slug", ""),
        yes_token_id=str(token_ids[0]),
        no_token_id=str(token_ids[1]),
        liquidity=liquidity,
        end_date=end_date,
    )


def _fetch_page(gamma_host: str, limit: int, offset: int, min_liquidity: float) -> list[dict]:
    params = {
        "limit": limit,
        "offset": offset,
        "active": "true",
        "closed": "false",
        "enableOrderBook": "true",
        "liquidity_num_min": min_liquidity,
        "order": "liquidityNum",
        "ascending": "false",
    }
    return _get(gamma_host, "/markets", params)


def _binary_only(raw_markets: list[dict]) -> list[Market]:
    return [m for m in (parse_market(raw) for raw in raw_markets) if m is not None]


def get_markets(
    gamma_host: str,
    limit: int = PAGE_SIZE,
    offset: int = 0,
    min_liquidity: float = 0.0,
) -> list[Market]:
    """
    Fetch one page of active, order-book-enabled markets, highest liquidity first.
    Only binary markets (two outcomes, two tokens) are returned.
    """
    return _binary_only(_fetch_page(gamma_host, limit, offset, min_liquidity))


def get_all_markets(
    gamma_host: str,
    min_liquidity: float = 100.0,
    max_markets: int = 2000,
) -> list[Market]:
    """
    Page through /markets until an empty page or max_markets binary markets.
    An HTTP failure stops paging; whatever was fetched so far is returned.
    """
    all_markets: list[Market] = []
    offset = 0
    logger.info("Fetching active markets (min liquidity $%.0f, max %d)...", min_liquidity, max_markets)

    while len(all_markets) < max_markets:
        try:
            raw_markets = _fetch_page(gamma_host, PAGE_SIZE, offset, min_liquidity)
        except httpx.HTTPError as e:
            logger.error("Failed to fetch markets at offset %d: %s", offset, e)
            break
        if not raw_markets:
            break
        page = _binary_only(raw_markets)
        all_markets.extend(page)
        offset += PAGE_SIZE
        logger.debug(
            "Fetched %d markets, %d binary, total: %d", len(raw_markets), len(page), len(all_markets),
        )

    all_markets.sort(key=lambda m: m.liquidity, reverse=True)
    logger.info("Found %d active binary markets with order books", len(all_markets))
    return all_markets[:max_markets]


def _matches_keywords(market: Market, keywords: tuple[str, ...]) -> bool:
    text = market.question.lower()
    return any(re.search(rf"\b{re.escape(kw.lower())}\b", text) for kw in keywords)


def filter_markets(
    markets: list[Market],
    keywords: tuple[str, ...] | list[str] | None = None,
    max_hours: float | None = None,
    now: float | None = None,
) -> list[Market]:
    """
    Narrow a market list for crypto/short modes.

    keywords match whole words in the question (case-insensitive). With
    max_hours, only markets resolving in (now, now + max_hours] survive and
    the result is ordered soonest resolution first.
    """
    result = list(markets)
    if keywords:
        kws = tuple(keywords)
        result = [m for m in result if _matches_keywords(m, kws)]

    if max_hours is not None:
        now = time.time() if now is None else now
        horizon = now + max_hours * 3600
        timed: list[tuple[int, Market]] = []
        for m in result:
            end_ts = parse_iso_timestamp(m.end_date)
            if end_ts is not None and now < end_ts <= horizon:
                timed.append((end_ts, m))
        timed.sort(key=lambda pair: pair[0])
        result = [m for _, m in timed]

    return result


def create_market_pairs(markets: list[Market]) -> list[MarketPair]:
    return [MarketPair.from_market(m) for m in markets if m.yes_token_id and m.no_token_id]
