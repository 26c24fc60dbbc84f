"""
CLOB REST client wrapper for order-book snapshots. Read-only: no keys, no orders.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

import httpx as _httpx
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import BookParams
from py_clob_client.http_helpers import helpers as _clob_helpers

from scanner.models import OrderBook, PriceLevel
from scanner.validation import validate_price, validate_size

logger = logging.getLogger(__name__)

# Retry config for flaky CLOB API (HTTP/2 connection resets, SSL errors)
_MAX_RETRIES = 3
_RETRY_BACKOFF_SEC = 1.0

BOOK_BATCH_SIZE = 50  # Max token IDs per /books request to avoid payload limit

# py_clob_client shares one module-level httpx client. HTTP/2 GOAWAY frames from
# the CLOB server kill its pool, so force HTTP/1.1 and a bounded timeout.
_clob_helpers._http_client = _httpx.Client(http2=False, timeout=15.0)


def create_client(host: str, chain_id: int = 137) -> ClobClient:
    """Level-0 (unauthenticated) client; enough for public book reads."""
    return ClobClient(host, chain_id=chain_id)


def _to_levels(raw_levels: list | None, token_id: str, side: str) -> list[PriceLevel]:
    levels = []
    for raw in raw_levels or []:
        try:
            price = validate_price(float(raw.price), context=f"{side} {token_id[:12]}")
            size = validate_size(float(raw.size), context=f"{side} {token_id[:12]}")
        except (TypeError, ValueError) as e:
            logger.warning("Dropping invalid %s level for %s: %s", side, token_id[:16], e)
            continue
        levels.append(PriceLevel(price=price, size=size))
    return levels


def _sort_book_levels(
    raw_bids: list, raw_asks: list, token_id: str = "",
) -> tuple[tuple[PriceLevel, ...], tuple[PriceLevel, ...]]:
    """
    Convert raw SDK levels to sorted PriceLevel tuples.
    Asks: ascending by price (best/lowest first at index 0).
    Bids: descending by price (best/highest first at index 0).
    The SDK does NOT guarantee sort order -- we must enforce it.
    """
    bids = tuple(sorted(_to_levels(raw_bids, token_id, "bid"), key=lambda lvl: lvl.price, reverse=True))
    asks = tuple(sorted(_to_levels(raw_asks, token_id, "ask"), key=lambda lvl: lvl.price))
    return bids, asks


def _retry_api_call(fn, *args, max_retries: int = _MAX_RETRIES, **kwargs):
    """Retry a py_clob_client call with exponential backoff on connection errors."""
    for attempt in range(max_retries):
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            err_str = str(exc)
            # Only retry on connection-level errors (status_code=None), not 4xx/5xx
            is_connection_error = "Request exception" in err_str or "status_code=None" in err_str
            if not is_connection_error or attempt == max_retries - 1:
                raise
            wait = _RETRY_BACKOFF_SEC * (2 ** attempt)
            logger.debug("CLOB API retry %d/%d after %.1fs: %s", attempt + 1, max_retries, wait, exc)
            time.sleep(wait)
    raise RuntimeError("max_retries must be >= 1")


def _to_order_book(raw) -> OrderBook:
    token_id = str(raw.asset_id)
    bids, asks = _sort_book_levels(raw.bids, raw.asks, token_id)
    return OrderBook(token_id=token_id, bids=bids, asks=asks)


def get_orderbook(client: ClobClient, token_id: str) -> OrderBook:
    """Fetch the full book for one token."""
    raw = _retry_api_call(client.get_order_book, token_id)
    bids, asks = _sort_book_levels(raw.bids, raw.asks, token_id)
    return OrderBook(token_id=token_id, bids=bids, asks=asks)


def get_orderbooks_parallel(
    client: ClobClient,
    token_ids: list[str],
    max_workers: int = 10,
) -> dict[str, OrderBook]:
    """
    Fetch books for many tokens: chunks of BOOK_BATCH_SIZE, at most
    max_workers chunks in flight. A chunk that still fails after retries is
    logged and left out of the result.
    """
    if not token_ids:
        return {}

    chunks = [token_ids[i:i + BOOK_BATCH_SIZE] for i in range(0, len(token_ids), BOOK_BATCH_SIZE)]

    def _fetch_chunk(chunk: list[str]) -> dict[str, OrderBook]:
        params = [BookParams(token_id=tid) for tid in chunk]
        raws = _retry_api_call(client.get_order_books, params)
        return {book.token_id: book for book in map(_to_order_book, raws)}

    result: dict[str, OrderBook] = {}
    failed = 0
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_fetch_chunk, chunk): chunk for chunk in chunks}
        for future in as_completed(futures):
            try:
                result.update(future.result())
            except Exception as e:
                failed += 1
                logger.warning(
                    "Book fetch failed for %d tokens (first %s): %s",
                    len(futures[future]), futures[future][0][:16], e,
                )

    logger.debug(
        "Fetched %d/%d books in %d chunks (%d failed)",
        len(result), len(token_ids), len(chunks), failed,
    )
    return result
