"""
Per-token best bid/ask cache fed by order-book snapshots and WebSocket deltas.

Both sources go through the same merge: fields supplied as None keep the
previously stored value, so a price-only delta never erases a known size.
Snapshots supply every field, writing 0.0 for an empty book side.

Thread-safe for concurrent WS-writer + main-loop-reader pattern via threading.Lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace

from scanner.models import TokenPrice

logger = logging.getLogger(__name__)


@dataclass
class PriceCache:
    """
    In-memory best-of-book store keyed by token id.
    Records are immutable TokenPrice values; update() swaps in a merged copy.
    """
    _prices: dict[str, TokenPrice] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def update(
        self,
        token_id: str,
        best_ask: float | None = None,
        best_ask_size: float | None = None,
        best_bid: float | None = None,
        best_bid_size: float | None = None,
        timestamp: float | None = None,
    ) -> TokenPrice:
        """Merge supplied fields over the existing record and return the result."""
        ts = timestamp if timestamp is not None else time.time()
        with self._lock:
            existing = self._prices.get(token_id)
            if existing is None:
                existing = TokenPrice(token_id=token_id)
            merged = replace(
                existing,
                best_ask=best_ask if best_ask is not None else existing.best_ask,
                best_ask_size=best_ask_size if best_ask_size is not None else existing.best_ask_size,
                best_bid=best_bid if best_bid is not None else existing.best_bid,
                best_bid_size=best_bid_size if best_bid_size is not None else existing.best_bid_size,
                last_update=ts,
            )
            self._prices[token_id] = merged
        return merged

    def get(self, token_id: str) -> TokenPrice | None:
        with self._lock:
            return self._prices.get(token_id)

    def get_many(self, token_ids: list[str]) -> dict[str, TokenPrice]:
        """Return records for multiple tokens under one lock. Missing tokens are omitted."""
        with self._lock:
            return {tid: self._prices[tid] for tid in token_ids if tid in self._prices}

    def prune_older_than(self, max_age_ms: float) -> int:
        """
        Remove entries whose last update is older than now - max_age_ms.

        Returns:
            Number of entries removed.
        """
        cutoff = time.time() - max_age_ms / 1000.0
        with self._lock:
            stale = [tid for tid, p in self._prices.items() if p.last_update < cutoff]
            for tid in stale:
                del self._prices[tid]
            remaining = len(self._prices)

        if stale:
            logger.debug(
                "PriceCache: pruned %d stale entries (%d remaining, max_age=%dms)",
                len(stale), remaining, max_age_ms,
            )
        return len(stale)

    def token_count(self) -> int:
        """Number of tokens currently cached."""
        return len(self._prices)

    def clear(self) -> None:
        with self._lock:
            self._prices.clear()
