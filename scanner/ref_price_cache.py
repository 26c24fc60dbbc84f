"""
Slug-keyed store of candle open (reference) prices.

Outlives market-list refreshes: live market slugs rotate as new candles
start, but the reference price for a given slug never changes once known,
so a stored value is never overwritten.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ReferencePriceCache:
    _prices: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, slug: str) -> float | None:
        with self._lock:
            return self._prices.get(slug)

    def set(self, slug: str, price: float) -> bool:
        """
        Store a reference price for slug. Returns False (and keeps the stored
        value) if a different price is already recorded.
        """
        with self._lock:
            existing = self._prices.get(slug)
            if existing is None:
                self._prices[slug] = price
                return True
        if existing != price:
            logger.warning(
                "Ignoring reference price %.2f for %s: already set to %.2f",
                price, slug, existing,
            )
            return False
        return True

    def __contains__(self, slug: object) -> bool:
        with self._lock:
            return slug in self._prices

    def __len__(self) -> int:
        return len(self._prices)

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._prices)
