"""
Market registry: token -> binary market pair, market id -> pair, and the
derived cross-market MarketInfo for crypto up/down markets.

set_markets() rebuilds every index from scratch and swaps them in as one
unit. Tokens missing from the new list are untracked immediately, even if
an update for them is still queued. When two markets claim the same token
the later one is kept and the earlier one is not tracked at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from scanner.market_info import parse_market_info
from scanner.models import MarketInfo, MarketPair
from scanner.ref_price_cache import ReferencePriceCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Indexes:
    by_token: dict[str, MarketPair] = field(default_factory=dict)
    by_market_id: dict[str, MarketPair] = field(default_factory=dict)
    infos_by_slug: dict[str, MarketInfo] = field(default_factory=dict)
    infos_by_token: dict[str, MarketInfo] = field(default_factory=dict)


class MarketRegistry:
    """
    Read-mostly view of the currently tracked markets.

    When a ReferencePriceCache is supplied, reference prices already known
    for a slug are restored onto freshly built MarketInfo objects.
    """

    def __init__(self, ref_cache: ReferencePriceCache | None = None):
        self._ref_cache = ref_cache
        self._idx = _Indexes()

    def set_markets(self, pairs: list[MarketPair]) -> None:
        # Keep anything loaded onto the outgoing infos
        if self._ref_cache is not None:
            for slug, info in self._idx.infos_by_slug.items():
                if info.reference_price is not None:
                    self._ref_cache.set(slug, info.reference_price)

        # Later markets win contested tokens; a market that loses one is dropped whole
        owners: dict[str, MarketPair] = {}
        dropped: set[str] = set()
        for pair in pairs:
            for token_id in (pair.yes_token_id, pair.no_token_id):
                previous = owners.get(token_id)
                if previous is not None and previous.market.market_id != pair.market.market_id:
                    logger.warning(
                        "Token %s registered to both %s and %s; dropping %s",
                        token_id[:16], previous.market.market_id, pair.market.market_id,
                        previous.market.market_id,
                    )
                    dropped.add(previous.market.market_id)
                owners[token_id] = pair

        idx = _Indexes()
        restored = 0
        for pair in pairs:
            if pair.market.market_id in dropped:
                continue
            idx.by_token[pair.yes_token_id] = pair
            idx.by_token[pair.no_token_id] = pair
            idx.by_market_id[pair.market.market_id] = pair

            info = parse_market_info(pair)
            if info is None:
                continue
            if self._ref_cache is not None:
                cached = self._ref_cache.get(info.slug)
                if cached is not None:
                    info.reference_price = cached
                    restored += 1
            idx.infos_by_slug[info.slug] = info
            idx.infos_by_token[pair.yes_token_id] = info
            idx.infos_by_token[pair.no_token_id] = info

        self._idx = idx

        logger.debug("MarketRegistry tracking %d market pairs", len(idx.by_market_id))
        if idx.infos_by_slug:
            logger.info(
                "Cross-market tracking %d markets (%d reference prices restored from cache)",
                len(idx.infos_by_slug), restored,
            )

    def lookup_by_token(self, token_id: str) -> MarketPair | None:
        return self._idx.by_token.get(token_id)

    def lookup_by_market_id(self, market_id: str) -> MarketPair | None:
        return self._idx.by_market_id.get(market_id)

    def all_token_ids(self) -> list[str]:
        return list(self._idx.by_token)

    def pairs(self) -> list[MarketPair]:
        return list(self._idx.by_market_id.values())

    def market_count(self) -> int:
        return len(self._idx.by_market_id)

    def market_infos(self) -> list[MarketInfo]:
        return list(self._idx.infos_by_slug.values())

    def info_for_token(self, token_id: str) -> MarketInfo | None:
        return self._idx.infos_by_token.get(token_id)

    def info_for_slug(self, slug: str) -> MarketInfo | None:
        return self._idx.infos_by_slug.get(slug)
