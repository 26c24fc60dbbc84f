"""
ScanEngine: owns the price cache, registries and detectors, and is the single
entry point for market lists, book snapshots, streaming deltas and scans.

Every price event is written to the PriceCache first, then the owning market
is re-evaluated in the same call. Registry swaps are serialized against
evaluations with an RLock so a scan never sees half of a market refresh.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from monitor.dispatch import OpportunityDispatcher
from scanner.binary import SingleMarketDetector
from scanner.cross_market import (
    CrossMarketDetector,
    ReferenceLoadResult,
    ReferencePriceSource,
)
from scanner.diagnostics import Diagnostics
from scanner.models import (
    CrossMarketOpportunity,
    MarketPair,
    NearMissOpportunity,
    Opportunity,
    OrderBook,
    PairDiagnostics,
    PriceLevel,
)
from scanner.price_cache import PriceCache
from scanner.ref_price_cache import ReferencePriceCache
from scanner.registry import MarketRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    single: list[Opportunity] = field(default_factory=list)
    cross: list[CrossMarketOpportunity] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.single) + len(self.cross)


class ScanEngine:

    def __init__(
        self,
        min_profit_threshold: float = 0.001,
        min_liquidity_threshold: float = 500.0,
        stale_data_max_age_ms: float = 60_000,
        cross_market_enabled: bool = True,
        fallback_share_size: float = 1000.0,
        resolution_tolerance_sec: int = 300,
        reference_source: ReferencePriceSource | None = None,
        dispatcher: OpportunityDispatcher | None = None,
    ):
        self.stale_data_max_age_ms = stale_data_max_age_ms
        self.cross_market_enabled = cross_market_enabled
        self.dispatcher = dispatcher or OpportunityDispatcher()

        self.price_cache = PriceCache()
        self.ref_cache = ReferencePriceCache()
        self.registry = MarketRegistry(ref_cache=self.ref_cache)
        self.single = SingleMarketDetector(
            self.price_cache,
            self.registry,
            min_profit_threshold=min_profit_threshold,
            min_liquidity_threshold=min_liquidity_threshold,
        )
        self.cross = CrossMarketDetector(
            self.price_cache,
            self.registry,
            self.ref_cache,
            reference_source=reference_source,
            min_profit_threshold=min_profit_threshold,
            fallback_share_size=fallback_share_size,
            resolution_tolerance_sec=resolution_tolerance_sec,
        )
        self.diagnostics = Diagnostics(self.single, self.cross)
        self._lock = threading.RLock()

    @classmethod
    def from_config(
        cls,
        cfg,
        reference_source: ReferencePriceSource | None = None,
        dispatcher: OpportunityDispatcher | None = None,
    ) -> ScanEngine:
        return cls(
            min_profit_threshold=cfg.min_profit_threshold,
            min_liquidity_threshold=cfg.min_liquidity_threshold,
            stale_data_max_age_ms=cfg.stale_data_max_age_ms,
            cross_market_enabled=cfg.cross_market_enabled,
            fallback_share_size=cfg.cross_market_fallback_share_size,
            resolution_tolerance_sec=cfg.cross_market_resolution_tolerance_sec,
            reference_source=reference_source,
            dispatcher=dispatcher,
        )

    # -- inbound ---------------------------------------------------------

    def set_markets(self, pairs: list[MarketPair]) -> None:
        with self._lock:
            self.registry.set_markets(pairs)
            self.cross.prune_logged_pairs()
        logger.info(
            "Tracking %d markets (%d tokens, %d cross-market)",
            self.registry.market_count(),
            len(self.registry.all_token_ids()),
            len(self.registry.market_infos()),
        )

    def apply_book(
        self,
        token_id: str,
        best_ask: PriceLevel | None,
        best_bid: PriceLevel | None,
        timestamp: float | None = None,
    ) -> list[Opportunity | CrossMarketOpportunity]:
        """
        Order-book snapshot for one token. A snapshot replaces both sides, so an
        empty side is stored as 0.0 price and size, which no detector treats as
        a usable quote.
        """
        return self.apply_delta(
            token_id,
            best_ask=best_ask.price if best_ask else 0.0,
            best_ask_size=best_ask.size if best_ask else 0.0,
            best_bid=best_bid.price if best_bid else 0.0,
            best_bid_size=best_bid.size if best_bid else 0.0,
            timestamp=timestamp,
        )

    def apply_order_book(
        self,
        book: OrderBook,
        timestamp: float | None = None,
    ) -> list[Opportunity | CrossMarketOpportunity]:
        return self.apply_book(book.token_id, book.best_ask, book.best_bid, timestamp)

    def apply_delta(
        self,
        token_id: str,
        best_ask: float | None = None,
        best_ask_size: float | None = None,
        best_bid: float | None = None,
        best_bid_size: float | None = None,
        timestamp: float | None = None,
    ) -> list[Opportunity | CrossMarketOpportunity]:
        """
        Merge a partial update into the cache, then re-evaluate the owning market.

        Returns:
            Opportunities found by this update (already dispatched).
        """
        self.price_cache.update(
            token_id,
            best_ask=best_ask,
            best_ask_size=best_ask_size,
            best_bid=best_bid,
            best_bid_size=best_bid_size,
            timestamp=timestamp,
        )

        found: list[Opportunity | CrossMarketOpportunity] = []
        with self._lock:
            opp = self.single.evaluate_on_price_update(token_id)
            if opp:
                found.append(opp)
            if self.cross_market_enabled:
                cross_opp = self.cross.evaluate_on_price_update(token_id)
                if cross_opp:
                    found.append(cross_opp)

        self.dispatcher.dispatch_all(found)
        return found

    # -- scans -----------------------------------------------------------

    def scan_all(self) -> ScanResult:
        with self._lock:
            single = self.single.scan_all()
            cross = self.cross.scan_all() if self.cross_market_enabled else []
        result = ScanResult(single=single, cross=cross)
        self.dispatcher.dispatch_all([*single, *cross])
        return result

    async def load_reference_prices(self, force: bool = False) -> ReferenceLoadResult:
        if not self.cross_market_enabled:
            return ReferenceLoadResult(skipped=True)
        return await self.cross.load_reference_prices(force=force)

    def set_reference_price(self, slug: str, price: float) -> bool:
        return self.cross.set_reference_price(slug, price)

    def prune_stale(self) -> int:
        return self.price_cache.prune_older_than(self.stale_data_max_age_ms)

    # -- reporting -------------------------------------------------------

    def best_single_near_miss(self) -> NearMissOpportunity | None:
        with self._lock:
            return self.diagnostics.find_best_single_market_near_miss()

    def all_cross_near_misses(self) -> list[CrossMarketOpportunity]:
        """Every evaluable cross-market pair regardless of profit, best first."""
        if not self.cross_market_enabled:
            return []
        with self._lock:
            return self.diagnostics.find_all_cross_market_opportunities()

    def best_cross_near_miss(self) -> CrossMarketOpportunity | None:
        if not self.cross_market_enabled:
            return None
        with self._lock:
            return self.diagnostics.find_best_cross_market_near_miss()

    def diagnose_cross_market_pairs(self) -> PairDiagnostics:
        with self._lock:
            return self.diagnostics.diagnose_cross_market_pairs()

    def token_ids(self) -> list[str]:
        return self.registry.all_token_ids()

    def stats(self) -> dict:
        with self._lock:
            cross = self.cross.stats()
        return {
            "markets": self.registry.market_count(),
            "tokens": len(self.registry.all_token_ids()),
            "tokens_with_prices": self.price_cache.token_count(),
            "cross_markets_tracked": cross["markets_tracked"],
            "cross_pairs_found": cross["cross_pairs_found"],
            "reference_prices_cached": len(self.ref_cache),
            "opportunities_dispatched": self.dispatcher.dispatched,
        }
