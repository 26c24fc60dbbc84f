"""
Cross-market (reference-price zone) arbitrage detector.

Two up/down markets on the same asset that resolve at the same instant but
opened at different reference prices leave a price band in which opposite
legs both pay out. Example:

  1h market opened at $100,000, 15m market opened at $99,000, both resolve 20:00.
  If BTC closes at $99,500:
    1h:  99,500 < 100,000  -> DOWN wins
    15m: 99,500 >= 99,000  -> UP wins
  Buying 1h-DOWN + 15m-UP collects $2.00 for that outcome.

The longer-interval market of a pair is called "long", the other "short".
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from scanner.models import (
    CrossMarketOpportunity,
    CrossMarketStrategy,
    Interval,
    MarketInfo,
    MarketSummary,
    TokenPrice,
)
from scanner.price_cache import PriceCache
from scanner.ref_price_cache import ReferencePriceCache
from scanner.registry import MarketRegistry

logger = logging.getLogger(__name__)

# ReferencePriceSource: async (asset, interval, resolution_ts) -> open price or None.
# None means "not available yet", not an error.
ReferencePriceSource = Callable[[str, Interval, int], Awaitable["float | None"]]

BUCKET_SEC = 300
DEFAULT_FALLBACK_SHARE_SIZE = 1000.0


@dataclass(frozen=True)
class ReferenceLoadResult:
    restored: int = 0
    loaded: int = 0
    failed: int = 0
    missing: int = 0
    skipped: bool = False


def resolution_bucket(info: MarketInfo) -> tuple[str, int]:
    """Grouping key: asset plus resolution time rounded to 5 minutes."""
    return info.asset, round(info.resolution_timestamp / BUCKET_SEC)


def group_candidate_pairs(infos: list[MarketInfo]) -> list[tuple[MarketInfo, MarketInfo]]:
    """
    Enumerate unordered pairs of markets in the same (asset, 5-minute) bucket
    with differing intervals. Each slug pair appears once.
    """
    buckets: dict[tuple[str, int], list[MarketInfo]] = {}
    for info in infos:
        buckets.setdefault(resolution_bucket(info), []).append(info)

    pairs: list[tuple[MarketInfo, MarketInfo]] = []
    seen: set[str] = set()
    for members in buckets.values():
        if len(members) < 2:
            continue
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                a, b = members[i], members[j]
                if a.interval == b.interval:
                    continue
                key = "|".join(sorted((a.slug, b.slug)))
                if key in seen:
                    continue
                seen.add(key)
                pairs.append((a, b))
    return pairs


def order_long_short(a: MarketInfo, b: MarketInfo) -> tuple[MarketInfo, MarketInfo]:
    """Return (long, short): the larger interval started earlier and is 'long'."""
    if a.interval.rank > b.interval.rank:
        return a, b
    return b, a


class CrossMarketDetector:

    def __init__(
        self,
        price_cache: PriceCache,
        registry: MarketRegistry,
        ref_cache: ReferencePriceCache,
        reference_source: ReferencePriceSource | None = None,
        min_profit_threshold: float = 0.001,
        fallback_share_size: float = DEFAULT_FALLBACK_SHARE_SIZE,
        resolution_tolerance_sec: int = BUCKET_SEC,
    ):
        self.price_cache = price_cache
        self.registry = registry
        self.ref_cache = ref_cache
        self.reference_source = reference_source
        self.min_profit_threshold = min_profit_threshold
        self.fallback_share_size = fallback_share_size
        self.resolution_tolerance_sec = resolution_tolerance_sec
        self._prices_loaded = False
        self._logged_missing: set[tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_on_price_update(self, token_id: str) -> CrossMarketOpportunity | None:
        """Best opportunity (by max_profit) involving the market that owns token_id."""
        updated = self.registry.info_for_token(token_id)
        if updated is None:
            return None

        best: CrossMarketOpportunity | None = None
        for other in self.registry.market_infos():
            if other.slug == updated.slug or other.asset != updated.asset:
                continue
            if other.interval == updated.interval:
                continue
            time_diff = abs(other.resolution_timestamp - updated.resolution_timestamp)
            if time_diff > self.resolution_tolerance_sec:
                continue

            logger.debug(
                "Overlapping pair: %s %s + %s (diff: %ds)",
                updated.asset.upper(), updated.interval.value, other.interval.value, time_diff,
            )
            opp = self.evaluate_pair(updated, other)
            if opp and (best is None or opp.max_profit > best.max_profit):
                best = opp
        return best

    def scan_all(self, min_profit: float | None = None) -> list[CrossMarketOpportunity]:
        """
        Evaluate every coincident-resolution pair once.

        Args:
            min_profit: Threshold for this call only. Defaults to the configured one.

        Returns:
            Passing opportunities sorted by max_profit descending.
        """
        infos = self.registry.market_infos()
        candidates = group_candidate_pairs(infos)
        logger.debug(
            "Cross-market scan: %d markets, %d candidate pairs (tokens with prices: %d)",
            len(infos), len(candidates), self.price_cache.token_count(),
        )

        opportunities: list[CrossMarketOpportunity] = []
        for a, b in candidates:
            opp = self.evaluate_pair(a, b, min_profit=min_profit)
            if opp:
                opportunities.append(opp)
        opportunities.sort(key=lambda o: o.max_profit, reverse=True)
        return opportunities

    def evaluate_pair(
        self,
        a: MarketInfo,
        b: MarketInfo,
        min_profit: float | None = None,
    ) -> CrossMarketOpportunity | None:
        """Evaluate one pair in either argument order; the result is the same."""
        threshold = self.min_profit_threshold if min_profit is None else min_profit
        long_info, short_info = order_long_short(a, b)

        long_ref = long_info.reference_price
        short_ref = short_info.reference_price
        if long_ref is None or short_ref is None:
            return None

        prices = self.price_cache.get_many([
            long_info.pair.yes_token_id,
            long_info.pair.no_token_id,
            short_info.pair.yes_token_id,
            short_info.pair.no_token_id,
        ])
        long_up = prices.get(long_info.pair.yes_token_id)
        long_down = prices.get(long_info.pair.no_token_id)
        short_up = prices.get(short_info.pair.yes_token_id)
        short_down = prices.get(short_info.pair.no_token_id)

        long_up_ask = _usable_ask(long_up)
        long_down_ask = _usable_ask(long_down)
        short_up_ask = _usable_ask(short_up)
        short_down_ask = _usable_ask(short_down)

        self._log_missing_once(long_info, short_info, long_up, long_down, short_up, short_down)

        identical_refs = long_ref == short_ref
        if long_ref >= short_ref:
            # price in [short_ref, long_ref): long resolves DOWN, short resolves UP
            strategy = CrossMarketStrategy.LONG_DOWN_SHORT_UP
            zone_low, zone_high = short_ref, long_ref
            leg_a, leg_b = long_down, short_up
            ask_a, ask_b = long_down_ask, short_up_ask
        else:
            # price in [long_ref, short_ref): long resolves UP, short resolves DOWN
            strategy = CrossMarketStrategy.LONG_UP_SHORT_DOWN
            zone_low, zone_high = long_ref, short_ref
            leg_a, leg_b = long_up, short_down
            ask_a, ask_b = long_up_ask, short_down_ask

        # A missing leg must not look like a free one
        has_both_prices = ask_a > 0 and ask_b > 0
        if not has_both_prices:
            logger.debug(
                "Pair rejected - missing asks: %s/%s %s",
                long_info.label, short_info.label, strategy.value,
            )
            return None

        entry_cost = ask_a + ask_b
        max_profit = -entry_cost if identical_refs else 2.0 - entry_cost

        if not identical_refs and max_profit < threshold:
            logger.debug(
                "Rejected %s/%s: profit $%.4f < min $%.4f",
                long_info.label, short_info.label, max_profit, threshold,
            )
            return None

        max_shares = min(self._leg_size(leg_a), self._leg_size(leg_b))
        zone_width = zone_high - zone_low
        avg_ref = (long_ref + short_ref) / 2
        zone_percent = zone_width / avg_ref * 100 if avg_ref else 0.0
        minutes_left = (long_info.resolution_timestamp - time.time()) / 60.0

        return CrossMarketOpportunity(
            asset=long_info.asset,
            long_market=long_info.market,
            short_market=short_info.market,
            long_interval=long_info.interval,
            short_interval=short_info.interval,
            long_up_token_id=long_info.pair.yes_token_id,
            long_down_token_id=long_info.pair.no_token_id,
            short_up_token_id=short_info.pair.yes_token_id,
            short_down_token_id=short_info.pair.no_token_id,
            long_ref_price=long_ref,
            short_ref_price=short_ref,
            profit_zone_low=zone_low,
            profit_zone_high=zone_high,
            strategy=strategy,
            long_up_ask=long_up_ask,
            long_down_ask=long_down_ask,
            short_up_ask=short_up_ask,
            short_down_ask=short_down_ask,
            entry_cost=entry_cost,
            max_profit=max_profit,
            profit_zone_width=zone_width,
            profit_zone_percent=zone_percent,
            max_shares=max_shares,
            resolution_time=long_info.resolution_timestamp,
            minutes_until_resolution=minutes_left,
            identical_refs=identical_refs,
        )

    def _leg_size(self, price: TokenPrice | None) -> float:
        # Size is often absent on thin legs even when the ask is known;
        # the fallback can overstate what is actually fillable.
        size = price.best_ask_size if price is not None else None
        if size is None or size <= 0:
            return self.fallback_share_size
        return size

    def prune_logged_pairs(self) -> int:
        """Forget missing-ask log entries for pairs that are no longer tracked."""
        tracked = {info.slug for info in self.registry.market_infos()}
        stale = {key for key in self._logged_missing if not all(slug in tracked for slug in key)}
        self._logged_missing -= stale
        return len(stale)

    def _log_missing_once(
        self,
        long_info: MarketInfo,
        short_info: MarketInfo,
        *legs: TokenPrice | None,
    ) -> None:
        key = (long_info.slug, short_info.slug)
        if key in self._logged_missing:
            return
        names = ("longUp", "longDown", "shortUp", "shortDown")
        missing = [n for n, p in zip(names, legs) if p is None or not p.has_ask]
        if not missing:
            return
        self._logged_missing.add(key)
        have = [f"{n}=${p.best_ask:.3f}" for n, p in zip(names, legs) if p is not None and p.has_ask]
        logger.debug(
            "%s %s/%s: missing asks [%s], have [%s]",
            long_info.asset.upper(), long_info.interval.value, short_info.interval.value,
            ", ".join(missing), ", ".join(have),
        )

    # ------------------------------------------------------------------
    # Reference prices
    # ------------------------------------------------------------------

    def set_reference_price(self, slug: str, price: float) -> bool:
        """Record a known reference price for slug on the live market and in the cache."""
        if not self.ref_cache.set(slug, price):
            return False
        info = self.registry.info_for_slug(slug)
        if info is not None and info.reference_price is None:
            info.reference_price = price
        return True

    async def load_reference_prices(self, force: bool = False) -> ReferenceLoadResult:
        """
        Fill missing reference prices: first from the slug cache, then from
        the external source. Skipped when a previous load ran and nothing is
        missing, unless force is set.
        """
        infos = self.registry.market_infos()

        restored = 0
        for info in infos:
            if info.reference_price is None:
                cached = self.ref_cache.get(info.slug)
                if cached is not None:
                    info.reference_price = cached
                    restored += 1

        missing = [info for info in infos if info.reference_price is None]
        if self._prices_loaded and not missing and not force:
            return ReferenceLoadResult(restored=restored, skipped=True)

        if missing:
            preview = ", ".join(info.label for info in missing[:5])
            logger.info(
                "Loading %d missing reference prices: %s%s",
                len(missing), preview, "..." if len(missing) > 5 else "",
            )

        loaded = 0
        failed = 0
        if self.reference_source is None:
            failed = len(missing)
            if missing:
                logger.debug("No reference price source configured")
        else:
            for info in missing:
                try:
                    price = await self.reference_source(
                        info.asset, info.interval, info.resolution_timestamp,
                    )
                except Exception as e:
                    failed += 1
                    logger.debug("Failed to load reference price for %s: %s", info.slug, e)
                    continue

                if price is None:
                    failed += 1
                    logger.debug("%s: reference price not available yet", info.slug)
                    continue

                info.reference_price = price
                self.ref_cache.set(info.slug, price)
                loaded += 1
                logger.info("%s: loaded reference price $%.2f", info.slug, price)

        self._prices_loaded = True
        if loaded or failed:
            logger.info(
                "Reference prices: loaded %d, failed %d (still missing: %d)",
                loaded, failed, len(missing) - loaded,
            )
        return ReferenceLoadResult(
            restored=restored,
            loaded=loaded,
            failed=failed,
            missing=len(missing) - loaded,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def market_summaries(self) -> list[MarketSummary]:
        """Per-market snapshot for reports. Already-resolved markets are skipped."""
        now = time.time()
        rows: list[MarketSummary] = []
        for info in self.registry.market_infos():
            minutes_left = (info.resolution_timestamp - now) / 60.0
            if minutes_left < 0:
                continue
            up = self.price_cache.get(info.pair.yes_token_id)
            down = self.price_cache.get(info.pair.no_token_id)
            rows.append(MarketSummary(
                asset=info.asset,
                interval=info.interval,
                minutes_until_resolution=minutes_left,
                reference_price=info.reference_price,
                up_best_ask=up.best_ask if up and up.has_ask else None,
                up_best_bid=up.best_bid if up and up.has_bid else None,
                down_best_ask=down.best_ask if down and down.has_ask else None,
                down_best_bid=down.best_bid if down and down.has_bid else None,
            ))
        return rows

    def stats(self) -> dict:
        infos = self.registry.market_infos()
        # distinct interval combinations per (asset, minute)
        by_minute: dict[tuple[str, int], set[Interval]] = {}
        for info in infos:
            key = (info.asset, round(info.resolution_timestamp / 60))
            by_minute.setdefault(key, set()).add(info.interval)
        cross_pairs = sum(
            math.comb(len(intervals), 2) for intervals in by_minute.values() if len(intervals) >= 2
        )
        return {
            "markets_tracked": len(infos),
            "tokens_with_prices": self.price_cache.token_count(),
            "cross_pairs_found": cross_pairs,
        }


def _usable_ask(price: TokenPrice | None) -> float:
    """Ask price if usable, else 0.0 (contributes nothing to cost)."""
    if price is None or not price.has_ask:
        return 0.0
    return price.best_ask
