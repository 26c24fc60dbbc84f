"""
Near-miss reporting and cross-market pair diagnostics.

Nothing here produces tradable signals. It answers "how close are we?" and
"why are cross-market pairs not producing anything?" for periodic reports.
"""

from __future__ import annotations

import logging
import math

from scanner.binary import SingleMarketDetector
from scanner.cross_market import CrossMarketDetector, group_candidate_pairs
from scanner.models import (
    CrossMarketOpportunity,
    MarketInfo,
    NearMissOpportunity,
    OpportunityType,
    PairDiagnostics,
)

logger = logging.getLogger(__name__)


class Diagnostics:

    def __init__(self, single: SingleMarketDetector, cross: CrossMarketDetector):
        self.single = single
        self.cross = cross

    def find_best_single_market_near_miss(self) -> NearMissOpportunity | None:
        """
        Closest-to-profitable binary evaluation across all markets, ignoring
        the profit threshold. Usable quotes, positive size and the liquidity
        gate are still required.
        """
        best: NearMissOpportunity | None = None
        cache = self.single.price_cache
        min_liquidity = self.single.min_liquidity_threshold

        for pair in self.single.registry.pairs():
            if pair.market.liquidity < min_liquidity:
                continue
            yes_price = cache.get(pair.yes_token_id)
            no_price = cache.get(pair.no_token_id)
            if yes_price is None or no_price is None:
                continue

            candidates: list[NearMissOpportunity] = []
            if yes_price.has_ask and no_price.has_ask:
                shares = min(yes_price.best_ask_size or 0.0, no_price.best_ask_size or 0.0)
                if shares > 0:
                    total = yes_price.best_ask + no_price.best_ask
                    candidates.append(NearMissOpportunity(
                        type=OpportunityType.BUY_BOTH,
                        market=pair.market,
                        yes_price=yes_price.best_ask,
                        no_price=no_price.best_ask,
                        total=total,
                        profit_gap=1.0 - total,
                        max_shares=shares,
                    ))
            if yes_price.has_bid and no_price.has_bid:
                shares = min(yes_price.best_bid_size or 0.0, no_price.best_bid_size or 0.0)
                if shares > 0:
                    total = yes_price.best_bid + no_price.best_bid
                    candidates.append(NearMissOpportunity(
                        type=OpportunityType.SELL_BOTH,
                        market=pair.market,
                        yes_price=yes_price.best_bid,
                        no_price=no_price.best_bid,
                        total=total,
                        profit_gap=total - 1.0,
                        max_shares=shares,
                    ))

            for candidate in candidates:
                if best is None or candidate.profit_gap > best.profit_gap:
                    best = candidate
        return best

    def find_all_cross_market_opportunities(self) -> list[CrossMarketOpportunity]:
        """Every evaluable pair regardless of profit, best first."""
        opportunities = self.cross.scan_all(min_profit=-math.inf)
        if not opportunities:
            diag = self.diagnose_cross_market_pairs()
            if diag.potential_pairs:
                logger.info(
                    "Cross-market diagnostics: %d pairs: %d missing refs, %d missing asks",
                    diag.potential_pairs, diag.missing_ref_prices, diag.missing_asks,
                )
        return opportunities

    def find_best_cross_market_near_miss(self) -> CrossMarketOpportunity | None:
        opportunities = self.find_all_cross_market_opportunities()
        return opportunities[0] if opportunities else None

    def diagnose_cross_market_pairs(self) -> PairDiagnostics:
        """Classify each candidate pair: missing reference price first, then missing asks."""
        potential = 0
        missing_refs = 0
        missing_asks = 0
        details: list[str] = []

        for a, b in group_candidate_pairs(self.cross.registry.market_infos()):
            potential += 1
            prefix = f"{a.asset.upper()} {a.interval.value}/{b.interval.value}"

            no_ref = [info for info in (a, b) if info.reference_price is None]
            if no_ref:
                missing_refs += 1
                details.append(f"{prefix}: need ref for {', '.join(i.interval.value for i in no_ref)}")
                logger.debug(
                    "Pair %s: missing ref prices for %s",
                    prefix, ", ".join(f"{i.interval.value}({i.slug})" for i in no_ref),
                )
                continue

            legs = self._missing_ask_legs(a) + self._missing_ask_legs(b)
            if legs:
                missing_asks += 1
                details.append(f"{prefix}: need asks for {', '.join(legs)}")
                logger.debug("Pair %s: missing asks for %s", prefix, ", ".join(legs))

        return PairDiagnostics(
            potential_pairs=potential,
            missing_ref_prices=missing_refs,
            missing_asks=missing_asks,
            details=tuple(details),
        )

    def _missing_ask_legs(self, info: MarketInfo) -> list[str]:
        cache = self.cross.price_cache
        missing = []
        for side, token_id in (("UP", info.pair.yes_token_id), ("DOWN", info.pair.no_token_id)):
            price = cache.get(token_id)
            if price is None or not price.has_ask:
                missing.append(f"{info.interval.value}-{side}")
        return missing
