"""
Binary market rebalancing detector.
Detects when YES_ask + NO_ask < 1.0 (buy both, redeem for $1)
or YES_bid + NO_bid > 1.0 (mint a set for $1, sell both).
"""

from __future__ import annotations

import logging

from scanner.models import MarketPair, Opportunity, OpportunityType, TokenPrice
from scanner.price_cache import PriceCache
from scanner.registry import MarketRegistry

logger = logging.getLogger(__name__)


class SingleMarketDetector:
    """
    Stateless with respect to opportunities: every call recomputes from the
    current PriceCache contents.
    """

    def __init__(
        self,
        price_cache: PriceCache,
        registry: MarketRegistry,
        min_profit_threshold: float = 0.001,
        min_liquidity_threshold: float = 500.0,
    ):
        self.price_cache = price_cache
        self.registry = registry
        self.min_profit_threshold = min_profit_threshold
        self.min_liquidity_threshold = min_liquidity_threshold

    def evaluate_on_price_update(self, token_id: str) -> Opportunity | None:
        """Re-evaluate the market owning token_id. Unregistered tokens yield None."""
        pair = self.registry.lookup_by_token(token_id)
        if pair is None:
            return None
        return self.evaluate_market(pair)

    def evaluate_market(self, pair: MarketPair) -> Opportunity | None:
        """BUY_BOTH is checked first; a market never reports both shapes in one call."""
        yes_price = self.price_cache.get(pair.yes_token_id)
        no_price = self.price_cache.get(pair.no_token_id)
        if yes_price is None or no_price is None:
            return None

        opp = self._check_buy_both(pair, yes_price, no_price)
        if opp:
            return opp
        return self._check_sell_both(pair, yes_price, no_price)

    def scan_all(self) -> list[Opportunity]:
        """Evaluate every registered market once. Sorted by profit per share, descending."""
        opportunities: list[Opportunity] = []
        for pair in self.registry.pairs():
            opp = self.evaluate_market(pair)
            if opp:
                opportunities.append(opp)
        opportunities.sort(key=lambda o: o.profit, reverse=True)
        return opportunities

    def _check_buy_both(
        self,
        pair: MarketPair,
        yes_price: TokenPrice,
        no_price: TokenPrice,
    ) -> Opportunity | None:
        """
        Buying one YES and one NO pays exactly $1.00 at resolution,
        so any ask sum below $1.00 is locked-in profit.
        """
        if not yes_price.has_ask or not no_price.has_ask:
            return None

        total_cost = yes_price.best_ask + no_price.best_ask
        profit = 1.0 - total_cost

        if profit < self.min_profit_threshold:
            return None
        if pair.market.liquidity < self.min_liquidity_threshold:
            return None

        yes_size = yes_price.best_ask_size or 0.0
        no_size = no_price.best_ask_size or 0.0
        max_shares = min(yes_size, no_size)
        if max_shares <= 0:
            return None

        logger.info(
            "BINARY BUY_BOTH: %s | cost=%.4f profit/share=%.4f shares=%.1f",
            pair.market.question[:60], total_cost, profit, max_shares,
        )

        return Opportunity(
            type=OpportunityType.BUY_BOTH,
            market=pair.market,
            yes_ask=yes_price.best_ask,
            no_ask=no_price.best_ask,
            yes_ask_size=yes_size,
            no_ask_size=no_size,
            yes_bid=yes_price.best_bid,
            no_bid=no_price.best_bid,
            yes_bid_size=yes_price.best_bid_size or 0.0,
            no_bid_size=no_price.best_bid_size or 0.0,
            total_cost=total_cost,
            total_bids=_sum_bids(yes_price, no_price),
            profit=profit,
            profit_percent=profit / total_cost,
            max_shares=max_shares,
        )

    def _check_sell_both(
        self,
        pair: MarketPair,
        yes_price: TokenPrice,
        no_price: TokenPrice,
    ) -> Opportunity | None:
        """
        Minting a YES+NO set costs $1.00; selling both legs into bids
        that sum above $1.00 keeps the difference.
        """
        if not yes_price.has_bid or not no_price.has_bid:
            return None

        total_bids = yes_price.best_bid + no_price.best_bid
        profit = total_bids - 1.0

        if profit < self.min_profit_threshold:
            return None
        if pair.market.liquidity < self.min_liquidity_threshold:
            return None

        yes_size = yes_price.best_bid_size or 0.0
        no_size = no_price.best_bid_size or 0.0
        max_shares = min(yes_size, no_size)
        if max_shares <= 0:
            return None

        logger.info(
            "BINARY SELL_BOTH: %s | bids=%.4f profit/share=%.4f shares=%.1f",
            pair.market.question[:60], total_bids, profit, max_shares,
        )

        return Opportunity(
            type=OpportunityType.SELL_BOTH,
            market=pair.market,
            yes_ask=yes_price.best_ask,
            no_ask=no_price.best_ask,
            yes_ask_size=yes_price.best_ask_size or 0.0,
            no_ask_size=no_price.best_ask_size or 0.0,
            yes_bid=yes_price.best_bid,
            no_bid=no_price.best_bid,
            yes_bid_size=yes_size,
            no_bid_size=no_size,
            total_cost=1.0,
            total_bids=total_bids,
            profit=profit,
            # Relative to the $1 mint cost, not normalized by total_bids
            profit_percent=profit,
            max_shares=max_shares,
        )


def _sum_bids(yes_price: TokenPrice, no_price: TokenPrice) -> float | None:
    if yes_price.has_bid and no_price.has_bid:
        return yes_price.best_bid + no_price.best_bid
    return None
