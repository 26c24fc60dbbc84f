"""
Data models for the arbitrage scanner. Pure data, no behavior beyond derived properties.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class OpportunityType(Enum):
    BUY_BOTH = "BUY_BOTH"
    SELL_BOTH = "SELL_BOTH"


class CrossMarketStrategy(Enum):
    LONG_DOWN_SHORT_UP = "LONG_DOWN_SHORT_UP"
    LONG_UP_SHORT_DOWN = "LONG_UP_SHORT_DOWN"


class Interval(Enum):
    """Candle interval of a crypto up/down market."""
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def seconds(self) -> int:
        return _INTERVAL_SECONDS[self]

    @property
    def rank(self) -> int:
        """Ordering used to pick the long market: 1d > 4h > 1h > 30m > 15m."""
        return _INTERVAL_RANK[self]


_INTERVAL_SECONDS = {
    Interval.M15: 15 * 60,
    Interval.M30: 30 * 60,
    Interval.H1: 60 * 60,
    Interval.H4: 4 * 60 * 60,
    Interval.D1: 24 * 60 * 60,
}

_INTERVAL_RANK = {
    Interval.M15: 1,
    Interval.M30: 2,
    Interval.H1: 3,
    Interval.H4: 4,
    Interval.D1: 5,
}


@dataclass(frozen=True)
class PriceLevel:
    price: float
    size: float


@dataclass(frozen=True)
class OrderBook:
    token_id: str
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None


@dataclass(frozen=True)
class Market:
    market_id: str
    question: str
    slug: str
    yes_token_id: str
    no_token_id: str
    liquidity: float = 0.0
    end_date: str = ""  # ISO 8601 from Gamma API (empty = unknown)
    interval: Interval | None = None  # explicit series metadata, when discovery knows it

    @property
    def end_timestamp(self) -> int | None:
        """Resolution time as unix seconds, or None if end_date is missing/unparseable."""
        return parse_iso_timestamp(self.end_date)


def parse_iso_timestamp(value: str) -> int | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


@dataclass(frozen=True)
class MarketPair:
    market: Market
    yes_token_id: str
    no_token_id: str

    @classmethod
    def from_market(cls, market: Market) -> MarketPair:
        return cls(market=market, yes_token_id=market.yes_token_id, no_token_id=market.no_token_id)


@dataclass(frozen=True)
class TokenPrice:
    """
    Best-of-book snapshot for a single token.

    A field is None when no source has reported it yet. A quote is usable
    only when its price is present and strictly positive; a zero price means
    that side of the book is empty.
    """
    token_id: str
    best_ask: float | None = None
    best_ask_size: float | None = None
    best_bid: float | None = None
    best_bid_size: float | None = None
    last_update: float = 0.0

    @property
    def has_ask(self) -> bool:
        return self.best_ask is not None and self.best_ask > 0

    @property
    def has_bid(self) -> bool:
        return self.best_bid is not None and self.best_bid > 0


@dataclass
class MarketInfo:
    """Cross-market metadata derived once per market at registration time."""
    pair: MarketPair
    asset: str
    interval: Interval
    resolution_timestamp: int
    candle_start_timestamp: int
    reference_price: float | None = None

    @property
    def market(self) -> Market:
        return self.pair.market

    @property
    def slug(self) -> str:
        return self.pair.market.slug

    @property
    def label(self) -> str:
        return f"{self.asset.upper()}-{self.interval.value}"


@dataclass(frozen=True)
class Opportunity:
    type: OpportunityType
    market: Market
    yes_ask: float | None
    no_ask: float | None
    yes_ask_size: float
    no_ask_size: float
    yes_bid: float | None
    no_bid: float | None
    yes_bid_size: float
    no_bid_size: float
    total_cost: float   # ask sum for BUY_BOTH, 1.0 mint cost for SELL_BOTH
    total_bids: float | None
    profit: float       # per share
    profit_percent: float
    max_shares: float
    timestamp: float = field(default_factory=time.time)

    @property
    def expected_profit(self) -> float:
        return self.profit * self.max_shares


@dataclass(frozen=True)
class CrossMarketOpportunity:
    asset: str
    long_market: Market
    short_market: Market
    long_interval: Interval
    short_interval: Interval
    long_up_token_id: str
    long_down_token_id: str
    short_up_token_id: str
    short_down_token_id: str
    long_ref_price: float
    short_ref_price: float
    profit_zone_low: float
    profit_zone_high: float
    strategy: CrossMarketStrategy
    long_up_ask: float
    long_down_ask: float
    short_up_ask: float
    short_down_ask: float
    entry_cost: float
    max_profit: float   # 2.0 - entry_cost, or -entry_cost when refs are identical
    profit_zone_width: float
    profit_zone_percent: float
    max_shares: float
    resolution_time: int
    minutes_until_resolution: float
    identical_refs: bool = False
    timestamp: float = field(default_factory=time.time)

    @property
    def pair_label(self) -> str:
        return f"{self.asset.upper()} {self.long_interval.value}/{self.short_interval.value}"

    @property
    def leg_token_ids(self) -> tuple[str, str]:
        """Token ids of the two legs the strategy buys (long leg first)."""
        if self.strategy == CrossMarketStrategy.LONG_DOWN_SHORT_UP:
            return self.long_down_token_id, self.short_up_token_id
        return self.long_up_token_id, self.short_down_token_id


@dataclass(frozen=True)
class NearMissOpportunity:
    type: OpportunityType
    market: Market
    yes_price: float
    no_price: float
    total: float        # ask sum for BUY_BOTH, bid sum for SELL_BOTH
    profit_gap: float   # signed, positive = already profitable
    max_shares: float

    @property
    def is_profitable(self) -> bool:
        return self.profit_gap >= 0


@dataclass(frozen=True)
class PairDiagnostics:
    potential_pairs: int = 0
    missing_ref_prices: int = 0
    missing_asks: int = 0
    details: tuple[str, ...] = ()

    def summary(self, max_details: int = 3) -> str:
        if self.details:
            return "\n".join(self.details[:max_details])
        return (
            f"{self.potential_pairs} pairs: {self.missing_ref_prices} missing refs, "
            f"{self.missing_asks} missing asks"
        )


@dataclass(frozen=True)
class MarketSummary:
    asset: str
    interval: Interval
    minutes_until_resolution: float
    reference_price: float | None
    up_best_ask: float | None
    up_best_bid: float | None
    down_best_ask: float | None
    down_best_bid: float | None
