"""
Unit tests for scanner/models.py -- data models.
"""

import dataclasses

import pytest

from scanner.models import (
    CrossMarketOpportunity,
    CrossMarketStrategy,
    Interval,
    Market,
    MarketPair,
    NearMissOpportunity,
    Opportunity,
    OpportunityType,
    OrderBook,
    PairDiagnostics,
    PriceLevel,
    TokenPrice,
    parse_iso_timestamp,
)


def _make_market(end_date=""):
    return Market(
        market_id="m1",
        question="Will it rain?",
        slug="will-it-rain",
        yes_token_id="yes1",
        no_token_id="no1",
        liquidity=1000.0,
        end_date=end_date,
    )


class TestPriceLevel:
    def test_frozen(self):
        pl = PriceLevel(price=0.55, size=100.0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            pl.price = 0.60


class TestOrderBook:
    def test_best_levels(self):
        book = OrderBook(
            token_id="tok1",
            bids=(PriceLevel(0.50, 200.0), PriceLevel(0.49, 300.0)),
            asks=(PriceLevel(0.52, 150.0), PriceLevel(0.53, 250.0)),
        )
        assert book.best_bid == PriceLevel(0.50, 200.0)
        assert book.best_ask == PriceLevel(0.52, 150.0)

    def test_empty_book(self):
        book = OrderBook(token_id="empty", bids=(), asks=())
        assert book.best_bid is None
        assert book.best_ask is None


class TestInterval:
    def test_seconds(self):
        assert Interval.M15.seconds == 900
        assert Interval.H1.seconds == 3600
        assert Interval.D1.seconds == 86400

    def test_rank_order(self):
        ranks = [i.rank for i in (Interval.M15, Interval.M30, Interval.H1, Interval.H4, Interval.D1)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 5

    def test_from_value(self):
        assert Interval("4h") is Interval.H4


class TestMarket:
    def test_end_timestamp_z_suffix(self):
        market = _make_market("2025-01-01T00:00:00Z")
        assert market.end_timestamp == 1735689600

    def test_end_timestamp_missing(self):
        assert _make_market("").end_timestamp is None

    def test_end_timestamp_garbage(self):
        assert _make_market("not a date").end_timestamp is None

    def test_naive_datetime_is_utc(self):
        assert parse_iso_timestamp("2025-01-01T00:00:00") == 1735689600

    def test_pair_from_market(self):
        pair = MarketPair.from_market(_make_market())
        assert pair.yes_token_id == "yes1"
        assert pair.no_token_id == "no1"


class TestTokenPrice:
    def test_usable_quotes(self):
        tp = TokenPrice(token_id="t", best_ask=0.4, best_bid=0.39)
        assert tp.has_ask
        assert tp.has_bid

    def test_zero_price_is_not_usable(self):
        tp = TokenPrice(token_id="t", best_ask=0.0, best_bid=0.0)
        assert not tp.has_ask
        assert not tp.has_bid

    def test_missing_price_is_not_usable(self):
        tp = TokenPrice(token_id="t")
        assert not tp.has_ask
        assert not tp.has_bid


class TestOpportunity:
    def test_expected_profit(self):
        opp = Opportunity(
            type=OpportunityType.BUY_BOTH,
            market=_make_market(),
            yes_ask=0.48, no_ask=0.51,
            yes_ask_size=100.0, no_ask_size=80.0,
            yes_bid=None, no_bid=None,
            yes_bid_size=0.0, no_bid_size=0.0,
            total_cost=0.99, total_bids=None,
            profit=0.01, profit_percent=0.01 / 0.99,
            max_shares=80.0,
        )
        assert abs(opp.expected_profit - 0.8) < 1e-9
        assert opp.timestamp > 0


def _make_cross(strategy):
    long_market = _make_market()
    short_market = dataclasses.replace(long_market, market_id="m2", slug="short")
    return CrossMarketOpportunity(
        asset="btc",
        long_market=long_market,
        short_market=short_market,
        long_interval=Interval.H1,
        short_interval=Interval.M15,
        long_up_token_id="lu", long_down_token_id="ld",
        short_up_token_id="su", short_down_token_id="sd",
        long_ref_price=100_000.0, short_ref_price=99_000.0,
        profit_zone_low=99_000.0, profit_zone_high=100_000.0,
        strategy=strategy,
        long_up_ask=0.6, long_down_ask=0.4, short_up_ask=0.55, short_down_ask=0.45,
        entry_cost=0.95, max_profit=1.05,
        profit_zone_width=1000.0, profit_zone_percent=1.005,
        max_shares=100.0,
        resolution_time=1_700_000_000,
        minutes_until_resolution=10.0,
    )


class TestCrossMarketOpportunity:
    def test_pair_label(self):
        assert _make_cross(CrossMarketStrategy.LONG_DOWN_SHORT_UP).pair_label == "BTC 1h/15m"

    def test_leg_tokens_follow_strategy(self):
        assert _make_cross(CrossMarketStrategy.LONG_DOWN_SHORT_UP).leg_token_ids == ("ld", "su")
        assert _make_cross(CrossMarketStrategy.LONG_UP_SHORT_DOWN).leg_token_ids == ("lu", "sd")


class TestNearMiss:
    def test_profitable_flag(self):
        nm = NearMissOpportunity(
            type=OpportunityType.SELL_BOTH, market=_make_market(),
            yes_price=0.5, no_price=0.5, total=1.0, profit_gap=0.0, max_shares=10,
        )
        assert nm.is_profitable


class TestPairDiagnostics:
    def test_summary_uses_first_three_details(self):
        diag = PairDiagnostics(potential_pairs=4, missing_ref_prices=4, details=("a", "b", "c", "d"))
        assert diag.summary() == "a\nb\nc"

    def test_summary_counts_without_details(self):
        diag = PairDiagnostics(potential_pairs=2)
        assert diag.summary() == "2 pairs: 0 missing refs, 0 missing asks"
