"""
Unit tests for scanner/engine.py -- the price-event pipeline end to end.
"""

import time

import pytest

from config import Config
from monitor.dispatch import OpportunityDispatcher
from scanner.engine import ScanEngine
from scanner.models import (
    CrossMarketOpportunity,
    Interval,
    Market,
    MarketPair,
    Opportunity,
    OrderBook,
    PriceLevel,
)

END_ISO = "2024-12-24T00:00:00Z"
H1 = "btc-updown-1h-1734994800"
M15 = "btc-updown-15m-1734997500"


def _make_pair(slug, liquidity=1000.0):
    market = Market(
        market_id=slug,
        question=f"{slug}?",
        slug=slug,
        yes_token_id=f"{slug}-yes",
        no_token_id=f"{slug}-no",
        liquidity=liquidity,
        end_date=END_ISO,
    )
    return MarketPair.from_market(market)


def _make_engine(slugs=("plain",), **kwargs):
    received = []
    dispatcher = OpportunityDispatcher([received.append])
    engine = ScanEngine(min_profit_threshold=0.005, dispatcher=dispatcher, **kwargs)
    engine.set_markets([_make_pair(s) for s in slugs])
    return engine, received


class TestApplyDelta:
    def test_second_leg_triggers_opportunity(self):
        engine, received = _make_engine()
        assert engine.apply_delta("plain-yes", best_ask=0.48, best_ask_size=100) == []
        found = engine.apply_delta("plain-no", best_ask=0.51, best_ask_size=100)

        assert len(found) == 1
        assert isinstance(found[0], Opportunity)
        assert received == found
        assert engine.dispatcher.dispatched == 1

    def test_price_only_delta_keeps_size(self):
        engine, _ = _make_engine()
        engine.apply_delta("plain-yes", best_ask=0.50, best_ask_size=100)
        engine.apply_delta("plain-no", best_ask=0.51, best_ask_size=100)
        found = engine.apply_delta("plain-yes", best_ask=0.48)
        assert len(found) == 1
        assert found[0].max_shares == 100

    def test_unknown_token_cached_but_not_evaluated(self):
        engine, received = _make_engine()
        assert engine.apply_delta("stray", best_ask=0.1, best_ask_size=10) == []
        assert engine.price_cache.get("stray") is not None
        assert received == []


class TestApplyBook:
    def test_snapshot(self):
        engine, _ = _make_engine()
        engine.apply_book("plain-yes", PriceLevel(0.48, 100), PriceLevel(0.46, 80))
        tp = engine.price_cache.get("plain-yes")
        assert tp.best_ask == 0.48
        assert tp.best_bid_size == 80

    def test_empty_side_clears_previous(self):
        engine, _ = _make_engine()
        engine.apply_book("plain-yes", PriceLevel(0.48, 100), PriceLevel(0.46, 80))
        engine.apply_book("plain-yes", None, PriceLevel(0.47, 10))
        tp = engine.price_cache.get("plain-yes")
        assert not tp.has_ask
        assert tp.best_ask_size == 0.0
        assert tp.best_bid == 0.47

    def test_emptied_ask_side_cannot_form_opportunity(self):
        engine, received = _make_engine()
        engine.apply_delta("plain-yes", best_ask=0.40, best_ask_size=100)
        engine.apply_delta("plain-no", best_ask=0.70, best_ask_size=100)
        engine.apply_book("plain-yes", None, PriceLevel(0.35, 50))

        assert engine.apply_book("plain-no", PriceLevel(0.50, 100), None) == []
        assert engine.scan_all().single == []
        assert received == []

    def test_order_book(self):
        engine, _ = _make_engine()
        book = OrderBook(
            token_id="plain-no",
            bids=(PriceLevel(0.40, 5),),
            asks=(PriceLevel(0.45, 20), PriceLevel(0.50, 90)),
        )
        engine.apply_order_book(book, timestamp=123.0)
        tp = engine.price_cache.get("plain-no")
        assert tp.best_ask == 0.45
        assert tp.best_ask_size == 20
        assert tp.last_update == 123.0


class TestCrossMarket:
    def _setup(self, **kwargs):
        engine, received = _make_engine((H1, M15), **kwargs)
        engine.set_reference_price(H1, 100_000.0)
        engine.set_reference_price(M15, 99_000.0)
        return engine, received

    def test_delta_finds_cross_opportunity(self):
        engine, received = self._setup()
        engine.apply_delta(f"{H1}-no", best_ask=0.40, best_ask_size=50)
        found = engine.apply_delta(f"{M15}-yes", best_ask=0.55, best_ask_size=50)
        assert len(found) == 1
        assert isinstance(found[0], CrossMarketOpportunity)
        assert received == found

    def test_disabled(self):
        engine, received = self._setup(cross_market_enabled=False)
        engine.apply_delta(f"{H1}-no", best_ask=0.40, best_ask_size=50)
        assert engine.apply_delta(f"{M15}-yes", best_ask=0.55, best_ask_size=50) == []
        assert engine.scan_all().cross == []
        assert engine.all_cross_near_misses() == []
        assert engine.best_cross_near_miss() is None

    def test_reference_price_survives_market_refresh(self):
        engine, _ = self._setup()
        engine.set_markets([_make_pair(H1), _make_pair(M15)])
        assert engine.registry.info_for_slug(H1).reference_price == 100_000.0

    def test_refresh_forgets_missing_ask_log_for_rotated_pairs(self):
        engine, _ = self._setup()
        engine.cross.evaluate_pair(engine.registry.info_for_slug(H1), engine.registry.info_for_slug(M15))
        assert engine.cross._logged_missing == {(H1, M15)}
        engine.set_markets([_make_pair(H1)])
        assert engine.cross._logged_missing == set()

    def test_near_misses(self):
        engine, _ = self._setup()
        engine.apply_delta(f"{H1}-no", best_ask=0.99, best_ask_size=50)
        engine.apply_delta(f"{M15}-yes", best_ask=1.0, best_ask_size=50)
        assert len(engine.all_cross_near_misses()) == 1
        assert engine.best_cross_near_miss() is not None

    @pytest.mark.asyncio
    async def test_load_reference_prices_disabled(self):
        engine, _ = _make_engine((H1, M15), cross_market_enabled=False)
        result = await engine.load_reference_prices()
        assert result.skipped

    @pytest.mark.asyncio
    async def test_load_reference_prices(self):
        async def source(asset, interval, resolution_ts):
            return 100_000.0 if interval == Interval.H1 else 99_000.0

        engine, _ = _make_engine((H1, M15), reference_source=source)
        result = await engine.load_reference_prices()
        assert result.loaded == 2
        assert engine.stats()["reference_prices_cached"] == 2


class TestScanAll:
    def test_dispatches_everything(self):
        engine, received = _make_engine(("a", "b"))
        for mid in ("a", "b"):
            engine.price_cache.update(f"{mid}-yes", best_ask=0.45, best_ask_size=10)
            engine.price_cache.update(f"{mid}-no", best_ask=0.45, best_ask_size=10)

        result = engine.scan_all()
        assert len(result.single) == 2
        assert result.total == 2
        assert len(received) == 2

    def test_prune_stale(self):
        engine, _ = _make_engine(stale_data_max_age_ms=1000)
        engine.apply_delta("plain-yes", best_ask=0.5, timestamp=time.time() - 10)
        engine.apply_delta("plain-no", best_ask=0.5)
        assert engine.prune_stale() == 1
        assert engine.price_cache.get("plain-yes") is None


class TestStats:
    def test_keys(self):
        engine, _ = _make_engine((H1, M15, "plain"))
        engine.apply_delta("plain-yes", best_ask=0.5)
        stats = engine.stats()
        assert stats["markets"] == 3
        assert stats["tokens"] == 6
        assert stats["tokens_with_prices"] == 1
        assert stats["cross_markets_tracked"] == 2
        assert stats["cross_pairs_found"] == 1
        assert stats["opportunities_dispatched"] == 0
        assert sorted(engine.token_ids()) == sorted(engine.registry.all_token_ids())


class TestFromConfig:
    def test_thresholds_applied(self):
        cfg = Config(
            min_profit_threshold=0.02,
            min_liquidity_threshold=50.0,
            cross_market_enabled=False,
            cross_market_fallback_share_size=10.0,
        )
        engine = ScanEngine.from_config(cfg)
        assert engine.single.min_profit_threshold == 0.02
        assert engine.single.min_liquidity_threshold == 50.0
        assert engine.cross.min_profit_threshold == 0.02
        assert engine.cross.fallback_share_size == 10.0
        assert not engine.cross_market_enabled
