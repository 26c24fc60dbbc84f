"""
Unit tests for scanner/registry.py and scanner/ref_price_cache.py.
"""

import logging

from scanner.models import Interval, Market, MarketPair
from scanner.ref_price_cache import ReferencePriceCache
from scanner.registry import MarketRegistry

END_ISO = "2024-12-24T00:00:00Z"


def _make_pair(market_id, slug=None, yes_id=None, no_id=None, end_date=END_ISO):
    slug = slug or f"plain-market-{market_id}"
    market = Market(
        market_id=market_id,
        question=f"Question {market_id}?",
        slug=slug,
        yes_token_id=yes_id or f"{market_id}-yes",
        no_token_id=no_id or f"{market_id}-no",
        liquidity=1000.0,
        end_date=end_date,
    )
    return MarketPair.from_market(market)


class TestReferencePriceCache:
    def test_set_and_get(self):
        cache = ReferencePriceCache()
        assert cache.set("slug-a", 100.0)
        assert cache.get("slug-a") == 100.0
        assert "slug-a" in cache
        assert len(cache) == 1

    def test_never_overwritten(self, caplog):
        cache = ReferencePriceCache()
        cache.set("slug-a", 100.0)
        with caplog.at_level(logging.WARNING):
            assert not cache.set("slug-a", 101.0)
        assert cache.get("slug-a") == 100.0
        assert "already set" in caplog.text

    def test_same_value_is_accepted(self):
        cache = ReferencePriceCache()
        cache.set("slug-a", 100.0)
        assert cache.set("slug-a", 100.0)

    def test_snapshot_is_a_copy(self):
        cache = ReferencePriceCache()
        cache.set("a", 1.0)
        snap = cache.snapshot()
        snap["b"] = 2.0
        assert cache.get("b") is None


class TestLookups:
    def test_token_and_market_lookup(self):
        reg = MarketRegistry()
        pair = _make_pair("m1")
        reg.set_markets([pair])
        assert reg.lookup_by_token("m1-yes") is pair
        assert reg.lookup_by_token("m1-no") is pair
        assert reg.lookup_by_market_id("m1") is pair
        assert reg.lookup_by_token("unknown") is None
        assert reg.market_count() == 1
        assert sorted(reg.all_token_ids()) == ["m1-no", "m1-yes"]

    def test_replace_untracks_old_tokens(self):
        reg = MarketRegistry()
        reg.set_markets([_make_pair("m1"), _make_pair("m2")])
        reg.set_markets([_make_pair("m2")])
        assert reg.lookup_by_token("m1-yes") is None
        assert reg.lookup_by_market_id("m1") is None
        assert reg.market_count() == 1

    def test_duplicate_token_later_pair_wins(self, caplog):
        reg = MarketRegistry()
        first = _make_pair("m1", yes_id="shared")
        second = _make_pair("m2", yes_id="shared")
        with caplog.at_level(logging.WARNING):
            reg.set_markets([first, second])
        assert reg.lookup_by_token("shared") is second
        assert "registered to both" in caplog.text
        assert reg.lookup_by_market_id("m1") is None
        assert reg.lookup_by_token("m1-no") is None
        assert reg.pairs() == [second]
        assert sorted(reg.all_token_ids()) == ["m2-no", "shared"]

    def test_non_crypto_markets_have_no_info(self):
        reg = MarketRegistry()
        reg.set_markets([_make_pair("m1")])
        assert reg.market_infos() == []
        assert reg.info_for_token("m1-yes") is None


class TestMarketInfos:
    def test_crypto_market_indexed(self):
        reg = MarketRegistry()
        pair = _make_pair("m1", slug="btc-updown-15m-1734997500")
        reg.set_markets([pair])
        info = reg.info_for_slug("btc-updown-15m-1734997500")
        assert info is not None
        assert info.interval == Interval.M15
        assert reg.info_for_token("m1-yes") is info
        assert reg.info_for_token("m1-no") is info

    def test_reference_price_survives_refresh(self):
        """A loaded reference price is saved on refresh and restored on the new info."""
        ref_cache = ReferencePriceCache()
        reg = MarketRegistry(ref_cache=ref_cache)
        slug = "btc-updown-1h-1734994800"
        reg.set_markets([_make_pair("m1", slug=slug)])
        reg.info_for_slug(slug).reference_price = 97_500.0

        reg.set_markets([_make_pair("m1", slug=slug)])
        assert reg.info_for_slug(slug).reference_price == 97_500.0
        assert ref_cache.get(slug) == 97_500.0

    def test_cached_price_not_overwritten_by_live_value(self):
        ref_cache = ReferencePriceCache()
        slug = "btc-updown-1h-1734994800"
        ref_cache.set(slug, 97_500.0)
        reg = MarketRegistry(ref_cache=ref_cache)
        reg.set_markets([_make_pair("m1", slug=slug)])
        info = reg.info_for_slug(slug)
        assert info.reference_price == 97_500.0

        info.reference_price = 12.0  # bogus mutation on the live object
        reg.set_markets([_make_pair("m1", slug=slug)])
        assert reg.info_for_slug(slug).reference_price == 97_500.0

    def test_without_cache_prices_reset(self):
        reg = MarketRegistry()
        slug = "btc-updown-1h-1734994800"
        reg.set_markets([_make_pair("m1", slug=slug)])
        reg.info_for_slug(slug).reference_price = 1.0
        reg.set_markets([_make_pair("m1", slug=slug)])
        assert reg.info_for_slug(slug).reference_price is None
