"""
Unit tests for scanner/price_cache.py -- merge semantics and pruning.
"""

import threading
import time

from scanner.price_cache import PriceCache


class TestUpdate:
    def test_first_update_creates_record(self):
        cache = PriceCache()
        tp = cache.update("t1", best_ask=0.4, best_ask_size=100, timestamp=1000.0)
        assert tp.best_ask == 0.4
        assert tp.best_ask_size == 100
        assert tp.best_bid is None
        assert tp.last_update == 1000.0
        assert cache.get("t1") == tp

    def test_partial_update_preserves_other_fields(self):
        """A price-only delta must not erase a known size or the other side."""
        cache = PriceCache()
        cache.update("t1", best_ask=0.4, best_ask_size=100, best_bid=0.38, best_bid_size=50)
        tp = cache.update("t1", best_ask=0.41)
        assert tp.best_ask == 0.41
        assert tp.best_ask_size == 100
        assert tp.best_bid == 0.38
        assert tp.best_bid_size == 50

    def test_merge_idempotent(self):
        cache = PriceCache()
        first = cache.update("t1", best_ask=0.4, best_bid=0.3, timestamp=5.0)
        second = cache.update("t1", best_ask=0.4, best_bid=0.3, timestamp=5.0)
        assert first == second

    def test_zero_is_stored_not_ignored(self):
        cache = PriceCache()
        cache.update("t1", best_ask=0.4)
        tp = cache.update("t1", best_ask=0.0)
        assert tp.best_ask == 0.0
        assert not tp.has_ask

    def test_timestamp_defaults_to_now(self):
        cache = PriceCache()
        before = time.time()
        tp = cache.update("t1", best_bid=0.2)
        assert tp.last_update >= before


class TestReads:
    def test_get_missing(self):
        assert PriceCache().get("nope") is None

    def test_get_many_omits_missing(self):
        cache = PriceCache()
        cache.update("a", best_ask=0.1)
        cache.update("b", best_ask=0.2)
        result = cache.get_many(["a", "b", "c"])
        assert set(result) == {"a", "b"}

    def test_token_count_and_clear(self):
        cache = PriceCache()
        cache.update("a", best_ask=0.1)
        cache.update("b", best_ask=0.2)
        assert cache.token_count() == 2
        cache.clear()
        assert cache.token_count() == 0


class TestPrune:
    def test_prunes_only_stale(self):
        cache = PriceCache()
        now = time.time()
        cache.update("old", best_ask=0.1, timestamp=now - 120)
        cache.update("fresh", best_ask=0.2, timestamp=now)
        removed = cache.prune_older_than(60_000)
        assert removed == 1
        assert cache.get("old") is None
        assert cache.get("fresh") is not None

    def test_nothing_to_prune(self):
        cache = PriceCache()
        cache.update("fresh", best_ask=0.2)
        assert cache.prune_older_than(60_000) == 0


class TestThreadSafety:
    def test_concurrent_updates(self):
        cache = PriceCache()

        def writer(prefix):
            for i in range(200):
                cache.update(f"{prefix}-{i % 20}", best_ask=0.5, best_bid=0.4)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert cache.token_count() == 80
