"""
Integration tests for client/gamma.py -- market discovery with mocked HTTP.
"""

import json

import httpx
import respx

from client.gamma import (
    create_market_pairs,
    filter_markets,
    get_all_markets,
    get_markets,
    parse_market,
)
from scanner.models import Market


GAMMA_HOST = "https://gamma-api.polymarket.com"


def _market_json(mid, yes_id, no_id, question=None, liquidity=1000.0, end_date="2024-12-24T00:00:00Z",
                 outcomes=("Yes", "No")):
    return {
        "id": mid,
        "question": question or f"Question for {mid}?",
        "slug": f"slug-{mid}",
        "clobTokenIds": json.dumps([yes_id, no_id]),
        "outcomes": json.dumps(list(outcomes)),
        "liquidityNum": liquidity,
        "endDate": end_date,
    }


def _market(mid, question="Q?", end_date=""):
    return Market(
        market_id=mid, question=question, slug=mid, yes_token_id=f"{mid}-y", no_token_id=f"{mid}-n",
        liquidity=1000.0, end_date=end_date,
    )


class TestParseMarket:
    def test_encoded_strings(self):
        m = parse_market(_market_json("m1", "y1", "n1", liquidity=2500.5))
        assert m.market_id == "m1"
        assert m.yes_token_id == "y1"
        assert m.no_token_id == "n1"
        assert m.liquidity == 2500.5
        assert m.end_date == "2024-12-24T00:00:00Z"

    def test_real_lists(self):
        raw = _market_json("m1", "y1", "n1")
        raw["clobTokenIds"] = ["y1", "n1"]
        raw["outcomes"] = ["Up", "Down"]
        assert parse_market(raw).yes_token_id == "y1"

    def test_non_binary_rejected(self):
        raw = _market_json("m1", "y1", "n1", outcomes=("A", "B", "C"))
        assert parse_market(raw) is None

    def test_missing_tokens_rejected(self):
        raw = _market_json("m1", "y1", "n1")
        raw["clobTokenIds"] = "not json"
        assert parse_market(raw) is None

    def test_bad_liquidity_defaults_to_zero(self):
        raw = _market_json("m1", "y1", "n1")
        raw["liquidityNum"] = "n/a"
        assert parse_market(raw).liquidity == 0.0


class TestGetMarkets:
    @respx.mock
    def test_basic_fetch(self):
        """Should parse binary markets and send the discovery filters."""
        route = respx.get(f"{GAMMA_HOST}/markets").mock(
            return_value=httpx.Response(200, json=[
                _market_json("m1", "y1", "n1"),
                _market_json("m2", "y2", "n2", outcomes=("A", "B", "C")),
            ])
        )

        markets = get_markets(GAMMA_HOST, min_liquidity=100)
        assert [m.market_id for m in markets] == ["m1"]
        params = route.calls[0].request.url.params
        assert params["active"] == "true"
        assert params["closed"] == "false"
        assert params["enableOrderBook"] == "true"


class TestGetAllMarkets:
    @respx.mock
    def test_pagination(self):
        """Should page until an empty page and sort by liquidity."""
        pages = {
            "0": [_market_json(f"a{i}", f"ya{i}", f"na{i}", liquidity=100 + i) for i in range(100)],
            "100": [_market_json("b0", "yb0", "nb0", liquidity=5000)],
            "200": [],
        }

        def side_effect(request):
            return httpx.Response(200, json=pages[request.url.params["offset"]])

        respx.get(f"{GAMMA_HOST}/markets").mock(side_effect=side_effect)

        markets = get_all_markets(GAMMA_HOST)
        assert len(markets) == 101
        assert markets[0].market_id == "b0"

    @respx.mock
    def test_max_markets_cap(self):
        respx.get(f"{GAMMA_HOST}/markets").mock(
            return_value=httpx.Response(200, json=[
                _market_json(f"m{i}", f"y{i}", f"n{i}") for i in range(100)
            ])
        )
        assert len(get_all_markets(GAMMA_HOST, max_markets=150)) == 150

    @respx.mock
    def test_http_error_returns_partial(self):
        calls = {"n": 0}

        def side_effect(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(200, json=[_market_json(f"m{i}", f"y{i}", f"n{i}") for i in range(100)])
            return httpx.Response(500)

        respx.get(f"{GAMMA_HOST}/markets").mock(side_effect=side_effect)
        assert len(get_all_markets(GAMMA_HOST)) == 100


class TestFilterMarkets:
    def test_keywords_whole_word(self):
        markets = [
            _market("a", "Will BTC close above $100k?"),
            _market("b", "Will the Solar eclipse happen?"),
            _market("c", "Ethereum up or down?"),
        ]
        result = filter_markets(markets, keywords=("btc", "sol", "ethereum"))
        assert [m.market_id for m in result] == ["a", "c"]

    def test_time_window_sorted_soonest_first(self):
        now = 1_734_998_400
        markets = [
            _market("later", end_date="2024-12-24T05:00:00Z"),
            _market("past", end_date="2024-12-23T23:00:00Z"),
            _market("soon", end_date="2024-12-24T01:00:00Z"),
            _market("too-far", end_date="2024-12-26T00:00:00Z"),
            _market("unknown", end_date=""),
        ]
        result = filter_markets(markets, max_hours=6, now=now)
        assert [m.market_id for m in result] == ["soon", "later"]

    def test_no_filters_is_identity(self):
        markets = [_market("a"), _market("b")]
        assert filter_markets(markets) == markets


class TestCreatePairs:
    def test_pairs(self):
        pairs = create_market_pairs([_market("a"), _market("b")])
        assert [p.yes_token_id for p in pairs] == ["a-y", "b-y"]
