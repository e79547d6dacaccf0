"""
Tests for the market registry and strategy routing.
"""
import json

from strategy_arena.markets import Market, MarketRegistry, route_strategy
from strategy_arena.strategy_base import Strategy, StrategySignal

BTC_MARKET = "bitcoin-up-or-down-january-1"
DEM_MARKET = "democratic-presidential-nominee-2028"


class Untargeted(Strategy):
    id = "untargeted"

    async def analyze(self, market, signals):
        return StrategySignal.hold()


class PoliticsOnly(Strategy):
    id = "politics"
    target_markets = ["Presidential", "election"]

    async def analyze(self, market, signals):
        return StrategySignal.hold()


class CustomMatcher(Strategy):
    """Routes through an overridden hook instead of target patterns."""
    id = "custom"

    def matches_market(self, market_id):
        return market_id.endswith("2028")

    async def analyze(self, market, signals):
        return StrategySignal.hold()


class TestMarketRegistry:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "active_markets.json"
        path.write_text(json.dumps({
            "markets": [
                {"slug": BTC_MARKET, "category": "crypto", "up_token": "u1", "down_token": "d1"},
                {"slug": DEM_MARKET, "category": "politics", "up_token": "u2"},
            ],
            "default": BTC_MARKET,
        }))

        registry = MarketRegistry.load(str(path))

        assert registry.identifiers == [BTC_MARKET, DEM_MARKET]
        assert registry.get(DEM_MARKET).up_token == "u2"
        assert registry.get(DEM_MARKET).down_token is None
        assert registry.default_market().category == "crypto"

    def test_missing_file_gives_empty_registry(self, tmp_path):
        registry = MarketRegistry.load(str(tmp_path / "nope.json"))

        assert registry.markets == []
        assert registry.default_market() is None

    def test_malformed_file_gives_empty_registry(self, tmp_path):
        path = tmp_path / "active_markets.json"
        path.write_text("{not json")

        assert MarketRegistry.load(str(path)).markets == []

    def test_entries_without_slug_skipped(self):
        registry = MarketRegistry.from_dict({"markets": [{"category": "crypto"}, {"slug": BTC_MARKET}]})

        assert registry.identifiers == [BTC_MARKET]

    def test_default_falls_back_to_first_market(self):
        registry = MarketRegistry([Market(DEM_MARKET), Market(BTC_MARKET)])
        assert registry.default == DEM_MARKET

    def test_unlisted_default_still_active(self):
        registry = MarketRegistry([Market(DEM_MARKET)], default=BTC_MARKET)

        assert registry.identifiers == [DEM_MARKET, BTC_MARKET]
        assert registry.default_market() == Market(BTC_MARKET)

    def test_token_for_side(self):
        market = Market(BTC_MARKET, up_token="u", down_token="d")

        assert market.token_for("up") == "u"
        assert market.token_for("down") == "d"


class TestRouting:

    def test_untargeted_strategy_uses_default(self, markets):
        assert route_strategy(Untargeted(), markets).identifier == BTC_MARKET

    def test_pattern_match_is_case_insensitive(self, markets):
        assert route_strategy(PoliticsOnly(), markets).identifier == DEM_MARKET

    def test_no_match_abstains(self, markets):
        strategy = Untargeted()
        strategy.target_markets = ["inexistant-market"]

        assert route_strategy(strategy, markets) is None

    def test_overridden_hook_routes(self, markets):
        strategy = CustomMatcher()

        assert strategy.routes_by_market is True
        assert route_strategy(strategy, markets).identifier == DEM_MARKET

    def test_first_matching_market_wins(self):
        registry = MarketRegistry([Market("btc-hourly"), Market("btc-daily")])
        strategy = Untargeted()
        strategy.target_markets = ["btc"]

        assert route_strategy(strategy, registry).identifier == "btc-hourly"
