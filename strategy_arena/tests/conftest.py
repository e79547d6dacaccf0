"""
Pytest fixtures for the arena test suite.
"""
import pytest

from strategy_arena.allocator import EnsembleAllocator
from strategy_arena.arena import StrategyArena
from strategy_arena.config import AllocatorConfig, ArenaConfig, RiskConfig
from strategy_arena.markets import Market, MarketRegistry
from strategy_arena.mode_controller import ExecutionMode, ModeController
from strategy_arena.price_feed import StaticPriceSource
from strategy_arena.risk_manager import RiskGate
from strategy_arena.state_store import StateStore
from strategy_arena.strategy_base import Strategy, StrategyRegistry, StrategySignal
from strategy_arena.trade_ledger import Action, MarketPrices, TradeLedger

START_TIME = 1_767_225_600.0  # 2026-01-01 00:00 UTC

BTC_MARKET = "bitcoin-up-or-down-january-1"
DEM_MARKET = "democratic-presidential-nominee-2028"


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0) -> None:
        self.now += seconds + minutes * 60 + hours * 3600


class ScriptedStrategy(Strategy):
    """Returns a fixed signal, or raises if given an exception."""

    def __init__(self, strategy_id: str, action: Action = Action.HOLD, confidence: float = 0.5,
                 target_markets=None, error: Exception = None):
        super().__init__()
        self.id = strategy_id
        self.action = action
        self.confidence = confidence
        self.target_markets = target_markets
        self.error = error
        self.calls = []

    async def analyze(self, market, signals):
        self.calls.append((market, signals))
        if self.error is not None:
            raise self.error
        return StrategySignal(action=self.action, score=0.5, confidence=self.confidence,
                              reason=f"scripted {self.action.value}")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "paper_trades.json"


@pytest.fixture
def ledger(ledger_path, clock):
    """Empty ledger persisted under tmp_path."""
    return TradeLedger(StateStore(str(ledger_path)), clock=clock)


@pytest.fixture
def risk_config():
    return RiskConfig()


@pytest.fixture
def risk_gate(ledger, risk_config, clock):
    return RiskGate(ledger, risk_config, clock=clock)


@pytest.fixture
def allocator_config():
    return AllocatorConfig(mode="champion", fallback_strategy="baseline")


@pytest.fixture
def allocator(ledger, allocator_config, tmp_path, clock):
    return EnsembleAllocator(ledger, StateStore(str(tmp_path / "allocation_state.json")),
                             allocator_config, clock=clock)


@pytest.fixture
def markets():
    return MarketRegistry(
        [
            Market(BTC_MARKET, "crypto", up_token="btc-up", down_token="btc-down"),
            Market(DEM_MARKET, "politics", up_token="dem-up", down_token="dem-down"),
        ],
        default=BTC_MARKET,
    )


@pytest.fixture
def price_source():
    return StaticPriceSource({
        BTC_MARKET: MarketPrices(up=0.5, down=0.5),
        DEM_MARKET: MarketPrices(up=0.4, down=0.6),
    })


@pytest.fixture
def mode_controller(clock):
    return ModeController(ExecutionMode.PAPER, clock=clock)


@pytest.fixture
def make_arena(ledger, risk_gate, allocator, markets, price_source, mode_controller, tmp_path, clock):
    """Factory: build an arena around the shared fixtures with the given strategies."""

    def _make(strategies=(), execution_client=None, config=None):
        return StrategyArena(
            ledger=ledger,
            risk_gate=risk_gate,
            allocator=allocator,
            strategies=StrategyRegistry(list(strategies)),
            markets=markets,
            price_source=price_source,
            state_store=StateStore(str(tmp_path / "arena_state.json")),
            mode_controller=mode_controller,
            execution_client=execution_client,
            config=config or ArenaConfig(),
            clock=clock,
        )

    return _make


@pytest.fixture
def make_strategy():
    """Factory for ScriptedStrategy instances."""
    return ScriptedStrategy


@pytest.fixture
def settle(ledger):
    """
    Factory: record one closed trade for a strategy with the given P&L sign.

    Each trade gets its own market so it can be resolved on its own. Entry
    at 50% means a win pays +size and a loss costs -size.
    """
    counter = {"n": 0}

    def _settle(strategy, win=True, size=10.0):
        counter["n"] += 1
        market = f"settled-market-{counter['n']}"
        trade = ledger.log_trade(strategy, market, Action.BUY_UP, 0.5, size)
        ledger.close_market(market, "UP" if win else "DOWN")
        return trade

    return _settle
