"""
Strategy Base Classes

Provides a standardized interface for all arena strategies.
Strategies ONLY produce signals - they never execute or record trades.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from typing import Iterator, Optional

from strategy_arena.trade_ledger import Action


@dataclass
class MarketSnapshot:
    """Market state passed to every strategy for one cycle."""
    market: str                    # Market identifier (slug)
    category: str
    up_price: float                # UP token price, 0-1
    down_price: float              # DOWN token price (usually 1 - up_price)
    timestamp: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StrategySignal:
    """Output from strategy - pure data, no execution logic."""
    action: Action
    score: float = 0.0             # Signed conviction, -1 (DOWN) to 1 (UP)
    confidence: float = 0.0        # 0.0 - 1.0
    reason: str = ""
    metadata: dict = field(default_factory=dict)

    @classmethod
    def hold(cls, reason: str = "No clear signal") -> "StrategySignal":
        return cls(action=Action.HOLD, reason=reason)

    @classmethod
    def from_score(
        cls,
        score: float,
        confidence: float,
        reason: str = "",
        threshold: float = 0.1,
    ) -> "StrategySignal":
        """BUY_UP above +threshold, BUY_DOWN below -threshold, HOLD in between"""
        if score > threshold:
            action = Action.BUY_UP
        elif score < -threshold:
            action = Action.BUY_DOWN
        else:
            action = Action.HOLD
        return cls(action=action, score=score, confidence=confidence, reason=reason)

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "action": self.action.value,
        }


@dataclass
class EvalError:
    """A strategy raised instead of returning a signal."""
    error_type: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EvalResult:
    """One strategy's evaluation for one cycle: a signal, an abstention, or an error."""
    strategy: str
    market: Optional[str]          # None when no market matched the strategy's targets
    signal: Optional[StrategySignal] = None
    error: Optional[EvalError] = None

    @property
    def action(self) -> Action:
        """Errors and abstentions count as HOLD"""
        if self.signal is None or self.error is not None:
            return Action.HOLD
        return self.signal.action

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "market": self.market,
            "action": self.action.value,
            "signal": self.signal.to_dict() if self.signal else None,
            "error": self.error.to_dict() if self.error else None,
        }


class Strategy(ABC):
    """
    Base class for all arena strategies.

    Strategies ONLY produce signals, never execute.
    Execution and recording are handled by the arena.
    """

    id: str = "base"
    description: str = "Base strategy class"
    # Substring patterns matched case-insensitively against market identifiers.
    # None means "trade the default market".
    target_markets: Optional[list[str]] = None

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

    @property
    def routes_by_market(self) -> bool:
        """True if this strategy picks its own market instead of the default"""
        overrides_hook = type(self).matches_market is not Strategy.matches_market
        return bool(self.target_markets) or overrides_hook

    def matches_market(self, market_id: str) -> bool:
        """Capability hook; the default checks target_markets patterns."""
        if not self.target_markets:
            return False
        market_id = market_id.lower()
        return any(pattern.lower() in market_id for pattern in self.target_markets)

    @abstractmethod
    async def analyze(self, market: MarketSnapshot, signals: dict) -> StrategySignal:
        """
        Produce a signal for one market.

        Args:
            market: Current market snapshot
            signals: Shared external signals for this cycle (momentum, sentiment, ...)
        """
        pass

    def get_status(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "target_markets": self.target_markets,
        }


class StrategyRegistry:
    """Explicit, ordered set of strategies taking part in the arena."""

    def __init__(self, strategies: Optional[list[Strategy]] = None):
        self._strategies: dict[str, Strategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: Strategy) -> None:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy already registered: {strategy.id}")
        self._strategies[strategy.id] = strategy

    def unregister(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.pop(strategy_id, None)

    def get(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    @property
    def ids(self) -> list[str]:
        return list(self._strategies)

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies
