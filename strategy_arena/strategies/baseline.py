"""
Baseline Strategy - weighted consensus of every external signal.

The reference incumbent: whale consensus, momentum, technicals and
sentiment blended into one score.
"""

from dataclasses import dataclass, asdict, field
from typing import Optional

from strategy_arena.strategy_base import MarketSnapshot, Strategy, StrategySignal
from strategy_arena.trade_ledger import Action


@dataclass
class BaselineConfig:
    """
    Baseline Strategy Configuration.

    Entry Signal:
        score = sum(weight * signal.score), confidence likewise
        IF confidence >= min_confidence AND |score| > min_edge
        THEN buy UP (score > 0) or DOWN (score < 0)
    """
    weights: dict = field(default_factory=lambda: {
        "whale": 0.50,
        "momentum": 0.20,
        "technicals": 0.15,
        "sentiment": 0.15,
    })
    min_edge: float = 0.08
    min_confidence: float = 0.6

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BaselineConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class BaselineStrategy(Strategy):
    id = "baseline"
    description = "Whale consensus + momentum + technicals + sentiment"

    def __init__(self, config: Optional[dict] = None):
        super().__init__(config)
        self.baseline_config = BaselineConfig.from_dict(self.config)

    async def analyze(self, market: MarketSnapshot, signals: dict) -> StrategySignal:
        score = 0.0
        confidence = 0.0
        for name, weight in self.baseline_config.weights.items():
            component = signals.get(name) or {}
            score += float(component.get("score", 0.0)) * weight
            confidence += float(component.get("confidence", 0.0)) * weight

        if confidence < self.baseline_config.min_confidence:
            return StrategySignal(Action.HOLD, score, confidence, "Low confidence")

        signal = StrategySignal.from_score(score, confidence, threshold=self.baseline_config.min_edge)
        if signal.action is Action.BUY_UP:
            signal.reason = f"Score {score * 100:.1f}% bullish"
        elif signal.action is Action.BUY_DOWN:
            signal.reason = f"Score {-score * 100:.1f}% bearish"
        else:
            signal.reason = "No clear edge"
        return signal
