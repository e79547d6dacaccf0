"""
Momentum Strategy - pure price action across timeframes.

Ignores fundamentals and follows the trend, weighting recent moves most.
"""

from dataclasses import dataclass, asdict, field
from typing import Optional

from strategy_arena.strategy_base import MarketSnapshot, Strategy, StrategySignal


@dataclass
class MomentumConfig:
    """
    Momentum Strategy Configuration.

    Entry Signal:
        score = clamp(scale * sum(weight * pct_change), -1, 1)
        IF |score| > min_score THEN follow the trend
    """
    timeframe_weights: dict = field(default_factory=lambda: {
        "m5": 0.4,
        "m15": 0.3,
        "m60": 0.2,
        "m240": 0.1,
    })
    scale: float = 50.0
    min_score: float = 0.1
    strong_score: float = 0.3  # Above this, confidence is raised

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MomentumConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class MomentumStrategy(Strategy):
    id = "momentum"
    description = "Follow multi-timeframe price momentum"

    def __init__(self, config: Optional[dict] = None):
        super().__init__(config)
        self.momentum_config = MomentumConfig.from_dict(self.config)

    async def analyze(self, market: MarketSnapshot, signals: dict) -> StrategySignal:
        cfg = self.momentum_config
        momentum = signals.get("momentum") or {}

        raw = sum(float(momentum.get(tf) or 0.0) * w for tf, w in cfg.timeframe_weights.items())
        score = max(-1.0, min(1.0, raw * cfg.scale))
        confidence = 0.75 if abs(score) > cfg.strong_score else 0.5

        return StrategySignal.from_score(
            score,
            confidence,
            reason=f"Pure momentum: 5m={momentum.get('m5')}, 15m={momentum.get('m15')}",
            threshold=cfg.min_score,
        )
