"""
Contrarian Strategy - fade extreme sentiment.

When everyone is fearful, buy UP; when everyone is greedy, buy DOWN.
Markets priced near 50% get a small bonus since they have the most room to move.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from strategy_arena.strategy_base import MarketSnapshot, Strategy, StrategySignal


@dataclass
class ContrarianConfig:
    extreme_fear: float = 20.0   # Fear & Greed index below this -> buy
    extreme_greed: float = 80.0  # Above this -> sell
    whale_extreme: float = 0.8   # Fade whale consensus beyond this
    base_score: float = 0.6
    price_bonus: float = 0.1     # Max bonus at a 50% price
    min_score: float = 0.1

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ContrarianConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class ContrarianStrategy(Strategy):
    id = "contrarian"
    description = "Fade extreme fear/greed and extreme whale consensus"

    def __init__(self, config: Optional[dict] = None):
        super().__init__(config)
        self.contrarian_config = ContrarianConfig.from_dict(self.config)

    async def analyze(self, market: MarketSnapshot, signals: dict) -> StrategySignal:
        cfg = self.contrarian_config
        fear_greed = float((signals.get("sentiment") or {}).get("fear_greed", 50))
        whale_score = float((signals.get("whale") or {}).get("score", 0.0))

        base = 0.0
        reason = "Neutral sentiment"
        if fear_greed < cfg.extreme_fear:
            base = cfg.base_score
            reason = f"Extreme fear ({fear_greed:.0f}) - contrarian BUY"
        elif fear_greed > cfg.extreme_greed:
            base = -cfg.base_score
            reason = f"Extreme greed ({fear_greed:.0f}) - contrarian SELL"
        elif abs(whale_score) > cfg.whale_extreme:
            base = -whale_score * 0.5
            reason = f"Fading whale consensus ({whale_score * 100:.0f}%)"

        bonus = (1 - abs(market.up_price - 0.5) * 2) * cfg.price_bonus
        # Bonus pushes away from zero, never flips the direction
        score = base + bonus if base >= 0 else base - bonus

        return StrategySignal.from_score(
            score,
            0.7 if abs(base) > 0.3 else 0.4,
            reason=f"{reason} [{market.up_price * 100:.0f}% price]",
            threshold=cfg.min_score,
        )
