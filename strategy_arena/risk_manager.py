"""
Risk Manager - pre-trade gate applied to every strategy signal.

Rules, checked in order (first failure wins):
1. MAX_EXPOSURE - no more than 20% of the portfolio committed to one market
2. COOLDOWN     - minimum time between two trades of the same strategy
3. NO_STACKING  - no duplicate open position on the same market/direction
4. Sizing       - confidence-scaled percentage of the portfolio, clamped,
                  then shrunk to fit whatever exposure headroom remains
"""

import logging
import math
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Optional

from strategy_arena.config import RiskConfig
from strategy_arena.trade_ledger import Action, MarketPrices, TradeLedger

logger = logging.getLogger(__name__)


class RiskRule(Enum):
    MAX_EXPOSURE = "MAX_EXPOSURE"
    COOLDOWN = "COOLDOWN"
    NO_STACKING = "NO_STACKING"


@dataclass
class RiskDecision:
    """Outcome of a risk check. Rejections are values, not exceptions."""
    valid: bool
    size: float = 0.0
    rule: Optional[RiskRule] = None
    reason: str = ""
    adjusted: bool = False
    remaining_sec: Optional[float] = None  # Set on COOLDOWN rejections

    @classmethod
    def reject(cls, rule: RiskRule, reason: str, remaining_sec: Optional[float] = None) -> "RiskDecision":
        return cls(valid=False, rule=rule, reason=reason, remaining_sec=remaining_sec)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["rule"] = self.rule.value if self.rule else None
        return d


class RiskGate:
    """Validates proposed trades against the ledger's open positions."""

    def __init__(
        self,
        ledger: TradeLedger,
        config: Optional[RiskConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.config = config or RiskConfig()
        self.clock = clock

    def estimate_portfolio_value(
        self,
        base_balance: float,
        current_prices: Optional[dict[str, MarketPrices]] = None,
    ) -> float:
        """Paper estimate: base balance plus open positions marked at current prices"""
        return base_balance + self.ledger.open_market_value(current_prices)

    def position_size(self, portfolio_value: float, confidence: float) -> float:
        """Confidence scales between 50% and 100% of the base size."""
        size = portfolio_value * self.config.position_size_pct
        size *= 0.5 + 0.5 * confidence
        size = max(self.config.min_trade_size, size)
        size = min(self.config.max_trade_size, size)
        return round(size, 2)

    def validate(
        self,
        strategy_id: str,
        market: str,
        action: Action,
        confidence: float,
        portfolio_value: float,
    ) -> RiskDecision:
        """
        Check a proposed trade against every risk rule.

        Args:
            strategy_id: Strategy proposing the trade (prefix allowed)
            market: Market identifier
            action: BUY_UP or BUY_DOWN
            confidence: Strategy confidence, 0-1
            portfolio_value: Current portfolio value in USD

        Returns:
            RiskDecision with the approved size, or the rule that rejected it
        """
        cap = self.config.max_exposure_per_market

        # 1. Market exposure
        if portfolio_value <= 0:
            return RiskDecision.reject(
                RiskRule.MAX_EXPOSURE,
                f"Portfolio value must be positive (got ${portfolio_value:.2f})",
            )

        exposure = self.ledger.market_exposure(market)
        exposure_pct = exposure / portfolio_value
        if exposure_pct >= cap:
            return RiskDecision.reject(
                RiskRule.MAX_EXPOSURE,
                f"Market exposure limit ({exposure_pct * 100:.1f}% >= {cap * 100:g}%)",
            )

        # 2. Cooldown
        last_trade = self.ledger.last_trade_time(strategy_id)
        if last_trade is not None:
            cooldown_sec = self.config.cooldown_minutes * 60
            elapsed = self.clock() - last_trade
            if elapsed < cooldown_sec:
                remaining = cooldown_sec - elapsed
                return RiskDecision.reject(
                    RiskRule.COOLDOWN,
                    f"Cooldown active ({math.ceil(remaining / 60)}min remaining)",
                    remaining_sec=remaining,
                )

        # 3. No stacking
        if self.config.no_stacking and self.ledger.has_open_position(strategy_id, market, action):
            return RiskDecision.reject(
                RiskRule.NO_STACKING,
                f"Position already open on {market[:20]}.../{action.value}",
            )

        # 4. Sizing
        size = self.position_size(portfolio_value, confidence)
        new_exposure_pct = (exposure + size) / portfolio_value
        if new_exposure_pct > cap:
            max_allowed = cap * portfolio_value - exposure
            if max_allowed < self.config.min_trade_size:
                return RiskDecision.reject(
                    RiskRule.MAX_EXPOSURE,
                    f"Would exceed market exposure limit ({new_exposure_pct * 100:.1f}% > {cap * 100:g}%)",
                )
            # Floor to cents so rounding never pushes past the cap
            return RiskDecision(valid=True, size=math.floor(max_allowed * 100) / 100, adjusted=True,
                                reason="Size reduced to stay within exposure limit")

        return RiskDecision(valid=True, size=size)

    def log_skip(self, strategy_id: str, decision: RiskDecision):
        logger.info(f"RISK: [{strategy_id}] {decision.reason}")

    def get_status(self, portfolio_value: float) -> dict:
        """Portfolio, open trade count and per-market exposure"""
        exposures = self.ledger.exposure_by_market()
        return {
            "portfolio": round(portfolio_value, 2),
            "open_trades": len(self.ledger.get_open_trades()),
            "market_exposures": {
                market: {
                    "total": round(e["total"], 2),
                    "trades": e["trades"],
                    "pct": round(e["total"] / portfolio_value, 4) if portfolio_value > 0 else None,
                }
                for market, e in exposures.items()
            },
            "risk_config": self.config.to_dict(),
        }
