"""
Ensemble Allocator - splits capital across strategies by risk-adjusted performance.

Instead of a single champion, every eligible strategy trades with a weight
proportional to its Sharpe-like ratio, bounded to [min_alloc, max_alloc].
"""

import logging
import math
import statistics
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from strategy_arena.config import AllocatorConfig
from strategy_arena.state_store import StateStore
from strategy_arena.trade_ledger import TradeLedger, normalize_strategy_id

logger = logging.getLogger(__name__)

MODES = ("champion", "ensemble")


@dataclass
class StrategyStats:
    """Closed-trade statistics for one strategy over the lookback window."""
    trades: int = 0
    closed_trades: int = 0
    wins: int = 0
    total_pnl: float = 0.0
    pnls: list = field(default_factory=list)

    @property
    def win_rate(self) -> float:
        return self.wins / self.closed_trades if self.closed_trades else 0.0

    @property
    def avg_pnl(self) -> float:
        return self.total_pnl / self.closed_trades if self.closed_trades else 0.0

    @property
    def sharpe(self) -> float:
        """Mean over population std dev of closed P&Ls; 0 when undefined"""
        if len(self.pnls) < 2:
            return 0.0
        std_dev = statistics.pstdev(self.pnls)
        if std_dev == 0:
            return 0.0
        return statistics.fmean(self.pnls) / std_dev

    def to_dict(self) -> dict:
        return {
            "trades": self.trades,
            "closed_trades": self.closed_trades,
            "wins": self.wins,
            "total_pnl": round(self.total_pnl, 2),
            "win_rate": round(self.win_rate, 4),
            "avg_pnl": round(self.avg_pnl, 2),
            "sharpe": round(self.sharpe, 4),
        }


@dataclass
class AllocationDecision:
    can_trade: bool
    size: float
    weight: float

    def to_dict(self) -> dict:
        return {"can_trade": self.can_trade, "size": self.size, "weight": self.weight}


@dataclass
class AllocationState:
    """Persisted allocator snapshot"""
    mode: str = "ensemble"
    allocations: dict = field(default_factory=dict)
    last_update: float = 0.0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "allocations": dict(self.allocations),
            "last_update": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: dict, default_mode: str = "ensemble") -> "AllocationState":
        mode = data.get("mode", default_mode)
        allocations = data.get("allocations") or {}
        return cls(
            mode=mode if mode in MODES else default_mode,
            allocations={str(k): float(v) for k, v in allocations.items()},
            last_update=float(data.get("last_update") or 0.0),
        )


# ============================================================================
# WEIGHT BOUNDS
# ============================================================================

def rebalance(weights: dict[str, float], min_alloc: float, max_alloc: float) -> dict[str, float]:
    """
    Bound every nonzero weight to [min_alloc, max_alloc] while keeping the sum at 1.

    Clamping one weight changes the normalization base of the others, so the
    result is the fixed point w_i = clip(c * w_i, min_alloc, max_alloc) with
    sum(w) == 1. The total is piecewise linear and nondecreasing in c, so c is
    found exactly between the two breakpoints that bracket 1.

    Zero weights stay zero. If the bounds cannot be met at all (too few
    strategies for the cap, or too many for the floor) the nonzero weights
    are split equally.
    """
    if min_alloc > max_alloc:
        raise ValueError(f"min_alloc {min_alloc} exceeds max_alloc {max_alloc}")

    result = {name: 0.0 for name in weights}
    active = {name: w for name, w in weights.items() if w > 0}
    if not active:
        return result

    n = len(active)
    if n * max_alloc < 1 or n * min_alloc > 1:
        logger.warning(
            f"Allocation bounds [{min_alloc}, {max_alloc}] infeasible for {n} strategies, "
            f"using equal weights"
        )
        for name in active:
            result[name] = 1.0 / n
        return result

    def clip(c: float, raw: float) -> float:
        return min(max(c * raw, min_alloc), max_alloc)

    def total(c: float) -> float:
        return sum(clip(c, raw) for raw in active.values())

    breakpoints = sorted({min_alloc / raw for raw in active.values()} | {max_alloc / raw for raw in active.values()})
    lo = 0.0
    hi = breakpoints[-1]
    for bp in breakpoints:
        if total(bp) >= 1:
            hi = bp
            break
        lo = bp

    t_lo, t_hi = total(lo), total(hi)
    scale = hi if math.isclose(t_hi, t_lo) else lo + (1 - t_lo) * (hi - lo) / (t_hi - t_lo)

    for name, raw in active.items():
        result[name] = clip(scale, raw)
    return result


# ============================================================================
# ALLOCATOR
# ============================================================================

class EnsembleAllocator:
    """
    Computes per-strategy capital weights from the trade ledger.

    Weights are recomputed from ledger statistics on every refresh; only the
    mode flag carries meaning across restarts.
    """

    def __init__(
        self,
        ledger: TradeLedger,
        store: StateStore,
        config: Optional[AllocatorConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.store = store
        self.config = config or AllocatorConfig()
        self.clock = clock
        self.state = self._load_state()

    def _load_state(self) -> AllocationState:
        default_mode = self.config.mode if self.config.mode in MODES else "ensemble"
        data = self.store.load()
        if isinstance(data, dict):
            try:
                return AllocationState.from_dict(data, default_mode=default_mode)
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Ignoring malformed allocation state: {e}")
        return AllocationState(mode=default_mode, last_update=self.clock())

    def save_state(self):
        self.store.save(self.state.to_dict())

    @property
    def mode(self) -> str:
        return self.state.mode

    def set_mode(self, mode: str) -> bool:
        """Switch between "champion" and "ensemble". Returns True if changed."""
        mode = mode.lower().strip()
        if mode not in MODES:
            raise ValueError(f"Unknown allocation mode: {mode}")
        if mode == self.state.mode:
            return False

        logger.info(f"Allocation mode changed: {self.state.mode} -> {mode}")
        self.state.mode = mode
        self.state.last_update = self.clock()
        self.save_state()
        return True

    # -------------------------------------------------------------------------
    # STATISTICS
    # -------------------------------------------------------------------------

    def strategy_stats(self, lookback_hours: Optional[float] = None) -> dict[str, StrategyStats]:
        """Per normalized strategy stats for trades opened within the lookback"""
        lookback_hours = self.config.lookback_hours if lookback_hours is None else lookback_hours
        cutoff = self.clock() - lookback_hours * 3600
        stats: dict[str, StrategyStats] = {}

        for trade in self.ledger.get_trades(since=cutoff):
            s = stats.setdefault(trade.strategy_key, StrategyStats())
            s.trades += 1
            if not trade.is_open and trade.pnl is not None:
                s.closed_trades += 1
                s.total_pnl += trade.pnl
                s.pnls.append(trade.pnl)
                if trade.pnl > 0:
                    s.wins += 1

        return stats

    def is_eligible(self, name: str, s: StrategyStats) -> bool:
        if name in {normalize_strategy_id(d) for d in self.config.disabled_strategies}:
            return False
        return (
            s.closed_trades >= self.config.min_trades
            and s.win_rate >= self.config.min_win_rate
            and s.total_pnl >= self.config.min_pnl_floor
        )

    def compute_weights(self, lookback_hours: Optional[float] = None) -> dict[str, float]:
        """
        Bounded weights for every eligible strategy, summing to 1.

        Falls back to the designated strategy at 1.0 rather than
        zero-allocating the whole system.
        """
        fallback = {normalize_strategy_id(self.config.fallback_strategy): 1.0}
        stats = self.strategy_stats(lookback_hours)

        raw = {}
        for name, s in stats.items():
            if not self.is_eligible(name, s):
                continue
            # Sharpe if positive, else a small participation credit for profitable strategies
            raw[name] = s.sharpe if s.sharpe > 0 else (0.1 if s.total_pnl > 0 else 0.0)

        total = sum(raw.values())
        if total <= 0:
            logger.info(f"No eligible strategies with positive weight, falling back to {fallback}")
            return fallback

        normalized = {name: w / total for name, w in raw.items()}
        return rebalance(normalized, self.config.min_alloc, self.config.max_alloc)

    def refresh(self) -> dict[str, float]:
        """Recompute weights into the allocation state and persist it"""
        self.state.allocations = self.compute_weights()
        self.state.last_update = self.clock()
        self.save_state()

        summary = ", ".join(f"{k}={v:.0%}" for k, v in sorted(self.state.allocations.items(), key=lambda kv: -kv[1]))
        logger.info(f"Allocations refreshed ({self.state.mode}): {summary}")
        return self.state.allocations

    def get_allocation(
        self,
        strategy: str,
        base_size: float,
        weights: Optional[dict[str, float]] = None,
    ) -> AllocationDecision:
        """
        Size a strategy's trade by its ensemble weight.

        Args:
            strategy: Strategy id (prefix allowed)
            base_size: Size approved by the risk gate
            weights: Weights to use; defaults to the last refresh, or a fresh computation
        """
        if weights is None:
            weights = self.state.allocations or self.compute_weights()
        weight = weights.get(normalize_strategy_id(strategy), 0.0)
        return AllocationDecision(can_trade=weight > 0, size=base_size * weight, weight=weight)

    def get_status(self) -> dict:
        stats = self.strategy_stats()
        return {
            "mode": self.state.mode,
            "allocations": self.state.allocations,
            "last_update": self.state.last_update,
            "stats": {name: s.to_dict() for name, s in stats.items()},
        }
