"""
Trade Ledger - append-only record of every real and paper trade.

The ledger is the system of record for strategy performance:
- Trades are appended when a strategy acts and closed exactly once,
  either on market resolution or by the take-profit sweep
- Performance windows and mark-to-market estimates are derived on demand
- The whole log is persisted as one JSON snapshot after each mutation
"""

import logging
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Optional

from strategy_arena.state_store import StateStore

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class Action(Enum):
    """What a strategy wants to do on a binary market"""
    BUY_UP = "BUY_UP"
    BUY_DOWN = "BUY_DOWN"
    HOLD = "HOLD"

    @property
    def side(self) -> str:
        """Outcome token bought: "up" or "down" """
        if self is Action.BUY_UP:
            return "up"
        if self is Action.BUY_DOWN:
            return "down"
        raise ValueError("HOLD has no side")


class TradeStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


class CloseReason(Enum):
    RESOLUTION = "resolution"
    TAKE_PROFIT = "take_profit"


@dataclass
class MarketPrices:
    """Current UP/DOWN token prices for one market"""
    up: float
    down: float

    def price_for(self, action: Action) -> float:
        return self.up if action is Action.BUY_UP else self.down

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MarketPrices":
        up = float(data["up"])
        down = float(data["down"]) if data.get("down") is not None else 1.0 - up
        return cls(up=up, down=down)


def normalize_strategy_id(strategy_id: str) -> str:
    """
    Canonical strategy key.

    Variant groups log under a prefixed id ("creative:contrarian"); both
    spellings must aggregate as the same strategy.
    """
    return strategy_id.split(":")[-1].strip()


def check_trade_fields(strategy: str, action: Action, entry_price: float, size: float):
    """Raise ValueError unless the fields describe a recordable trade."""
    if not normalize_strategy_id(strategy):
        raise ValueError(f"strategy id {strategy!r} is empty once normalized")
    if action is Action.HOLD:
        raise ValueError("Cannot log a HOLD as a trade")
    if not 0 < entry_price < 1:
        raise ValueError(f"entry_price must be in (0, 1), got {entry_price}")
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")


# ============================================================================
# TRADE RECORD
# ============================================================================

@dataclass
class Trade:
    """One strategy's position attempt on a market."""
    # Identity
    id: str
    timestamp: float                # Unix seconds at decision time
    strategy: str                   # Strategy id as logged (may be prefixed)
    is_real: bool                   # Executed on the exchange vs simulated

    # Trade details
    market: str
    action: Action
    entry_price: float              # 0-1 probability-as-price
    size: float                     # USD committed
    score: float = 0.0
    confidence: float = 0.0
    reason: str = ""

    # Lifecycle
    status: TradeStatus = TradeStatus.OPEN
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    close_reason: Optional[CloseReason] = None
    outcome: Optional[str] = None   # "UP" or "DOWN" on resolution
    closed_at: Optional[float] = None
    order_id: Optional[str] = None

    @property
    def strategy_key(self) -> str:
        return normalize_strategy_id(self.strategy)

    @property
    def is_open(self) -> bool:
        return self.status is TradeStatus.OPEN

    @property
    def shares(self) -> float:
        return self.size / self.entry_price

    def to_dict(self) -> dict:
        d = asdict(self)
        d["action"] = self.action.value
        d["status"] = self.status.value
        d["close_reason"] = self.close_reason.value if self.close_reason else None
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Trade":
        close_reason = data.get("close_reason")
        trade = cls(
            id=str(data["id"]),
            timestamp=float(data["timestamp"]),
            strategy=data["strategy"],
            is_real=bool(data.get("is_real", False)),
            market=data["market"],
            action=Action(data["action"]),
            entry_price=float(data["entry_price"]),
            size=float(data["size"]),
            score=float(data.get("score") or 0.0),
            confidence=float(data.get("confidence") or 0.0),
            reason=data.get("reason") or "",
            status=TradeStatus(data.get("status", "open")),
            exit_price=data.get("exit_price"),
            pnl=data.get("pnl"),
            close_reason=CloseReason(close_reason) if close_reason else None,
            outcome=data.get("outcome"),
            closed_at=data.get("closed_at"),
            order_id=data.get("order_id"),
        )
        check_trade_fields(trade.strategy, trade.action, trade.entry_price, trade.size)
        return trade


@dataclass
class PerformanceWindow:
    """Per-strategy performance over a trailing window (derived, never stored)."""
    trade_count: int = 0
    wins: int = 0
    closed_pnl: float = 0.0
    open_pnl: float = 0.0

    @property
    def total_pnl(self) -> float:
        return self.closed_pnl + self.open_pnl

    @property
    def pnl(self) -> float:
        return self.total_pnl

    def to_dict(self) -> dict:
        return {
            "trades": self.trade_count,
            "wins": self.wins,
            "closed_pnl": round(self.closed_pnl, 2),
            "open_pnl": round(self.open_pnl, 2),
            "pnl": round(self.total_pnl, 2),
        }


# ============================================================================
# TRADE LEDGER
# ============================================================================

class TradeLedger:
    """
    JSON-snapshot trade ledger.

    Features:
    - Append-only trade log, trades are never deleted
    - Binary settlement and take-profit closing
    - Sliding-window and mark-to-market performance
    - Lifetime per-strategy stats updated as trades close
    """

    def __init__(self, store: StateStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock
        self.trades: list[Trade] = []
        self.performance: dict[str, dict] = {}
        self._load()
        logger.info(f"TradeLedger initialized: {store.path} ({len(self.trades)} trades)")

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def _load(self):
        """Load the trade log. Missing or malformed state means an empty ledger."""
        data = self.store.load()
        if data is None:
            return

        if not isinstance(data, dict):
            logger.error(f"Ignoring malformed ledger snapshot in {self.store.path}")
            return

        for raw in data.get("trades") or []:
            try:
                self.trades.append(Trade.from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed trade record {raw!r}: {e}")

        performance = data.get("performance")
        if isinstance(performance, dict):
            self.performance = {
                name: stats for name, stats in performance.items() if isinstance(stats, dict)
            }

    def save(self):
        self.store.save({
            "trades": [t.to_dict() for t in self.trades],
            "performance": self.performance,
        })

    # -------------------------------------------------------------------------
    # WRITE OPERATIONS
    # -------------------------------------------------------------------------

    def log_trade(
        self,
        strategy: str,
        market: str,
        action: Action,
        entry_price: float,
        size: float,
        is_real: bool = False,
        score: float = 0.0,
        confidence: float = 0.0,
        reason: str = "",
        order_id: Optional[str] = None,
    ) -> Trade:
        """
        Append a new open trade.

        Economic checks belong to the risk gate; only the record invariants
        are enforced here.
        """
        check_trade_fields(strategy, action, entry_price, size)

        now = self.clock()
        trade = Trade(
            id=f"{int(now * 1000)}-{len(self.trades) + 1:06d}",
            timestamp=now,
            strategy=strategy,
            is_real=is_real,
            market=market,
            action=action,
            entry_price=entry_price,
            size=size,
            score=score,
            confidence=confidence,
            reason=reason,
            order_id=order_id,
        )
        self.trades.append(trade)
        self.save()

        logger.info(
            f"{'REAL' if is_real else 'PAPER'} trade logged: {trade.id} | {strategy} | "
            f"{action.value} @ {entry_price * 100:.1f}% | ${size:.2f} | {market}"
        )
        return trade

    def close_market(self, market: str, outcome: str) -> list[Trade]:
        """
        Settle every open trade on a resolved market.

        Args:
            market: Market identifier
            outcome: "UP" or "DOWN"

        Returns:
            The trades closed by this call
        """
        outcome = outcome.upper()
        if outcome not in ("UP", "DOWN"):
            raise ValueError(f"outcome must be UP or DOWN, got {outcome}")

        closed = []
        for trade in self.get_open_trades(market=market):
            is_win = trade.action.side == outcome.lower()
            self._close(trade, 1.0 if is_win else 0.0, CloseReason.RESOLUTION)
            trade.outcome = outcome
            closed.append(trade)

            logger.info(
                f"{trade.strategy}: {'WIN' if is_win else 'LOSS'} on {market} | "
                f"entry {trade.entry_price * 100:.1f}% | P&L: ${trade.pnl:+.2f}"
            )

        logger.info(f"Closed {len(closed)} trades for {market} (outcome {outcome})")
        if closed:
            self.save()
        return closed

    def sweep_take_profits(
        self,
        market_prices: dict[str, MarketPrices],
        threshold_pct: float,
    ) -> list[Trade]:
        """
        Close open trades whose price moved in their favor by more than threshold_pct.

        The move is relative to entry: (current - entry) / entry.
        """
        closed = []
        for trade in self.get_open_trades():
            prices = market_prices.get(trade.market)
            if prices is None:
                continue

            current = prices.price_for(trade.action)
            move = (current - trade.entry_price) / trade.entry_price
            if move > threshold_pct:
                self._close(trade, current, CloseReason.TAKE_PROFIT)
                closed.append(trade)
                logger.info(
                    f"TAKE PROFIT: {trade.strategy} {trade.action.value} on {trade.market} | "
                    f"{trade.entry_price * 100:.1f}% -> {current * 100:.1f}% (+{move * 100:.1f}%) | "
                    f"P&L: ${trade.pnl:+.2f}"
                )

        if closed:
            self.save()
        return closed

    def _close(self, trade: Trade, exit_price: float, reason: CloseReason):
        if not trade.is_open:
            raise ValueError(f"Trade {trade.id} is already closed")

        trade.status = TradeStatus.CLOSED
        trade.exit_price = exit_price
        trade.pnl = trade.shares * exit_price - trade.size
        trade.close_reason = reason
        trade.closed_at = self.clock()

        stats = self.performance.setdefault(trade.strategy_key, {"trades": 0, "wins": 0, "pnl": 0.0})
        stats["trades"] += 1
        if trade.pnl > 0:
            stats["wins"] += 1
        stats["pnl"] += trade.pnl

    # -------------------------------------------------------------------------
    # READ OPERATIONS
    # -------------------------------------------------------------------------

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        for trade in self.trades:
            if trade.id == trade_id:
                return trade
        return None

    def get_trades(
        self,
        strategy: Optional[str] = None,
        market: Optional[str] = None,
        status: Optional[TradeStatus] = None,
        since: Optional[float] = None,
    ) -> list[Trade]:
        """Query trades in creation order. `strategy` matches on the normalized key."""
        key = normalize_strategy_id(strategy) if strategy else None
        return [
            t for t in self.trades
            if (key is None or t.strategy_key == key)
            and (market is None or t.market == market)
            and (status is None or t.status is status)
            and (since is None or t.timestamp >= since)
        ]

    def get_open_trades(self, market: Optional[str] = None) -> list[Trade]:
        return self.get_trades(market=market, status=TradeStatus.OPEN)

    def last_trade_time(self, strategy: str) -> Optional[float]:
        """Timestamp of the strategy's most recent trade, open or closed"""
        trades = self.get_trades(strategy=strategy)
        if not trades:
            return None
        return max(t.timestamp for t in trades)

    def has_open_position(self, strategy: str, market: str, action: Action) -> bool:
        key = normalize_strategy_id(strategy)
        return any(
            t.strategy_key == key and t.action is action
            for t in self.get_open_trades(market=market)
        )

    def market_exposure(self, market: str) -> float:
        """Capital committed to open trades on a market"""
        return sum(t.size for t in self.get_open_trades(market=market))

    def exposure_by_market(self) -> dict[str, dict]:
        exposures: dict[str, dict] = {}
        for trade in self.get_open_trades():
            entry = exposures.setdefault(trade.market, {"total": 0.0, "trades": 0})
            entry["total"] += trade.size
            entry["trades"] += 1
        return exposures

    def open_market_value(self, current_prices: Optional[dict[str, MarketPrices]] = None) -> float:
        """Mark-to-market value of every open position"""
        current_prices = current_prices or {}
        return sum(
            t.size + self.mark_to_market_pnl(t, current_prices.get(t.market))
            for t in self.get_open_trades()
        )

    # -------------------------------------------------------------------------
    # ANALYTICS
    # -------------------------------------------------------------------------

    def mark_to_market_pnl(self, trade: Trade, prices: Optional[MarketPrices]) -> float:
        """
        Unrealized P&L of an open trade at current prices.

        Closed trades return their recorded P&L; prices are ignored.
        An open trade without prices is valued at entry (zero).
        """
        if not trade.is_open:
            return trade.pnl or 0.0
        if prices is None:
            return 0.0

        current_value = trade.shares * prices.price_for(trade.action)
        return current_value - trade.size

    def performance_window(
        self,
        duration_hours: float,
        current_prices: Optional[dict[str, MarketPrices]] = None,
    ) -> dict[str, PerformanceWindow]:
        """
        Per-strategy performance for trades opened in the last duration_hours.

        Args:
            duration_hours: Trailing window length
            current_prices: Market -> prices, used to mark open trades

        Returns:
            Normalized strategy key -> PerformanceWindow
        """
        cutoff = self.clock() - duration_hours * 3600
        current_prices = current_prices or {}
        windows: dict[str, PerformanceWindow] = {}

        for trade in self.trades:
            if trade.timestamp < cutoff:
                continue

            window = windows.setdefault(trade.strategy_key, PerformanceWindow())
            window.trade_count += 1

            if trade.is_open:
                window.open_pnl += self.mark_to_market_pnl(trade, current_prices.get(trade.market))
            else:
                pnl = trade.pnl or 0.0
                window.closed_pnl += pnl
                if pnl > 0:
                    window.wins += 1

        return windows

    def performance_summary(self) -> list[dict]:
        """Lifetime per-strategy results, best first"""
        rows = []
        for name, stats in self.performance.items():
            trades = stats.get("trades", 0)
            if trades == 0:
                continue
            rows.append({
                "strategy": name,
                "trades": trades,
                "wins": stats.get("wins", 0),
                "win_rate": stats.get("wins", 0) / trades,
                "pnl": round(stats.get("pnl", 0.0), 2),
            })
        return sorted(rows, key=lambda r: r["pnl"], reverse=True)
