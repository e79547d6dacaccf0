"""
Strategy Arena - champion/challenger competition between strategies.

One cycle:
1. Fetch prices for every active market and sweep take-profits
2. Route each strategy to a market and evaluate all strategies concurrently
3. Pass every non-HOLD signal through the risk gate, size it by ensemble
   weight or incumbency, execute real orders where allowed, record the trade
4. Compare trailing P&L and promote a challenger after consecutive wins

The champion (or ensemble-weighted strategies) trade real capital in LIVE
mode; everything else is recorded as a paper trade.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from strategy_arena.allocator import EnsembleAllocator
from strategy_arena.config import ArenaConfig
from strategy_arena.executor import ExecutionClient
from strategy_arena.markets import Market, MarketRegistry, route_strategy
from strategy_arena.mode_controller import ExecutionMode, ModeController
from strategy_arena.price_feed import PriceSource
from strategy_arena.risk_manager import RiskGate
from strategy_arena.state_store import StateStore
from strategy_arena.strategy_base import (
    EvalError,
    EvalResult,
    MarketSnapshot,
    Strategy,
    StrategyRegistry,
    StrategySignal,
)
from strategy_arena.trade_ledger import (
    Action,
    MarketPrices,
    Trade,
    TradeLedger,
    normalize_strategy_id,
)

logger = logging.getLogger(__name__)


# ============================================================================
# STATE
# ============================================================================

@dataclass
class PromotionEvent:
    timestamp: float
    old_champion: str
    new_champion: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "old_champion": self.old_champion,
            "new_champion": self.new_champion,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PromotionEvent":
        return cls(
            timestamp=float(data["timestamp"]),
            old_champion=data["old_champion"],
            new_champion=data["new_champion"],
            reason=data.get("reason", ""),
        )


@dataclass
class ArenaState:
    """Persisted competition state. At most one challenger has a nonzero counter."""
    champion: str
    challenger_wins: dict = field(default_factory=dict)
    promotion_history: list = field(default_factory=list)
    last_update: float = 0.0

    def to_dict(self) -> dict:
        return {
            "champion": self.champion,
            "challenger_wins": dict(self.challenger_wins),
            "promotion_history": [p.to_dict() for p in self.promotion_history],
            "last_update": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: dict, default_champion: str) -> "ArenaState":
        return cls(
            champion=data.get("champion") or default_champion,
            challenger_wins={str(k): int(v) for k, v in (data.get("challenger_wins") or {}).items()},
            promotion_history=[PromotionEvent.from_dict(p) for p in data.get("promotion_history") or []],
            last_update=float(data.get("last_update") or 0.0),
        )


# ============================================================================
# CYCLE REPORTING
# ============================================================================

@dataclass
class StrategyOutcome:
    """What happened to one strategy's signal this cycle."""
    strategy: str
    market: Optional[str]
    action: str
    status: str                     # hold | error | skipped | rejected | failed | paper | real
    size: float = 0.0
    weight: Optional[float] = None
    rule: Optional[str] = None      # Risk rule on rejection
    reason: str = ""
    trade_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "market": self.market,
            "action": self.action,
            "status": self.status,
            "size": self.size,
            "weight": self.weight,
            "rule": self.rule,
            "reason": self.reason,
            "trade_id": self.trade_id,
        }


@dataclass
class CycleReport:
    started_at: float
    skipped: bool = False
    skip_reason: str = ""
    champion: Optional[str] = None
    portfolio_value: Optional[float] = None
    outcomes: list = field(default_factory=list)
    take_profits: list = field(default_factory=list)  # Trade ids closed by the sweep
    allocations: dict = field(default_factory=dict)
    promotion: Optional[PromotionEvent] = None

    @property
    def trades_logged(self) -> int:
        return sum(1 for o in self.outcomes if o.trade_id)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "champion": self.champion,
            "portfolio_value": self.portfolio_value,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "take_profits": self.take_profits,
            "allocations": self.allocations,
            "promotion": self.promotion.to_dict() if self.promotion else None,
            "trades_logged": self.trades_logged,
        }


# ============================================================================
# ARENA
# ============================================================================

class StrategyArena:
    """
    Drives evaluation cycles and owns the champion/challenger state.

    All collaborators are injected; the arena itself only orchestrates.
    """

    def __init__(
        self,
        ledger: TradeLedger,
        risk_gate: RiskGate,
        allocator: EnsembleAllocator,
        strategies: StrategyRegistry,
        markets: MarketRegistry,
        price_source: PriceSource,
        state_store: StateStore,
        mode_controller: Optional[ModeController] = None,
        execution_client: Optional[ExecutionClient] = None,
        config: Optional[ArenaConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.risk_gate = risk_gate
        self.allocator = allocator
        self.strategies = strategies
        self.markets = markets
        self.price_source = price_source
        self.state_store = state_store
        self.mode_controller = mode_controller or ModeController(ExecutionMode.PAPER)
        self.execution_client = execution_client
        self.config = config or ArenaConfig()
        self.clock = clock

        self.state = self._load_state()
        self.last_prices: dict[str, MarketPrices] = {}
        self.last_report: Optional[CycleReport] = None
        self._cycle_lock = asyncio.Lock()

        logger.info(
            f"StrategyArena initialized: champion={self.state.champion}, "
            f"{len(strategies)} strategies, {len(markets.identifiers)} markets"
        )

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def _load_state(self) -> ArenaState:
        data = self.state_store.load()
        if isinstance(data, dict):
            try:
                return ArenaState.from_dict(data, self.config.initial_champion)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.error(f"Ignoring malformed arena state: {e}")
        return ArenaState(champion=self.config.initial_champion, last_update=self.clock())

    def save_state(self):
        self.state.last_update = self.clock()
        self.state_store.save(self.state.to_dict())

    @property
    def champion(self) -> str:
        return self.state.champion

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def register(self, strategy: Strategy) -> None:
        self.strategies.register(strategy)
        logger.info(f"Registered strategy: {strategy.id}")

    # -------------------------------------------------------------------------
    # CYCLE
    # -------------------------------------------------------------------------

    async def run_cycle(
        self,
        signals: Optional[dict] = None,
        portfolio_value: Optional[float] = None,
    ) -> CycleReport:
        """
        Run one competition cycle.

        A call made while another cycle is still running is skipped, not
        queued. Nothing runs while the execution mode is OFF.

        Args:
            signals: Shared external signals passed to every strategy
            portfolio_value: Portfolio value for sizing; estimated from the
                base balance plus open positions when omitted
        """
        if self._cycle_lock.locked():
            logger.warning("Arena cycle already running, skipping")
            return CycleReport(started_at=self.clock(), skipped=True,
                               skip_reason="Cycle already running", champion=self.champion)

        async with self._cycle_lock:
            if self.mode_controller.is_off:
                logger.warning("Arena cycle skipped: kill switch active (mode=off)")
                report = CycleReport(started_at=self.clock(), skipped=True,
                                     skip_reason="Execution mode is off", champion=self.champion)
            else:
                report = await self._run_cycle(signals or {}, portfolio_value)
            self.last_report = report
            return report

    async def _run_cycle(self, signals: dict, portfolio_value: Optional[float]) -> CycleReport:
        report = CycleReport(started_at=self.clock(), champion=self.champion)
        logger.info(
            f"Arena cycle | champion: {self.champion} | mode: {self.mode_controller.mode.value} | "
            f"allocation: {self.allocator.mode}"
        )

        # 1. Prices and take-profits
        prices = await self.fetch_prices()
        self.last_prices = prices
        closed = self.ledger.sweep_take_profits(prices, self.config.take_profit_pct)
        report.take_profits = [t.id for t in closed]

        # 2. Sizing inputs
        weights = self.allocator.refresh()
        report.allocations = dict(weights)
        if portfolio_value is None:
            portfolio_value = self.risk_gate.estimate_portfolio_value(self.config.base_balance, prices)
        report.portfolio_value = portfolio_value

        # 3. Evaluate every strategy
        results = await self.evaluate_all(prices, signals)

        # 4. Gate, size, execute and record
        for result in results:
            outcome = await self._act_on(result, prices, portfolio_value, weights)
            report.outcomes.append(outcome)

        # 5. Promotion
        report.promotion = self.compare_and_promote(prices)
        report.champion = self.champion

        logger.info(
            f"Arena cycle complete: {report.trades_logged} trades logged, "
            f"{len(report.take_profits)} take-profits, champion {self.champion}"
        )
        return report

    async def fetch_prices(self) -> dict[str, MarketPrices]:
        """Prices for every active market; markets without prices are left out"""
        markets = [self.markets.get(m) or Market(identifier=m) for m in self.markets.identifiers]
        fetched = await asyncio.gather(*(self.price_source.get_prices(m) for m in markets))
        return {m.identifier: p for m, p in zip(markets, fetched) if p is not None}

    async def evaluate_all(self, prices: dict[str, MarketPrices], signals: dict) -> list[EvalResult]:
        """Evaluate every registered strategy concurrently, in registration order"""
        return list(await asyncio.gather(
            *(self._evaluate(strategy, prices, signals) for strategy in self.strategies)
        ))

    async def _evaluate(self, strategy: Strategy, prices: dict[str, MarketPrices], signals: dict) -> EvalResult:
        try:
            market = route_strategy(strategy, self.markets)
        except Exception as e:
            logger.error(f"Strategy {strategy.id} failed to route: {type(e).__name__}: {e}")
            return EvalResult(strategy.id, None, error=EvalError(type(e).__name__, str(e)))
        if market is None:
            logger.info(f"{strategy.id}: no active market matches {strategy.target_markets}, holding")
            return EvalResult(strategy.id, None, StrategySignal.hold("No matching market"))

        market_prices = prices.get(market.identifier)
        if market_prices is None:
            return EvalResult(strategy.id, market.identifier, StrategySignal.hold("No prices"))

        snapshot = MarketSnapshot(
            market=market.identifier,
            category=market.category,
            up_price=market_prices.up,
            down_price=market_prices.down,
            timestamp=self.clock(),
        )
        try:
            signal = await strategy.analyze(snapshot, signals)
        except Exception as e:
            logger.error(f"Strategy {strategy.id} failed on {market.identifier}: {type(e).__name__}: {e}")
            return EvalResult(strategy.id, market.identifier, error=EvalError(type(e).__name__, str(e)))

        if not isinstance(signal, StrategySignal):
            logger.error(f"Strategy {strategy.id} returned {type(signal).__name__}, expected StrategySignal")
            return EvalResult(
                strategy.id, market.identifier,
                error=EvalError("TypeError", f"analyze() returned {type(signal).__name__}"),
            )

        logger.info(
            f"{strategy.id}: {signal.action.value} on {market.identifier} "
            f"(score {signal.score * 100:.1f}%, confidence {signal.confidence:.2f})"
        )
        return EvalResult(strategy.id, market.identifier, signal)

    async def _act_on(
        self,
        result: EvalResult,
        prices: dict[str, MarketPrices],
        portfolio_value: float,
        weights: dict[str, float],
    ) -> StrategyOutcome:
        action = result.action
        outcome = StrategyOutcome(strategy=result.strategy, market=result.market, action=action.value, status="hold")

        if result.error is not None:
            outcome.status = "error"
            outcome.reason = f"{result.error.error_type}: {result.error.message}"
            return outcome
        if action is Action.HOLD:
            outcome.reason = result.signal.reason if result.signal else ""
            return outcome

        signal = result.signal
        market = self.markets.get(result.market) or Market(identifier=result.market)
        price = prices[result.market].price_for(action)
        if not 0 < price < 1:
            outcome.status = "skipped"
            outcome.reason = f"Price {price} outside (0, 1)"
            logger.info(f"{result.strategy}: skipped, {outcome.reason}")
            return outcome

        decision = self.risk_gate.validate(result.strategy, market.identifier, action, signal.confidence, portfolio_value)
        if not decision.valid:
            self.risk_gate.log_skip(result.strategy, decision)
            outcome.status = "rejected"
            outcome.rule = decision.rule.value
            outcome.reason = decision.reason
            return outcome

        key = normalize_strategy_id(result.strategy)
        if self.allocator.mode == "ensemble":
            allocation = self.allocator.get_allocation(key, decision.size, weights)
            outcome.weight = allocation.weight
            wants_real = allocation.can_trade
            size = allocation.size if allocation.can_trade else decision.size
        else:
            wants_real = key == normalize_strategy_id(self.champion)
            size = decision.size
        size = round(size, 2)
        outcome.size = size

        if size < self.config.min_logged_size:
            outcome.status = "skipped"
            outcome.reason = f"Size ${size:.2f} below minimum ${self.config.min_logged_size:.2f}"
            logger.info(f"{result.strategy}: skipped, {outcome.reason}")
            return outcome

        is_real = wants_real and self.mode_controller.is_live and self.execution_client is not None
        order_id = None
        if is_real:
            order = await self.execution_client.place_order(market, action, price, size)
            if not order.success:
                outcome.status = "failed"
                outcome.reason = order.error or "Order failed"
                logger.warning(f"{result.strategy}: real order failed on {market.identifier}: {outcome.reason}")
                return outcome
            order_id = order.order_id

        trade = self.ledger.log_trade(
            strategy=result.strategy,
            market=market.identifier,
            action=action,
            entry_price=price,
            size=size,
            is_real=is_real,
            score=signal.score,
            confidence=signal.confidence,
            reason=signal.reason,
            order_id=order_id,
        )
        outcome.status = "real" if is_real else "paper"
        outcome.reason = signal.reason
        outcome.trade_id = trade.id
        return outcome

    # -------------------------------------------------------------------------
    # PROMOTION
    # -------------------------------------------------------------------------

    def compare_and_promote(self, current_prices: Optional[dict[str, MarketPrices]] = None) -> Optional[PromotionEvent]:
        """
        Compare trailing P&L against the champion and update win counters.

        A challenger wins the cycle if its P&L beats the champion's, is
        positive, and leads by at least min_edge. The highest such P&L wins;
        every other counter resets. A cycle with no winner resets all
        counters. Reaching wins_for_promotion promotes the winner.
        """
        hours = self.config.comparison_window_hours
        windows = self.ledger.performance_window(hours, current_prices)
        champion = normalize_strategy_id(self.champion)
        champion_pnl = windows[champion].total_pnl if champion in windows else 0.0

        # Stable sort: exact ties keep ledger order
        ranked = sorted(windows.items(), key=lambda kv: kv[1].total_pnl, reverse=True)
        for name, window in ranked:
            marker = "*" if name == champion else " "
            logger.info(f"{marker} {name:<20} | {window.trade_count:>3} trades | P&L ({hours:g}h): ${window.total_pnl:+.2f}")

        winner = None
        winner_pnl = 0.0
        for name, window in ranked:
            if name == champion:
                continue
            pnl = window.total_pnl
            if pnl > champion_pnl and pnl > 0 and pnl - champion_pnl >= self.config.min_edge:
                winner, winner_pnl = name, pnl
                break

        promotion = None
        if winner is None:
            logger.info(f"{champion} retains the cycle (P&L ${champion_pnl:+.2f}), challenger counters reset")
            self.state.challenger_wins = {}
        else:
            wins = self.state.challenger_wins.get(winner, 0) + 1
            self.state.challenger_wins = {name: 0 for name in self.state.challenger_wins}
            self.state.challenger_wins[winner] = wins
            logger.info(
                f"{winner} beats champion {champion}: ${winner_pnl:+.2f} vs ${champion_pnl:+.2f} "
                f"({wins}/{self.config.wins_for_promotion} wins)"
            )
            if wins >= self.config.wins_for_promotion:
                promotion = self.promote(
                    winner,
                    reason=(
                        f"{wins} consecutive wins over {champion} "
                        f"(${winner_pnl:+.2f} vs ${champion_pnl:+.2f} over {hours:g}h, "
                        f"min edge ${self.config.min_edge:.2f})"
                    ),
                )

        self.save_state()
        return promotion

    def promote(self, new_champion: str, reason: str = "manual promotion") -> PromotionEvent:
        """Make new_champion the incumbent and clear every challenger counter"""
        event = PromotionEvent(
            timestamp=self.clock(),
            old_champion=self.state.champion,
            new_champion=new_champion,
            reason=reason,
        )
        self.state.promotion_history.append(event)
        self.state.champion = new_champion
        self.state.challenger_wins = {}
        self.save_state()

        logger.info(f"PROMOTION: {event.new_champion} replaces {event.old_champion} as champion - {reason}")
        return event

    # -------------------------------------------------------------------------
    # EXTERNAL EVENTS & STATUS
    # -------------------------------------------------------------------------

    def resolve_market(self, market: str, outcome: str) -> list[Trade]:
        """Settle every open trade on a resolved market"""
        return self.ledger.close_market(market, outcome)

    def performance(self, hours: Optional[float] = None) -> list[dict]:
        """Window performance rows, best first, marked at the last fetched prices"""
        hours = self.config.comparison_window_hours if hours is None else hours
        windows = self.ledger.performance_window(hours, self.last_prices)
        champion = normalize_strategy_id(self.champion)
        rows = [
            {"strategy": name, "is_champion": name == champion, **window.to_dict()}
            for name, window in windows.items()
        ]
        return sorted(rows, key=lambda r: r["pnl"], reverse=True)

    def get_status(self) -> dict:
        return {
            "champion": self.state.champion,
            "challenger_wins": {k: v for k, v in self.state.challenger_wins.items() if v > 0},
            "wins_for_promotion": self.config.wins_for_promotion,
            "promotion_history": [p.to_dict() for p in self.state.promotion_history],
            "last_update": self.state.last_update,
            "strategies": self.strategies.ids,
            "markets": self.markets.identifiers,
            "execution_mode": self.mode_controller.mode.value,
            "allocation_mode": self.allocator.mode,
            "is_running": self.is_running,
            "performance": self.performance(),
        }
