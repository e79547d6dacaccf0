"""
Strategy Arena API - status and control endpoints.

Read-only endpoints are open; anything that mutates state (running a cycle,
resolving a market, switching mode) requires the X-API-Key header.
"""

import logging
import os
import secrets
from typing import Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Security
from fastapi.security import APIKeyHeader

from strategy_arena.allocator import EnsembleAllocator
from strategy_arena.arena import StrategyArena
from strategy_arena.config import load_settings
from strategy_arena.logging_setup import setup_logging
from strategy_arena.markets import MarketRegistry
from strategy_arena.mode_controller import ExecutionMode, ModeController
from strategy_arena.price_feed import ClobPriceSource
from strategy_arena.risk_manager import RiskGate
from strategy_arena.state_store import StateStore
from strategy_arena.strategies import default_strategies
from strategy_arena.strategy_base import StrategyRegistry
from strategy_arena.trade_ledger import TradeLedger, TradeStatus

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def create_app(arena: StrategyArena, api_key: Optional[str] = None) -> FastAPI:
    """
    Build the FastAPI app around an arena instance.

    Args:
        arena: The arena to expose
        api_key: Key for protected endpoints; falls back to ARENA_API_KEY,
                 then to a generated temporary key
    """
    api_key = api_key or os.getenv("ARENA_API_KEY")
    if not api_key:
        api_key = secrets.token_urlsafe(32)
        logger.warning(f"[Security] ARENA_API_KEY not set, generated temporary key: {api_key}")

    app = FastAPI(
        title="Strategy Arena API",
        description="Champion/challenger strategy competition with ensemble allocation",
        version="1.0.0",
    )
    app.state.arena = arena

    async def verify_api_key(key: str = Security(api_key_header)) -> str:
        """Verify API key for protected endpoints"""
        if not key or not secrets.compare_digest(key, api_key):
            raise HTTPException(
                status_code=403,
                detail="Invalid or missing API key. Include X-API-Key header.",
            )
        return key

    # ========================================================================
    # STATUS
    # ========================================================================

    @app.get("/")
    async def root():
        return {
            "name": "strategy-arena",
            "status": "ok",
            "champion": arena.champion,
            "execution_mode": arena.mode_controller.mode.value,
        }

    @app.get("/arena")
    async def get_arena():
        return arena.get_status()

    @app.get("/arena/performance")
    async def get_performance(hours: Optional[float] = None):
        hours = arena.config.comparison_window_hours if hours is None else hours
        if hours <= 0:
            raise HTTPException(status_code=400, detail="hours must be positive")
        return {
            "hours": hours,
            "performance": arena.performance(hours),
            "lifetime": arena.ledger.performance_summary(),
        }

    @app.get("/allocations")
    async def get_allocations():
        return arena.allocator.get_status()

    @app.get("/risk")
    async def get_risk(portfolio_value: Optional[float] = None):
        if portfolio_value is None:
            portfolio_value = arena.risk_gate.estimate_portfolio_value(arena.config.base_balance, arena.last_prices)
        return arena.risk_gate.get_status(portfolio_value)

    @app.get("/trades")
    async def get_trades(
        strategy: Optional[str] = None,
        market: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ):
        try:
            trade_status = TradeStatus(status) if status else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

        trades = arena.ledger.get_trades(strategy=strategy, market=market, status=trade_status)
        return {
            "count": len(trades),
            "trades": [t.to_dict() for t in trades[-limit:]] if limit > 0 else [],
        }

    @app.get("/mode")
    async def get_mode():
        return {
            **arena.mode_controller.get_status(),
            "allocation_mode": arena.allocator.mode,
        }

    # ========================================================================
    # CONTROL (protected)
    # ========================================================================

    @app.post("/arena/cycle")
    async def run_cycle(body: Optional[dict] = Body(default=None), _: str = Security(verify_api_key)):
        body = body or {}
        report = await arena.run_cycle(
            signals=body.get("signals"),
            portfolio_value=body.get("portfolio_value"),
        )
        return report.to_dict()

    @app.post("/markets/{market}/resolve")
    async def resolve_market(market: str, body: dict = Body(...), _: str = Security(verify_api_key)):
        try:
            closed = arena.resolve_market(market, str(body.get("outcome", "")))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "market": market,
            "closed": [t.to_dict() for t in closed],
            "pnl": round(sum(t.pnl or 0.0 for t in closed), 2),
        }

    @app.post("/mode")
    async def set_mode(body: dict = Body(...), _: str = Security(verify_api_key)):
        changed = {}
        if "mode" in body:
            try:
                mode = ExecutionMode(str(body["mode"]).lower().strip())
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown mode: {body['mode']}")
            changed["mode"] = await arena.mode_controller.set_mode(mode, changed_by=body.get("changed_by", "api"))

        if "allocation_mode" in body:
            try:
                changed["allocation_mode"] = arena.allocator.set_mode(str(body["allocation_mode"]))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        if not changed:
            raise HTTPException(status_code=400, detail="Provide 'mode' and/or 'allocation_mode'")

        return {
            "changed": changed,
            **arena.mode_controller.get_status(),
            "allocation_mode": arena.allocator.mode,
        }

    return app


# ============================================================================
# WIRING
# ============================================================================

def build_arena_from_env() -> StrategyArena:
    """Wire an arena from load_settings() (ARENA_CONFIG / ARENA_DATA_DIR / ARENA_MODE)"""
    settings = load_settings()

    ledger = TradeLedger(StateStore(settings.ledger_path))
    risk_gate = RiskGate(ledger, settings.risk)
    allocator = EnsembleAllocator(ledger, StateStore(settings.allocation_state_path), settings.allocator)

    return StrategyArena(
        ledger=ledger,
        risk_gate=risk_gate,
        allocator=allocator,
        strategies=StrategyRegistry(default_strategies()),
        markets=MarketRegistry.load(settings.markets_path),
        price_source=ClobPriceSource(),
        state_store=StateStore(settings.arena_state_path),
        mode_controller=ModeController(ExecutionMode.parse(settings.execution_mode)),
        config=settings.arena,
    )


def build_app_from_env() -> FastAPI:
    """App factory for uvicorn --factory"""
    setup_logging(os.getenv("ARENA_LOG_DIR", "logs"))
    arena = build_arena_from_env()
    app = create_app(arena)

    @app.on_event("shutdown")
    async def shutdown():
        await arena.price_source.close()

    return app


def main():
    """Run the server"""
    uvicorn.run(
        "strategy_arena.api:build_app_from_env",
        factory=True,
        host=os.getenv("ARENA_HOST", "0.0.0.0"),
        port=int(os.getenv("ARENA_PORT", "8000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
