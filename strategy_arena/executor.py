"""
Execution clients - the seam between the arena and an exchange.

The arena only ever calls place_order(); a failed placement is reported as
an OrderResult with success=False and nothing is recorded in the ledger.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Optional

from strategy_arena.markets import Market
from strategy_arena.mode_controller import ModeController
from strategy_arena.trade_ledger import Action

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    """Result of attempting to place an order."""
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None
    size_usd: float = 0.0
    filled_price: Optional[float] = None
    timestamp: float = 0.0

    @classmethod
    def failed(cls, error: str) -> "OrderResult":
        return cls(success=False, error=error, timestamp=time.time())

    def to_dict(self) -> dict:
        return asdict(self)


class ExecutionClient(ABC):
    """Places buy orders for outcome tokens."""

    @abstractmethod
    async def place_order(self, market: Market, action: Action, price: float, size: float) -> OrderResult:
        """Buy `size` USD of the action's outcome token at `price`."""
        pass


class PaperExecutionClient(ExecutionClient):
    """Simulated fills at the requested price. Keeps a record of every order."""

    def __init__(self):
        self.orders: list[dict] = []

    async def place_order(self, market: Market, action: Action, price: float, size: float) -> OrderResult:
        if action is Action.HOLD:
            return OrderResult.failed("Cannot place an order for HOLD")
        if not 0 < price < 1:
            return OrderResult.failed(f"Invalid price {price}")
        if size <= 0:
            return OrderResult.failed(f"Invalid size {size}")

        order_id = f"paper-{uuid.uuid4().hex[:12]}"
        self.orders.append({
            "order_id": order_id,
            "market": market.identifier,
            "token": market.token_for(action.side),
            "action": action.value,
            "price": price,
            "size": size,
        })
        logger.info(f"Paper order filled: {action.value} {market.identifier} @ {price:.4f} | ${size:.2f}")
        return OrderResult(
            success=True,
            order_id=order_id,
            size_usd=size,
            filled_price=price,
            timestamp=time.time(),
        )


class GuardedExecutionClient(ExecutionClient):
    """
    Wraps a real exchange client behind the kill switch.

    Checks the mode controller before every order and converts client
    exceptions into failed results.
    """

    def __init__(self, client: ExecutionClient, mode_controller: ModeController):
        self._client = client
        self._mode = mode_controller

    async def place_order(self, market: Market, action: Action, price: float, size: float) -> OrderResult:
        if self._mode.is_off:
            logger.warning("Live order blocked: kill switch active (mode=off)")
            return OrderResult.failed("Kill switch active (mode=off)")

        if not self._mode.is_live:
            logger.warning(f"Live order blocked: mode is {self._mode.mode.value}, not live")
            return OrderResult.failed(f"Mode is {self._mode.mode.value}, not live")

        try:
            result = await self._client.place_order(market, action, price, size)
        except Exception as e:
            logger.error(f"Live order error on {market.identifier}: {e}")
            return OrderResult.failed(str(e))

        if result.success:
            logger.info(
                f"LIVE order placed: {action.value} {market.identifier} @ {price:.4f} | "
                f"${size:.2f} | order {result.order_id}"
            )
        else:
            logger.warning(f"LIVE order rejected on {market.identifier}: {result.error}")
        return result
