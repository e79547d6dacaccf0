"""
Mode Controller - LIVE/PAPER/OFF execution mode for the arena.

OFF = kill switch: cycles are skipped entirely.
PAPER = every trade is simulated.
LIVE = the incumbent (or ensemble-weighted strategies) route real orders.
"""

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ExecutionMode(Enum):
    LIVE = "live"
    PAPER = "paper"
    OFF = "off"

    @classmethod
    def parse(cls, value: str) -> "ExecutionMode":
        """Unknown strings fail safe to OFF"""
        try:
            return cls(value.lower().strip())
        except ValueError:
            logger.warning(f"Unknown execution mode '{value}', defaulting to off")
            return cls.OFF


ModeChangeCallback = Callable[[ExecutionMode, ExecutionMode, str], Awaitable[None]]


class ModeController:
    """Holds the current execution mode and who last changed it."""

    def __init__(self, mode: ExecutionMode = ExecutionMode.PAPER, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._mode = mode
        self._changed_at = clock()
        self._changed_by = "system"
        self._on_mode_change: Optional[ModeChangeCallback] = None

    @property
    def mode(self) -> ExecutionMode:
        return self._mode

    @property
    def is_trading_enabled(self) -> bool:
        return self._mode is not ExecutionMode.OFF

    @property
    def is_live(self) -> bool:
        return self._mode is ExecutionMode.LIVE

    @property
    def is_off(self) -> bool:
        return self._mode is ExecutionMode.OFF

    def set_on_mode_change(self, callback: ModeChangeCallback) -> None:
        """Callback receives (old_mode, new_mode, changed_by)."""
        self._on_mode_change = callback

    async def set_mode(self, mode: ExecutionMode, changed_by: str = "user") -> bool:
        """
        Switch execution mode.

        Returns:
            True if the mode changed, False if it was already set
        """
        old_mode = self._mode
        if old_mode is mode:
            return False

        self._mode = mode
        self._changed_at = self.clock()
        self._changed_by = changed_by
        logger.info(f"Execution mode changed: {old_mode.value} -> {mode.value} by {changed_by}")

        if self._on_mode_change:
            try:
                await self._on_mode_change(old_mode, mode, changed_by)
            except Exception as e:
                logger.error(f"Error in mode change callback: {e}")

        return True

    async def kill(self, reason: str = "manual") -> None:
        """Emergency stop"""
        await self.set_mode(ExecutionMode.OFF, changed_by=f"kill:{reason}")

    def get_status(self) -> dict:
        return {
            "mode": self._mode.value,
            "is_trading_enabled": self.is_trading_enabled,
            "is_live": self.is_live,
            "changed_at": self._changed_at,
            "changed_by": self._changed_by,
        }
