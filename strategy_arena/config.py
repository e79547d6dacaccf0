"""
Configuration for the Strategy Arena.

Risk limits, allocator thresholds and promotion rules live in plain
dataclasses so they can be persisted, edited by hand and reloaded.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# RISK PARAMETERS
# ============================================================================

@dataclass
class RiskConfig:
    """Pre-trade risk limits"""
    max_exposure_per_market: float = 0.20  # 20% of portfolio per market
    cooldown_minutes: float = 10.0  # Min time between trades of one strategy
    no_stacking: bool = True  # Reject duplicate (strategy, market, action)
    position_size_pct: float = 0.05  # 5% of portfolio per trade
    min_trade_size: float = 5.0
    max_trade_size: float = 50.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RiskConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# ALLOCATOR PARAMETERS
# ============================================================================

@dataclass
class AllocatorConfig:
    """Ensemble eligibility and weight bounds"""
    mode: str = "ensemble"  # "champion" or "ensemble"
    lookback_hours: float = 168.0  # 7 days
    min_trades: int = 3  # Closed trades required
    min_win_rate: float = 0.3
    min_pnl_floor: float = -10.0  # Not too deep in the red
    min_alloc: float = 0.10
    max_alloc: float = 0.50
    fallback_strategy: str = "baseline"
    disabled_strategies: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AllocatorConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# ARENA PARAMETERS
# ============================================================================

@dataclass
class ArenaConfig:
    """Champion/challenger competition rules"""
    initial_champion: str = "baseline"
    comparison_window_hours: float = 48.0
    wins_for_promotion: int = 3  # Consecutive wins required
    min_edge: float = 1.0  # USD a challenger must lead by
    take_profit_pct: float = 0.30  # Close when up 30% from entry
    min_logged_size: float = 1.0  # Smaller trades are not recorded
    base_balance: float = 500.0  # Paper balance when no wallet value is given

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ArenaConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class ArenaSettings:
    """Everything needed to wire an arena together"""
    data_dir: str = "data"
    markets_file: str = "active_markets.json"
    execution_mode: str = "paper"  # "live", "paper" or "off"
    arena: ArenaConfig = field(default_factory=ArenaConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    allocator: AllocatorConfig = field(default_factory=AllocatorConfig)

    @property
    def ledger_path(self) -> str:
        return os.path.join(self.data_dir, "paper_trades.json")

    @property
    def arena_state_path(self) -> str:
        return os.path.join(self.data_dir, "arena_state.json")

    @property
    def allocation_state_path(self) -> str:
        return os.path.join(self.data_dir, "allocation_state.json")

    @property
    def markets_path(self) -> str:
        if os.path.isabs(self.markets_file):
            return self.markets_file
        return os.path.join(self.data_dir, self.markets_file)

    def to_dict(self) -> dict:
        return {
            "data_dir": self.data_dir,
            "markets_file": self.markets_file,
            "execution_mode": self.execution_mode,
            "arena": self.arena.to_dict(),
            "risk": self.risk.to_dict(),
            "allocator": self.allocator.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArenaSettings":
        return cls(
            data_dir=data.get("data_dir", "data"),
            markets_file=data.get("markets_file", "active_markets.json"),
            execution_mode=data.get("execution_mode", "paper"),
            arena=ArenaConfig.from_dict(data.get("arena", {})),
            risk=RiskConfig.from_dict(data.get("risk", {})),
            allocator=AllocatorConfig.from_dict(data.get("allocator", {})),
        )


def load_settings(config_path: Optional[str] = None) -> ArenaSettings:
    """
    Load settings from a JSON file, then apply environment overrides.

    A missing or unreadable file falls back to defaults so the arena can
    always start cold.

    Environment:
        ARENA_CONFIG: config file path (when config_path is None)
        ARENA_DATA_DIR: overrides data_dir
        ARENA_MODE: overrides execution_mode
    """
    config_path = config_path or os.getenv("ARENA_CONFIG", "arena_config.json")
    settings = ArenaSettings()

    if not os.path.exists(config_path):
        logger.warning(f"Arena config not found at {config_path}, using defaults")
    else:
        try:
            with open(config_path, "r") as f:
                settings = ArenaSettings.from_dict(json.load(f))
            logger.info(f"Loaded arena config from {config_path}")
        except (AttributeError, OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to load arena config: {e}")
            settings = ArenaSettings()

    data_dir = os.getenv("ARENA_DATA_DIR")
    if data_dir:
        settings.data_dir = data_dir

    mode = os.getenv("ARENA_MODE")
    if mode:
        settings.execution_mode = mode.lower().strip()

    return settings
