"""
Reference Strategies

All strategies inherit from strategy_base.Strategy and ONLY produce signals.
Recording and execution are handled by the arena.
"""

from .baseline import BaselineStrategy, BaselineConfig
from .momentum import MomentumStrategy, MomentumConfig
from .contrarian import ContrarianStrategy, ContrarianConfig

__all__ = [
    "BaselineStrategy",
    "BaselineConfig",
    "MomentumStrategy",
    "MomentumConfig",
    "ContrarianStrategy",
    "ContrarianConfig",
    "default_strategies",
]


def default_strategies() -> list:
    """One instance of each reference strategy, baseline first"""
    return [BaselineStrategy(), MomentumStrategy(), ContrarianStrategy()]
