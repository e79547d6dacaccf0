"""
Active market registry and strategy-to-market routing.

The registry is loaded from a JSON document:

    {"markets": [{"slug": "...", "category": "...", "up_token": "...", "down_token": "..."}],
     "default": "<slug>"}
"""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from strategy_arena.strategy_base import Strategy

logger = logging.getLogger(__name__)


@dataclass
class Market:
    identifier: str
    category: str = ""
    up_token: Optional[str] = None
    down_token: Optional[str] = None

    def token_for(self, side: str) -> Optional[str]:
        return self.up_token if side == "up" else self.down_token

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Market":
        identifier = data.get("identifier") or data.get("slug")
        if not identifier:
            raise ValueError(f"Market entry has no slug: {data!r}")
        return cls(
            identifier=identifier,
            category=data.get("category", ""),
            up_token=data.get("up_token"),
            down_token=data.get("down_token"),
        )


class MarketRegistry:
    """Markets the arena may trade, plus the default for untargeted strategies."""

    def __init__(self, markets: Optional[list[Market]] = None, default: Optional[str] = None):
        self.markets: list[Market] = list(markets or [])
        self.default = default or (self.markets[0].identifier if self.markets else None)

    @classmethod
    def from_dict(cls, data: dict) -> "MarketRegistry":
        markets = []
        for raw in data.get("markets") or []:
            try:
                markets.append(Market.from_dict(raw))
            except (ValueError, AttributeError) as e:
                logger.warning(f"Skipping market entry: {e}")
        return cls(markets, data.get("default"))

    @classmethod
    def load(cls, path: str) -> "MarketRegistry":
        """Load from JSON; a missing or malformed file gives an empty registry"""
        try:
            with open(path, "r") as f:
                registry = cls.from_dict(json.load(f))
        except FileNotFoundError:
            logger.warning(f"No active markets file at {path}")
            return cls()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load active markets from {path}: {e}")
            return cls()

        logger.info(f"Loaded {len(registry.markets)} markets, default: {registry.default}")
        return registry

    def get(self, identifier: str) -> Optional[Market]:
        for market in self.markets:
            if market.identifier == identifier:
                return market
        return None

    @property
    def identifiers(self) -> list[str]:
        ids = [m.identifier for m in self.markets]
        if self.default and self.default not in ids:
            ids.append(self.default)
        return ids

    def default_market(self) -> Optional[Market]:
        if not self.default:
            return None
        return self.get(self.default) or Market(identifier=self.default)

    def to_dict(self) -> dict:
        return {
            "markets": [m.to_dict() for m in self.markets],
            "default": self.default,
        }


def route_strategy(strategy: Strategy, registry: MarketRegistry) -> Optional[Market]:
    """
    Pick the market a strategy trades this cycle.

    Strategies without targets trade the default market. A strategy that
    declares targets and matches none abstains (None) rather than defaulting.
    """
    if not strategy.routes_by_market:
        return registry.default_market()

    for market in registry.markets:
        if strategy.matches_market(market.identifier):
            return market
    return None
