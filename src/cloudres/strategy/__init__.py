"""Tiered strategy configuration lookup."""

from cloudres.strategy.resolver import (
    PENDING,
    Resolution,
    StrategyConfig,
    StrategyResolver,
    StrategyState,
)
from cloudres.strategy.store import FileStrategyStore, InMemoryStrategyStore, StrategyStore

__all__ = [
    "PENDING",
    "FileStrategyStore",
    "InMemoryStrategyStore",
    "Resolution",
    "StrategyConfig",
    "StrategyResolver",
    "StrategyState",
    "StrategyStore",
]
