"""Resolve the deployment strategy for a resource kind and tier."""

from __future__ import annotations

from enum import Enum
from typing import Any, Final, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from cloudres.core.errors import ConfigUnavailableError, MalformedStrategyError
from cloudres.strategy.store import StrategyStore, decode_tiers

logger = structlog.get_logger()


class StrategyConfig(BaseModel):
    """Resolved strategy entry for one (kind, tier) pair."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    strategy: str
    region: str = ""
    raw_strategy: dict[str, Any] = Field(default_factory=dict, alias="strategy_config")


class StrategyState(Enum):
    """Marker returned while a tier has no strategy entry yet."""

    PENDING = "pending"


PENDING: Final = StrategyState.PENDING

Resolution = StrategyConfig | Literal[StrategyState.PENDING]


class StrategyResolver:
    """Looks up strategy entries in the shared strategy record.

    A missing record is an error the caller retries shortly; a missing kind or
    tier is ``PENDING`` because configuration may arrive after the request.
    """

    def __init__(self, store: StrategyStore, default_region: str) -> None:
        self._store = store
        self._default_region = default_region

    async def resolve(self, kind: str, tier: str) -> Resolution:
        record = await self._store.load()
        if record is None:
            raise ConfigUnavailableError(
                "strategy configuration record not found",
                details={"kind": kind},
            )

        tiers = decode_tiers(kind, record.get(kind))
        if not tiers or tier not in tiers or tiers[tier] is None:
            logger.info("strategy_tier_pending", kind=kind, tier=tier)
            return PENDING

        entry = tiers[tier]
        if isinstance(entry, str):
            entry = {"strategy": entry}
        try:
            config = StrategyConfig.model_validate(entry)
        except PydanticValidationError as exc:
            raise MalformedStrategyError(
                f"invalid strategy entry for resource type {kind} tier {tier}",
                details={"errors": exc.error_count()},
            ) from exc

        if not config.region:
            logger.info(
                "strategy_region_defaulted",
                kind=kind,
                tier=tier,
                region=self._default_region,
            )
            config = config.model_copy(update={"region": self._default_region})
        return config
