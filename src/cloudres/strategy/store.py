"""
Strategy configuration stores.

A store returns the single shared strategy record, shaped
``{kind: {tier: {strategy, region, strategy_config}}}``, or ``None`` when the
record does not exist. Values for a kind may be mappings or JSON-encoded
strings, the way config-map data is usually written.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Mapping, Protocol

import structlog
import yaml

from cloudres.core.errors import ConfigUnavailableError, MalformedStrategyError

logger = structlog.get_logger()

StrategyRecord = Mapping[str, Any]


class StrategyStore(Protocol):
    async def load(self) -> StrategyRecord | None: ...


class InMemoryStrategyStore:
    """Strategy record held in memory, used for local development and tests."""

    def __init__(self, record: StrategyRecord | None = None) -> None:
        self._record = dict(record) if record is not None else None

    async def load(self) -> StrategyRecord | None:
        return self._record

    def set(self, record: StrategyRecord | None) -> None:
        self._record = dict(record) if record is not None else None

    def set_tier(self, kind: str, tier: str, entry: Mapping[str, Any]) -> None:
        if self._record is None:
            self._record = {}
        tiers = dict(decode_tiers(kind, self._record.get(kind)) or {})
        tiers[tier] = dict(entry)
        self._record[kind] = tiers


class FileStrategyStore:
    """Strategy record read from a YAML or JSON file on every load."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def load(self) -> StrategyRecord | None:
        return await asyncio.to_thread(self._read)

    def _read(self) -> StrategyRecord | None:
        if not self.path.exists():
            logger.debug("strategy_file_missing", path=str(self.path))
            return None
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigUnavailableError(
                f"failed to read strategy configuration {self.path}",
                details={"error": str(exc)},
            ) from exc
        if not isinstance(data, dict):
            raise ConfigUnavailableError(f"strategy configuration {self.path} is not a mapping")
        return data


def decode_tiers(kind: str, raw: Any) -> Mapping[str, Any] | None:
    """Return the tier mapping for ``kind``, decoding JSON strings."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedStrategyError(
                f"failed to unmarshal strategy mapping for resource type {kind}"
            ) from exc
    if not isinstance(raw, Mapping):
        raise MalformedStrategyError(f"strategy mapping for resource type {kind} is not a mapping")
    return raw
