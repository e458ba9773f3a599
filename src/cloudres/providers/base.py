from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol

from cloudres.core.errors import PrimaryResourceError, ProvisioningError
from cloudres.domain.models import (
    Phase,
    ResourceRecord,
    ResourceRequest,
    ResourceStatus,
    SnapshotRequest,
)
from cloudres.strategy.resolver import StrategyConfig

WAITING_FOR_PRIMARY = "waiting for primary resource"
PRIMARY_DELETING = "cannot snapshot while primary is being deleted"


@dataclass(frozen=True)
class ResourceInstance:
    """A ready external resource and the connection data to publish for it."""

    external_id: str
    connection: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeletionResult:
    """Outcome of a delete call.

    ``completed`` is true only when the provider confirmed the external
    resource no longer exists.
    """

    message: str
    completed: bool = False


CreateResult = tuple[ResourceInstance | None, str]


class Provider(Protocol):
    """Capabilities shared by every provider."""

    name: str

    def supports_strategy(self, strategy: str) -> bool:
        ...

    def reconcile_interval(self, status: ResourceStatus) -> float:
        ...

    def external_name(self, request: ResourceRequest) -> str | None:
        ...


class ResourceProvider(Provider, Protocol):
    """Provider for primary resources."""

    async def create(self, request: ResourceRequest, config: StrategyConfig) -> CreateResult:
        ...

    async def delete(
        self, request: ResourceRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        ...


class SnapshotProvider(Provider, Protocol):
    """Provider for snapshots taken from a primary resource."""

    async def create(
        self,
        snapshot: SnapshotRequest,
        status: ResourceStatus,
        primary: ResourceRecord | None,
        config: StrategyConfig,
    ) -> CreateResult:
        ...

    async def delete(
        self, snapshot: SnapshotRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        ...


class BaseProvider:
    """Common strategy matching and requeue intervals."""

    name: str = "base"
    strategies: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        in_progress_interval: float = 60.0,
        complete_interval: float = 300.0,
    ) -> None:
        self._in_progress_interval = in_progress_interval
        self._complete_interval = complete_interval

    def supports_strategy(self, strategy: str) -> bool:
        return strategy in self.strategies

    def reconcile_interval(self, status: ResourceStatus) -> float:
        if status.phase != Phase.complete:
            return self._in_progress_interval
        return self._complete_interval

    def external_name(self, request: ResourceRequest) -> str | None:
        return None


class BaseSnapshotProvider(BaseProvider, ABC):
    """Snapshot provider that gates creation on the primary resource's phase.

    Subclasses implement ``_create_snapshot``; it is only reached once the
    primary can be snapshotted, so no external call is issued while waiting.
    """

    async def create(
        self,
        snapshot: SnapshotRequest,
        status: ResourceStatus,
        primary: ResourceRecord | None,
        config: StrategyConfig,
    ) -> CreateResult:
        if primary is None or primary.status.phase == Phase.deleted:
            raise PrimaryResourceError(
                f"primary resource {snapshot.primary_resource_id} not found"
            )
        if primary.request.deletion_requested or primary.status.phase == Phase.delete_in_progress:
            raise PrimaryResourceError(PRIMARY_DELETING)
        if primary.status.phase in (Phase.pending, Phase.in_progress):
            return None, WAITING_FOR_PRIMARY
        if not primary.status.external_id:
            return None, WAITING_FOR_PRIMARY
        if not status.external_id:
            raise ProvisioningError("snapshot name has not been recorded")
        return await self._create_snapshot(snapshot, status.external_id, primary, config)

    @abstractmethod
    async def _create_snapshot(
        self,
        snapshot: SnapshotRequest,
        snapshot_name: str,
        primary: ResourceRecord,
        config: StrategyConfig,
    ) -> CreateResult:
        """Start or observe the snapshot once the primary can be snapshotted."""
