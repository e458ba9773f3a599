"""
In-process backend for the ``local`` deployment strategy.

Resources live in a ``LocalBackend`` and converge after a configurable number
of polls, which mimics the asynchronous create/delete behaviour of a real
cloud API without network access. Useful for local development and tests.

Strategy options (``strategy_config``):
    converge_after: polls reporting "creating" before a resource is ready
    delete_after: polls reporting "deleting" before a resource disappears
    fail_create: if set, create calls fail with this message
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any

import structlog

from cloudres.core.errors import ProvisioningError
from cloudres.domain.models import (
    SNAPSHOT_KINDS,
    ResourceKind,
    ResourceRecord,
    ResourceRequest,
    ResourceStatus,
    SnapshotRequest,
)
from cloudres.providers.base import (
    BaseProvider,
    BaseSnapshotProvider,
    CreateResult,
    DeletionResult,
    ResourceInstance,
)
from cloudres.providers.naming import build_infra_name, build_timestamped_name
from cloudres.providers.registry import register_provider
from cloudres.strategy.resolver import StrategyConfig

logger = structlog.get_logger()

LOCAL_STRATEGY = "local"

STATUS_CREATING = "creating"
STATUS_AVAILABLE = "available"
STATUS_DELETING = "deleting"


@dataclass
class LocalResource:
    name: str
    kind: ResourceKind
    status: str = STATUS_CREATING
    polls_remaining: int = 0
    connection: dict[str, Any] = field(default_factory=dict)


class LocalBackend:
    """Holds local resources; every ``describe`` advances their progress by one poll."""

    def __init__(self) -> None:
        self._resources: dict[str, LocalResource] = {}
        self.calls: list[tuple[str, str]] = []

    def describe(self, name: str) -> LocalResource | None:
        self.calls.append(("describe", name))
        resource = self._resources.get(name)
        if resource is None:
            return None
        if resource.polls_remaining > 0:
            resource.polls_remaining -= 1
            return resource
        if resource.status == STATUS_CREATING:
            resource.status = STATUS_AVAILABLE
        elif resource.status == STATUS_DELETING:
            del self._resources[name]
            return None
        return resource

    def create(
        self,
        name: str,
        kind: ResourceKind,
        *,
        converge_after: int = 0,
        connection: dict[str, Any] | None = None,
    ) -> LocalResource:
        self.calls.append(("create", name))
        if name in self._resources:
            raise ProvisioningError(f"local resource {name} already exists")
        resource = LocalResource(
            name=name,
            kind=kind,
            polls_remaining=converge_after,
            connection=connection or {},
        )
        self._resources[name] = resource
        return resource

    def delete(self, name: str, *, delete_after: int = 0) -> None:
        self.calls.append(("delete", name))
        resource = self._resources.get(name)
        if resource is None:
            return
        resource.status = STATUS_DELETING
        resource.polls_remaining = delete_after

    def remove(self, name: str) -> None:
        """Drop a resource immediately, as if it were removed out-of-band."""
        self._resources.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._resources)

    def count_calls(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


def _connection_for(kind: ResourceKind, name: str, region: str) -> dict[str, Any]:
    if kind == ResourceKind.blobstorage:
        return {"bucketName": name, "bucketRegion": region}
    if kind == ResourceKind.postgres:
        return {
            "host": f"{name}.local",
            "port": "5432",
            "database": "postgres",
            "username": "postgres",
            "password": secrets.token_urlsafe(24),
        }
    if kind == ResourceKind.redis:
        return {"uri": f"{name}.local", "port": "6379"}
    if kind == ResourceKind.smtp_credentials:
        return {
            "host": "smtp.local",
            "port": "587",
            "username": name,
            "password": secrets.token_urlsafe(24),
            "tls": "true",
        }
    return {"name": name}


def _options(config: StrategyConfig) -> tuple[int, int, str | None]:
    raw = config.raw_strategy
    return (
        int(raw.get("converge_after", 0)),
        int(raw.get("delete_after", 0)),
        raw.get("fail_create"),
    )


class LocalResourceProvider(BaseProvider):
    """Provider for primary resources of one kind under the ``local`` strategy."""

    strategies = frozenset({LOCAL_STRATEGY})

    def __init__(self, kind: ResourceKind, backend: LocalBackend, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.kind = kind
        self.backend = backend
        self.name = f"local-{kind.value}"

    def external_name(self, request: ResourceRequest) -> str:
        return build_infra_name(request)

    async def create(self, request: ResourceRequest, config: StrategyConfig) -> CreateResult:
        name = self.external_name(request)
        converge_after, _, fail_create = _options(config)
        if fail_create:
            raise ProvisioningError(str(fail_create))

        found = self.backend.describe(name)
        if found is None:
            logger.info("local_resource_creating", name=name, kind=self.kind.value)
            self.backend.create(
                name,
                self.kind,
                converge_after=converge_after,
                connection=_connection_for(self.kind, name, config.region),
            )
            return None, "local resource creation started"
        if found.status != STATUS_AVAILABLE:
            return None, f"local resource status: {found.status}"
        instance = ResourceInstance(external_id=name, connection=dict(found.connection))
        return instance, "local resource available"

    async def delete(
        self, request: ResourceRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        name = status.external_id or self.external_name(request)
        _, delete_after, _ = _options(config)
        found = self.backend.describe(name)
        if found is None:
            return DeletionResult("local resource deleted", completed=True)
        if found.status != STATUS_DELETING:
            self.backend.delete(name, delete_after=delete_after)
        return DeletionResult("local resource deletion started")


class LocalSnapshotProvider(BaseSnapshotProvider):
    """Snapshots of local primary resources."""

    strategies = frozenset({LOCAL_STRATEGY})

    def __init__(self, kind: ResourceKind, backend: LocalBackend, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.kind = kind
        self.backend = backend
        self.name = f"local-{kind.value}"

    def external_name(self, request: SnapshotRequest) -> str:  # type: ignore[override]
        return build_timestamped_name(request)

    async def _create_snapshot(
        self,
        snapshot: SnapshotRequest,
        snapshot_name: str,
        primary: ResourceRecord,
        config: StrategyConfig,
    ) -> CreateResult:
        converge_after, _, fail_create = _options(config)
        if fail_create:
            raise ProvisioningError(str(fail_create))

        found = self.backend.describe(snapshot_name)
        if found is None:
            source = primary.status.external_id or ""
            if self.backend.describe(source) is None:
                raise ProvisioningError(f"local resource {source} not found")
            self.backend.create(
                snapshot_name,
                self.kind,
                converge_after=converge_after,
                connection={"snapshotIdentifier": snapshot_name, "source": source},
            )
            return None, "snapshot started"
        if found.status == STATUS_AVAILABLE:
            instance = ResourceInstance(
                external_id=snapshot_name, connection=dict(found.connection)
            )
            return instance, "snapshot created"
        return None, f"current snapshot status: {found.status}"

    async def delete(
        self, snapshot: SnapshotRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        if not status.external_id:
            return DeletionResult("snapshot deleted", completed=True)
        _, delete_after, _ = _options(config)
        found = self.backend.describe(status.external_id)
        if found is None:
            return DeletionResult("snapshot deleted", completed=True)
        if found.status != STATUS_DELETING:
            self.backend.delete(status.external_id, delete_after=delete_after)
        return DeletionResult("snapshot deletion started")


def _factory(
    *,
    kind: ResourceKind,
    local_backend: LocalBackend | None = None,
    in_progress_interval: float = 60.0,
    complete_interval: float = 300.0,
    **_: Any,
) -> LocalResourceProvider | LocalSnapshotProvider:
    backend = local_backend or LocalBackend()
    provider_cls = LocalSnapshotProvider if kind in SNAPSHOT_KINDS else LocalResourceProvider
    return provider_cls(
        kind,
        backend,
        in_progress_interval=in_progress_interval,
        complete_interval=complete_interval,
    )


register_provider(
    "local",
    _factory,
    kinds=list(ResourceKind),
    description="In-process resources for local development",
)

__all__ = [
    "LOCAL_STRATEGY",
    "LocalBackend",
    "LocalResource",
    "LocalResourceProvider",
    "LocalSnapshotProvider",
]
