from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field


class ResourceKind(StrEnum):
    """Kinds of externally hosted resources a request can ask for."""

    postgres = "postgres"
    postgres_snapshot = "postgresSnapshot"
    blobstorage = "blobstorage"
    smtp_credentials = "smtpCredentials"
    redis = "redis"


# Snapshot kinds and the primary kind they are taken from
SNAPSHOT_KINDS: dict[ResourceKind, ResourceKind] = {
    ResourceKind.postgres_snapshot: ResourceKind.postgres,
}


class Phase(StrEnum):
    """Lifecycle phases of a resource request."""

    pending = "pending"
    in_progress = "in progress"
    complete = "complete"
    failed = "failed"
    delete_in_progress = "deletion in progress"
    deleted = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceRequest(BaseModel):
    """Desired state for one resource instance, owned by the caller."""

    name: str
    namespace: str = "default"
    kind: ResourceKind
    tier: str
    output_ref: str
    deletion_requested: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class SnapshotRequest(ResourceRequest):
    """Request for a point-in-time snapshot of a primary resource."""

    kind: ResourceKind = ResourceKind.postgres_snapshot
    primary_resource_id: str


class ResourceStatus(BaseModel):
    """Engine-owned observed state of a request."""

    phase: Phase = Phase.pending
    message: str = ""
    provider: str | None = None
    strategy: str | None = None
    external_id: str | None = None
    output_ref: str | None = None
    finalizer: bool = False


class ResourceRecord(BaseModel):
    """A persisted request together with its status and concurrency token."""

    request: SnapshotRequest | ResourceRequest
    status: ResourceStatus = Field(default_factory=ResourceStatus)
    version: int = 0

    @property
    def key(self) -> str:
        return self.request.key

    @property
    def removable(self) -> bool:
        return self.status.phase == Phase.deleted and not self.status.finalizer


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Outcome of one reconciliation; ``requeue_after`` is in seconds."""

    requeue_after: float | None = None

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None
