"""Domain models for resource requests and their status."""

from cloudres.domain.models import (
    SNAPSHOT_KINDS,
    Phase,
    ReconcileResult,
    ResourceKind,
    ResourceRecord,
    ResourceRequest,
    ResourceStatus,
    SnapshotRequest,
)

__all__ = [
    "SNAPSHOT_KINDS",
    "Phase",
    "ReconcileResult",
    "ResourceKind",
    "ResourceRecord",
    "ResourceRequest",
    "ResourceStatus",
    "SnapshotRequest",
]
