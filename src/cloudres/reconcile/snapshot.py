"""
Snapshot reconciliation.

Snapshots go through the same phases as primary resources. Their create step
additionally needs the primary record, which is read fresh on every
invocation, so the snapshot provider can hold off while the primary is still
provisioning and refuse while it is being deleted. Deletion only touches the
snapshot's own external identifier.
"""

from __future__ import annotations

from typing import Any

import structlog

from cloudres.core.errors import PrimaryResourceError
from cloudres.domain.models import ResourceRecord, ResourceStatus, SnapshotRequest
from cloudres.providers.base import CreateResult
from cloudres.reconcile.engine import ReconcileEngine
from cloudres.strategy.resolver import StrategyConfig

logger = structlog.get_logger()


class SnapshotReconcileEngine(ReconcileEngine):
    """Reconcile engine for snapshot kinds."""

    async def _create(
        self,
        provider: Any,
        record: ResourceRecord,
        status: ResourceStatus,
        config: StrategyConfig,
    ) -> CreateResult:
        snapshot = record.request
        if not isinstance(snapshot, SnapshotRequest):
            raise PrimaryResourceError(f"{record.key} does not reference a primary resource")
        primary = await self.store.get(snapshot.primary_resource_id)
        logger.debug(
            "snapshot_primary_observed",
            primary=snapshot.primary_resource_id,
            primary_phase=primary.status.phase.value if primary else None,
        )
        return await provider.create(snapshot, status, primary, config)
