from __future__ import annotations

import structlog

from cloudres.domain.models import Phase, ResourceRecord, ResourceStatus
from cloudres.reconcile.outputs import OutputSink, invalidate_output
from cloudres.store.base import RequestStore

logger = structlog.get_logger()


class StatusWriter:
    """Conditional status writes shared by the create and delete paths."""

    def __init__(self, store: RequestStore, sink: OutputSink) -> None:
        self._store = store
        self._sink = sink

    async def write(self, record: ResourceRecord, status: ResourceStatus) -> ResourceRecord:
        """Persist ``status`` if it differs from what ``record`` holds.

        Raises ``StatusConflictError`` when the record changed since it was read.
        """
        if status == record.status:
            return record
        updated = await self._store.update_status(record.key, status, record.version)
        if status.phase != record.status.phase:
            logger.info(
                "phase_transition",
                from_phase=record.status.phase.value,
                to_phase=status.phase.value,
                message=status.message,
            )
        return updated

    async def clear_outputs(self, record: ResourceRecord, status: ResourceStatus) -> None:
        """Invalidate anything this request may have published."""
        refs = {status.output_ref, record.request.output_ref}
        for ref in sorted(r for r in refs if r):
            await invalidate_output(self._sink, ref)
        status.output_ref = None

    async def fail(
        self, record: ResourceRecord, status: ResourceStatus, message: str
    ) -> ResourceRecord:
        """Mark the request Failed and drop any published output."""
        await self.clear_outputs(record, status)
        status.phase = Phase.failed
        status.message = message
        logger.warning("reconcile_failed", message=message)
        return await self.write(record, status)
