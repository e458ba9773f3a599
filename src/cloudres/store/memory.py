from __future__ import annotations

import asyncio

from cloudres.core.errors import FinalizerPendingError, StatusConflictError
from cloudres.domain.models import ResourceKind, ResourceRecord, ResourceRequest, ResourceStatus


class InMemoryRequestStore:
    """Request records held in process memory, for local development and tests.

    Records are copied on the way in and out so callers never share state with
    the store; every write bumps the record version.
    """

    def __init__(self) -> None:
        self._records: dict[str, ResourceRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> ResourceRecord | None:
        record = self._records.get(key)
        return record.model_copy(deep=True) if record else None

    async def put(self, request: ResourceRequest) -> ResourceRecord:
        async with self._lock:
            existing = self._records.get(request.key)
            if existing is None:
                record = ResourceRecord(request=request.model_copy(deep=True), version=1)
            else:
                if existing.request.deletion_requested and not request.deletion_requested:
                    request = request.model_copy(update={"deletion_requested": True})
                record = ResourceRecord(
                    request=request.model_copy(deep=True),
                    status=existing.status,
                    version=existing.version + 1,
                )
            self._records[request.key] = record
            return record.model_copy(deep=True)

    async def request_deletion(self, key: str) -> ResourceRecord:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                raise KeyError(key)
            existing.request.deletion_requested = True
            existing.version += 1
            return existing.model_copy(deep=True)

    async def update_status(
        self, key: str, status: ResourceStatus, expected_version: int
    ) -> ResourceRecord:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None or existing.version != expected_version:
                raise StatusConflictError(
                    f"status of {key} was modified concurrently",
                    details={
                        "expected_version": expected_version,
                        "actual_version": existing.version if existing else None,
                    },
                )
            existing.status = status.model_copy(deep=True)
            existing.version += 1
            return existing.model_copy(deep=True)

    async def remove(self, key: str) -> None:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return
            if not existing.removable:
                raise FinalizerPendingError(
                    f"{key} still owes external cleanup",
                    details={"phase": existing.status.phase.value},
                )
            del self._records[key]

    async def list_keys(self, kind: ResourceKind | None = None) -> list[str]:
        return sorted(
            key
            for key, record in self._records.items()
            if kind is None or record.request.kind == kind
        )
