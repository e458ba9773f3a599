from __future__ import annotations

from typing import Protocol

from cloudres.domain.models import ResourceKind, ResourceRecord, ResourceRequest, ResourceStatus


class RequestStore(Protocol):
    """Persisted request records.

    ``update_status`` is a conditional write: it succeeds only while the record
    still carries ``expected_version`` and raises ``StatusConflictError``
    otherwise.
    """

    async def get(self, key: str) -> ResourceRecord | None: ...

    async def put(self, request: ResourceRequest) -> ResourceRecord: ...

    async def request_deletion(self, key: str) -> ResourceRecord: ...

    async def update_status(
        self, key: str, status: ResourceStatus, expected_version: int
    ) -> ResourceRecord: ...

    async def remove(self, key: str) -> None: ...

    async def list_keys(self, kind: ResourceKind | None = None) -> list[str]: ...
