from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudres.core.errors import FinalizerPendingError, StatusConflictError
from cloudres.db import models as db_models
from cloudres.domain.models import (
    SNAPSHOT_KINDS,
    Phase,
    ResourceKind,
    ResourceRecord,
    ResourceRequest,
    ResourceStatus,
    SnapshotRequest,
)


def _to_record(row: db_models.ResourceRecordRow) -> ResourceRecord:
    request_cls = SnapshotRequest if ResourceKind(row.kind) in SNAPSHOT_KINDS else ResourceRequest
    request = request_cls.model_validate(row.request)
    request.deletion_requested = row.deletion_requested
    status = ResourceStatus(
        phase=Phase(row.phase),
        message=row.message,
        provider=row.provider,
        strategy=row.strategy,
        external_id=row.external_id,
        output_ref=row.output_ref,
        finalizer=row.finalizer,
    )
    return ResourceRecord(request=request, status=status, version=row.version)


def _status_values(status: ResourceStatus) -> dict[str, Any]:
    return {
        "phase": status.phase.value,
        "message": status.message,
        "provider": status.provider,
        "strategy": status.strategy,
        "external_id": status.external_id,
        "output_ref": status.output_ref,
        "finalizer": status.finalizer,
    }


class SqlRequestStore:
    """Request records persisted with SQLAlchemy.

    Status writes are ``UPDATE ... WHERE version = :expected``; zero affected
    rows means another writer got there first.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> ResourceRecord | None:
        async with self._session_factory() as session:
            row = await self._get_row(session, key)
            return _to_record(row) if row else None

    async def put(self, request: ResourceRequest) -> ResourceRecord:
        async with self._session_factory() as session:
            row = await self._get_row(session, request.key)
            if row is None:
                row = db_models.ResourceRecordRow(
                    key=request.key,
                    kind=request.kind.value,
                    request=request.model_dump(mode="json"),
                    deletion_requested=request.deletion_requested,
                    version=1,
                    **_status_values(ResourceStatus()),
                )
                session.add(row)
            else:
                row.request = request.model_dump(mode="json")
                row.kind = request.kind.value
                # deletion intent is never cleared
                row.deletion_requested = row.deletion_requested or request.deletion_requested
                row.version += 1
                row.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(row)
            return _to_record(row)

    async def request_deletion(self, key: str) -> ResourceRecord:
        async with self._session_factory() as session:
            row = await self._get_row(session, key)
            if row is None:
                raise KeyError(key)
            row.deletion_requested = True
            row.version += 1
            row.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(row)
            return _to_record(row)

    async def update_status(
        self, key: str, status: ResourceStatus, expected_version: int
    ) -> ResourceRecord:
        async with self._session_factory() as session:
            stmt = (
                update(db_models.ResourceRecordRow)
                .where(
                    db_models.ResourceRecordRow.key == key,
                    db_models.ResourceRecordRow.version == expected_version,
                )
                .values(
                    version=expected_version + 1,
                    updated_at=datetime.utcnow(),
                    **_status_values(status),
                )
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:  # type: ignore[attr-defined]
                await session.rollback()
                raise StatusConflictError(
                    f"status of {key} was modified concurrently",
                    details={"expected_version": expected_version},
                )
            await session.commit()
            row = await self._get_row(session, key)
            assert row is not None
            return _to_record(row)

    async def remove(self, key: str) -> None:
        async with self._session_factory() as session:
            row = await self._get_row(session, key)
            if row is None:
                return
            if row.phase != Phase.deleted.value or row.finalizer:
                raise FinalizerPendingError(
                    f"{key} still owes external cleanup",
                    details={"phase": row.phase},
                )
            await session.delete(row)
            await session.commit()

    async def list_keys(self, kind: ResourceKind | None = None) -> list[str]:
        async with self._session_factory() as session:
            stmt = select(db_models.ResourceRecordRow.key).order_by(db_models.ResourceRecordRow.key)
            if kind is not None:
                stmt = stmt.where(db_models.ResourceRecordRow.kind == kind.value)
            result = await session.execute(stmt)
            return list(result.scalars())

    async def _get_row(
        self, session: AsyncSession, key: str
    ) -> db_models.ResourceRecordRow | None:
        stmt = select(db_models.ResourceRecordRow).where(db_models.ResourceRecordRow.key == key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
