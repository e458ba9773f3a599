from __future__ import annotations

from typing import Any

import structlog
from botocore.exceptions import ClientError

from cloudres.domain.models import ResourceKind, ResourceRecord, ResourceStatus, SnapshotRequest
from cloudres.providers.aws.client import AWS_ERRORS, AWS_STRATEGY, aws_client, error_code
from cloudres.providers.aws.client import translate_error
from cloudres.providers.base import BaseSnapshotProvider, CreateResult, DeletionResult
from cloudres.providers.base import ResourceInstance
from cloudres.providers.naming import build_timestamped_name
from cloudres.providers.registry import register_provider
from cloudres.strategy.resolver import StrategyConfig

logger = structlog.get_logger()

SNAPSHOT_AVAILABLE = "available"


class AWSPostgresSnapshotProvider(BaseSnapshotProvider):
    """Manual RDS snapshots of a Postgres instance."""

    name = "aws-rds-snapshots"
    strategies = frozenset({AWS_STRATEGY})

    def external_name(self, request: SnapshotRequest) -> str:  # type: ignore[override]
        return build_timestamped_name(request)

    async def _create_snapshot(
        self,
        snapshot: SnapshotRequest,
        snapshot_name: str,
        primary: ResourceRecord,
        config: StrategyConfig,
    ) -> CreateResult:
        instance_name = primary.status.external_id
        try:
            async with aws_client("rds", config.region) as rds:
                found = await find_snapshot(rds, snapshot_name)
                if found is None:
                    logger.info(
                        "rds_snapshot_creating",
                        snapshot=snapshot_name,
                        instance=instance_name,
                    )
                    await rds.create_db_snapshot(
                        DBInstanceIdentifier=instance_name,
                        DBSnapshotIdentifier=snapshot_name,
                    )
                    return None, "snapshot started"
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to create rds snapshot {snapshot_name}") from exc

        status = found.get("Status", "")
        if status == SNAPSHOT_AVAILABLE:
            instance = ResourceInstance(
                external_id=found["DBSnapshotIdentifier"],
                connection={
                    "snapshotIdentifier": found["DBSnapshotIdentifier"],
                    "snapshotArn": found.get("DBSnapshotArn", ""),
                },
            )
            return instance, "snapshot created"

        msg = f"current snapshot status: {status}"
        logger.info("rds_snapshot_converging", snapshot=snapshot_name, status=status)
        return None, msg

    async def delete(
        self, snapshot: SnapshotRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        snapshot_name = status.external_id
        if not snapshot_name:
            return DeletionResult("snapshot deleted", completed=True)
        try:
            async with aws_client("rds", config.region) as rds:
                found = await find_snapshot(rds, snapshot_name)
                if found is None:
                    return DeletionResult("snapshot deleted", completed=True)
                if found.get("Status") == "deleting":
                    return DeletionResult("snapshot deletion in progress")
                await rds.delete_db_snapshot(DBSnapshotIdentifier=snapshot_name)
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to delete snapshot {snapshot_name} in aws") from exc

        logger.debug("rds_snapshot_deleting", snapshot=snapshot_name)
        return DeletionResult("snapshot deletion started")


async def find_snapshot(rds: Any, snapshot_name: str) -> dict[str, Any] | None:
    try:
        response = await rds.describe_db_snapshots(DBSnapshotIdentifier=snapshot_name)
    except ClientError as exc:
        if error_code(exc) == "DBSnapshotNotFound":
            return None
        raise
    for found in response.get("DBSnapshots", []):
        if found.get("DBSnapshotIdentifier") == snapshot_name:
            return found
    return None


def _factory(
    *, in_progress_interval: float = 60.0, complete_interval: float = 300.0, **_: Any
) -> AWSPostgresSnapshotProvider:
    return AWSPostgresSnapshotProvider(
        in_progress_interval=in_progress_interval, complete_interval=complete_interval
    )


register_provider(
    AWSPostgresSnapshotProvider.name,
    _factory,
    kinds=[ResourceKind.postgres_snapshot],
    description="RDS manual snapshots",
)
