from __future__ import annotations

from typing import Any

import structlog
from botocore.exceptions import ClientError

from cloudres.domain.models import ResourceKind, ResourceRequest, ResourceStatus
from cloudres.providers.aws.client import AWS_ERRORS, AWS_STRATEGY, aws_client, error_code
from cloudres.providers.aws.client import translate_error
from cloudres.providers.base import BaseProvider, CreateResult, DeletionResult, ResourceInstance
from cloudres.providers.naming import build_infra_name
from cloudres.providers.registry import register_provider
from cloudres.strategy.resolver import StrategyConfig

logger = structlog.get_logger()

DEFAULT_INSTANCE_PARAMS: dict[str, Any] = {
    "Engine": "postgres",
    "DBInstanceClass": "db.t3.small",
    "AllocatedStorage": 20,
    "DBName": "postgres",
    "MasterUsername": "postgres",
    "ManageMasterUserPassword": True,
    "BackupRetentionPeriod": 7,
    "PubliclyAccessible": False,
    "StorageEncrypted": True,
    "DeletionProtection": True,
}

# Strategy keys handled by the provider instead of being passed to CreateDBInstance
_PROVIDER_KEYS = frozenset({"skipFinalSnapshot", "tags"})


class AWSPostgresProvider(BaseProvider):
    """Postgres backed by an RDS DB instance."""

    name = "aws-rds"
    strategies = frozenset({AWS_STRATEGY})

    def external_name(self, request: ResourceRequest) -> str:
        return build_infra_name(request)

    async def create(self, request: ResourceRequest, config: StrategyConfig) -> CreateResult:
        identifier = self.external_name(request)
        try:
            async with aws_client("rds", config.region) as rds:
                found = await find_db_instance(rds, identifier)
                if found is None:
                    logger.info(
                        "rds_instance_creating", identifier=identifier, region=config.region
                    )
                    await rds.create_db_instance(**self._create_params(identifier, config))
                    return None, "started rds provision"
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to provision rds instance {identifier}") from exc

        status = found["DBInstanceStatus"]
        if status != "available":
            return None, f"rds instance status: {status}"

        endpoint = found.get("Endpoint") or {}
        connection = {
            "host": endpoint.get("Address", ""),
            "port": str(endpoint.get("Port", 5432)),
            "database": found.get("DBName", ""),
            "username": found.get("MasterUsername", ""),
            "passwordSecretArn": (found.get("MasterUserSecret") or {}).get("SecretArn", ""),
        }
        instance = ResourceInstance(external_id=identifier, connection=connection)
        return instance, "rds instance available"

    async def delete(
        self, request: ResourceRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        identifier = status.external_id or self.external_name(request)
        try:
            async with aws_client("rds", config.region) as rds:
                found = await find_db_instance(rds, identifier)
                if found is None:
                    return DeletionResult("rds instance deleted", completed=True)

                instance_status = found["DBInstanceStatus"]
                if instance_status == "deleting":
                    return DeletionResult("rds instance deletion in progress")

                if found.get("DeletionProtection"):
                    logger.info("rds_deletion_protection_disabling", identifier=identifier)
                    await rds.modify_db_instance(
                        DBInstanceIdentifier=identifier,
                        DeletionProtection=False,
                        ApplyImmediately=True,
                    )
                    return DeletionResult("disabling rds deletion protection")

                try:
                    await rds.delete_db_instance(**self._delete_params(identifier, config))
                except ClientError as exc:
                    if error_code(exc) == "InvalidDBInstanceState":
                        return DeletionResult(
                            "waiting for rds instance to become deletable, "
                            f"status: {instance_status}"
                        )
                    raise
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to delete rds instance {identifier}") from exc

        logger.info("rds_instance_deleting", identifier=identifier)
        return DeletionResult("rds instance deletion started")

    def _create_params(self, identifier: str, config: StrategyConfig) -> dict[str, Any]:
        params = dict(DEFAULT_INSTANCE_PARAMS)
        params.update({k: v for k, v in config.raw_strategy.items() if k not in _PROVIDER_KEYS})
        params["DBInstanceIdentifier"] = identifier
        tags = config.raw_strategy.get("tags") or {}
        if tags:
            params["Tags"] = [{"Key": k, "Value": str(v)} for k, v in sorted(tags.items())]
        return params

    def _delete_params(self, identifier: str, config: StrategyConfig) -> dict[str, Any]:
        skip_final = bool(config.raw_strategy.get("skipFinalSnapshot", False))
        params: dict[str, Any] = {
            "DBInstanceIdentifier": identifier,
            "SkipFinalSnapshot": skip_final,
            "DeleteAutomatedBackups": True,
        }
        if not skip_final:
            params["FinalDBSnapshotIdentifier"] = f"{identifier}-final"
        return params


async def find_db_instance(rds: Any, identifier: str) -> dict[str, Any] | None:
    try:
        response = await rds.describe_db_instances(DBInstanceIdentifier=identifier)
    except ClientError as exc:
        if error_code(exc) == "DBInstanceNotFound":
            return None
        raise
    for instance in response.get("DBInstances", []):
        if instance.get("DBInstanceIdentifier") == identifier:
            return instance
    return None


def _factory(
    *, in_progress_interval: float = 60.0, complete_interval: float = 300.0, **_: Any
) -> AWSPostgresProvider:
    return AWSPostgresProvider(
        in_progress_interval=in_progress_interval, complete_interval=complete_interval
    )


register_provider(
    AWSPostgresProvider.name,
    _factory,
    kinds=[ResourceKind.postgres],
    description="RDS Postgres instances",
)
