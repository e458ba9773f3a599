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

BUCKET_NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})
# S3 rejects a LocationConstraint for its default region
S3_DEFAULT_REGION = "us-east-1"


class AWSBlobStorageProvider(BaseProvider):
    """Blob storage backed by an S3 bucket."""

    name = "aws-s3"
    strategies = frozenset({AWS_STRATEGY})

    def external_name(self, request: ResourceRequest) -> str:
        return build_infra_name(request)

    async def create(self, request: ResourceRequest, config: StrategyConfig) -> CreateResult:
        bucket = self.external_name(request)
        log = logger.bind(bucket=bucket, region=config.region)
        try:
            async with aws_client("s3", config.region) as s3:
                if not await self._bucket_exists(s3, bucket):
                    log.info("s3_bucket_creating")
                    await self._create_bucket(s3, bucket, config)
                await self._apply_bucket_settings(s3, bucket, config.raw_strategy)
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to reconcile s3 bucket {bucket}") from exc

        log.info("s3_bucket_ready")
        return (
            ResourceInstance(
                external_id=bucket,
                connection={"bucketName": bucket, "bucketRegion": config.region},
            ),
            "blob storage reconcile complete",
        )

    async def delete(
        self, request: ResourceRequest, status: ResourceStatus, config: StrategyConfig
    ) -> DeletionResult:
        bucket = status.external_id or self.external_name(request)
        try:
            async with aws_client("s3", config.region) as s3:
                if not await self._bucket_exists(s3, bucket):
                    return DeletionResult("blob storage deleted", completed=True)
                removed = await self._empty_bucket(s3, bucket)
                logger.info("s3_bucket_deleting", bucket=bucket, objects_removed=removed)
                await s3.delete_bucket(Bucket=bucket)
        except AWS_ERRORS as exc:
            raise translate_error(exc, f"failed to delete s3 bucket {bucket}") from exc
        return DeletionResult("blob storage deletion started")

    async def _bucket_exists(self, s3: Any, bucket: str) -> bool:
        try:
            await s3.head_bucket(Bucket=bucket)
        except ClientError as exc:
            if error_code(exc) in BUCKET_NOT_FOUND_CODES:
                return False
            raise
        return True

    async def _create_bucket(self, s3: Any, bucket: str, config: StrategyConfig) -> None:
        params: dict[str, Any] = {"Bucket": bucket}
        if config.region != S3_DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": config.region}
        try:
            await s3.create_bucket(**params)
        except ClientError as exc:
            # a previous invocation created it between our lookup and this call
            if error_code(exc) != "BucketAlreadyOwnedByYou":
                raise

    async def _apply_bucket_settings(self, s3: Any, bucket: str, raw: dict[str, Any]) -> None:
        await s3.put_public_access_block(
            Bucket=bucket,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": True,
                "IgnorePublicAcls": True,
                "BlockPublicPolicy": True,
                "RestrictPublicBuckets": True,
            },
        )
        await s3.put_bucket_encryption(
            Bucket=bucket,
            ServerSideEncryptionConfiguration={
                "Rules": [
                    {
                        "ApplyServerSideEncryptionByDefault": {
                            "SSEAlgorithm": raw.get("sseAlgorithm", "AES256")
                        }
                    }
                ]
            },
        )
        tags = raw.get("tags") or {}
        if tags:
            await s3.put_bucket_tagging(
                Bucket=bucket,
                Tagging={"TagSet": [{"Key": k, "Value": str(v)} for k, v in sorted(tags.items())]},
            )

    async def _empty_bucket(self, s3: Any, bucket: str) -> int:
        removed = 0
        paginator = s3.get_paginator("list_objects_v2")
        async for page in paginator.paginate(Bucket=bucket):
            objects = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if not objects:
                continue
            await s3.delete_objects(Bucket=bucket, Delete={"Objects": objects, "Quiet": True})
            removed += len(objects)
        return removed


def _factory(
    *, in_progress_interval: float = 60.0, complete_interval: float = 300.0, **_: Any
) -> AWSBlobStorageProvider:
    return AWSBlobStorageProvider(
        in_progress_interval=in_progress_interval, complete_interval=complete_interval
    )


register_provider(
    AWSBlobStorageProvider.name,
    _factory,
    kinds=[ResourceKind.blobstorage],
    description="S3 bucket blob storage",
)
