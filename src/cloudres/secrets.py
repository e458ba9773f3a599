from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from cloudres.core.errors import OutputPublishError

logger = structlog.get_logger()


def _sanitize_secret_id(secret_id: str) -> str:
    """Keep enough of a secret id for debugging without logging it in full."""
    if len(secret_id) <= 3:
        return "***"
    if "/" in secret_id:
        return secret_id.split("/", 1)[0] + "/***"
    return secret_id[:2] + "***"


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


class SecretsManagerOutputSink:
    """Publishes connection data as JSON secrets in AWS Secrets Manager."""

    def __init__(self, region: str = "eu-west-1", prefix: str = "") -> None:
        self._region = region
        self._prefix = prefix

    def secret_id(self, ref: str) -> str:
        return f"{self._prefix}{ref}"

    async def publish(self, ref: str, data: dict[str, Any]) -> None:
        """Write ``data`` to the secret for ``ref``, skipping the write when unchanged.

        Every ``put_secret_value`` creates a new secret version, and a Complete
        request republishes on each periodic reconcile.
        """
        secret_id = self.secret_id(ref)
        payload = json.dumps(data, sort_keys=True)
        session = aioboto3.Session(region_name=self._region)
        try:
            async with session.client("secretsmanager") as client:
                try:
                    response = await client.get_secret_value(SecretId=secret_id)
                except ClientError as exc:
                    if _error_code(exc) != "ResourceNotFoundException":
                        raise
                    await client.create_secret(Name=secret_id, SecretString=payload)
                else:
                    if response.get("SecretString") == payload:
                        logger.debug("output_unchanged", secret_id=_sanitize_secret_id(secret_id))
                        return
                    await client.put_secret_value(SecretId=secret_id, SecretString=payload)
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "output_publish_failed",
                secret_id=_sanitize_secret_id(secret_id),
                error=str(exc),
            )
            raise OutputPublishError(f"failed to publish output to {ref}: {exc}") from exc
        logger.info("output_published", secret_id=_sanitize_secret_id(secret_id), keys=len(data))

    async def clear(self, ref: str) -> None:
        secret_id = self.secret_id(ref)
        session = aioboto3.Session(region_name=self._region)
        try:
            async with session.client("secretsmanager") as client:
                await client.delete_secret(SecretId=secret_id, ForceDeleteWithoutRecovery=True)
        except (ClientError, BotoCoreError) as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                return
            raise OutputPublishError(f"failed to clear output {ref}: {exc}") from exc
        logger.info("output_cleared", secret_id=_sanitize_secret_id(secret_id))

    async def read(self, ref: str) -> dict[str, Any] | None:
        secret_id = self.secret_id(ref)
        session = aioboto3.Session(region_name=self._region)
        try:
            async with session.client("secretsmanager") as client:
                response = await client.get_secret_value(SecretId=secret_id)
        except (ClientError, BotoCoreError) as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                return None
            logger.error(
                "output_read_failed", secret_id=_sanitize_secret_id(secret_id), error=str(exc)
            )
            raise
        secret_string = response.get("SecretString")
        if not secret_string:
            return None
        return json.loads(secret_string)


@lru_cache
def get_secrets_sink(region: str = "eu-west-1", prefix: str = "") -> SecretsManagerOutputSink:
    return SecretsManagerOutputSink(region, prefix)
