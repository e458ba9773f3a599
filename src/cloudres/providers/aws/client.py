"""Shared AWS session handling and error translation for the aws strategy."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError
from botocore.exceptions import EndpointConnectionError, ReadTimeoutError

from cloudres.core.errors import ProviderError, ProvisioningError, TransientProviderError

AWS_STRATEGY = "aws"

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "SlowDown",
        "RequestTimeout",
        "ServiceUnavailable",
        "InternalFailure",
    }
)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def translate_error(exc: Exception, message: str) -> ProviderError:
    """Map a botocore failure onto the engine's transient/recoverable split."""
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return TransientProviderError(message, details={"error": str(exc)})
    if isinstance(exc, ClientError):
        code = error_code(exc)
        if code in THROTTLING_CODES:
            return TransientProviderError(message, details={"code": code})
        return ProvisioningError(message, details={"code": code, "error": str(exc)})
    return ProvisioningError(message, details={"error": str(exc)})


@asynccontextmanager
async def aws_client(service: str, region: str) -> AsyncIterator[Any]:
    """Yield an aioboto3 client for ``service`` in ``region``.

    Credentials come from the standard AWS chain (environment, profile,
    instance role).
    """
    session = aioboto3.Session(region_name=region)
    async with session.client(service) as client:
        yield client


AWS_ERRORS = (ClientError, BotoCoreError)
