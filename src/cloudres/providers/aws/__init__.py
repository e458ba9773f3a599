"""Providers for the ``aws`` deployment strategy."""

from cloudres.providers.aws.blobstorage import AWSBlobStorageProvider
from cloudres.providers.aws.client import AWS_STRATEGY
from cloudres.providers.aws.postgres import AWSPostgresProvider
from cloudres.providers.aws.postgres_snapshot import AWSPostgresSnapshotProvider

__all__ = [
    "AWS_STRATEGY",
    "AWSBlobStorageProvider",
    "AWSPostgresProvider",
    "AWSPostgresSnapshotProvider",
]
