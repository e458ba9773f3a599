"""Tests for secrets.py.

Tests for the AWS Secrets Manager output sink.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from cloudres.core.errors import OutputPublishError
from cloudres.secrets import SecretsManagerOutputSink, _sanitize_secret_id, get_secrets_sink


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "Operation")


def session_with(client):
    session = MagicMock()
    session.client = MagicMock(
        return_value=AsyncMock(
            __aenter__=AsyncMock(return_value=client),
            __aexit__=AsyncMock(return_value=None),
        )
    )
    return session


class TestSanitizeSecretId:
    """Tests for _sanitize_secret_id function."""

    def test_short_string(self):
        assert _sanitize_secret_id("abc") == "***"

    def test_simple_string(self):
        assert _sanitize_secret_id("my-secret") == "my***"

    def test_path_string(self):
        assert _sanitize_secret_id("cloud-resources/orders-db") == "cloud-resources/***"


class TestSecretsManagerOutputSink:
    """Tests for SecretsManagerOutputSink."""

    def test_secret_id_uses_prefix(self):
        sink = SecretsManagerOutputSink(prefix="cloud-resources/")

        assert sink.secret_id("orders-db") == "cloud-resources/orders-db"

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_publish_updates_existing_secret(self, mock_session_class):
        """Test publishing writes a new value to an existing secret."""
        client = AsyncMock()
        client.get_secret_value.return_value = {"SecretString": json.dumps({"host": "old"})}
        mock_session_class.return_value = session_with(client)
        sink = SecretsManagerOutputSink(region="us-east-1", prefix="cr/")

        await sink.publish("orders-db", {"host": "db", "port": "5432"})

        client.put_secret_value.assert_awaited_once_with(
            SecretId="cr/orders-db",
            SecretString=json.dumps({"host": "db", "port": "5432"}, sort_keys=True),
        )
        client.create_secret.assert_not_awaited()
        mock_session_class.assert_called_once_with(region_name="us-east-1")

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_publish_creates_missing_secret(self, mock_session_class):
        """Test publishing creates the secret on first use."""
        client = AsyncMock()
        client.get_secret_value.side_effect = client_error("ResourceNotFoundException")
        mock_session_class.return_value = session_with(client)

        await SecretsManagerOutputSink().publish("orders-db", {"host": "db"})

        client.create_secret.assert_awaited_once_with(
            Name="orders-db", SecretString=json.dumps({"host": "db"})
        )
        client.put_secret_value.assert_not_awaited()

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_publish_skips_unchanged_value(self, mock_session_class):
        """Test republishing identical data does not create a new secret version."""
        client = AsyncMock()
        client.get_secret_value.return_value = {
            "SecretString": json.dumps({"port": "5432", "host": "db"}, sort_keys=True)
        }
        mock_session_class.return_value = session_with(client)

        await SecretsManagerOutputSink().publish("orders-db", {"host": "db", "port": "5432"})

        client.get_secret_value.assert_awaited_once_with(SecretId="orders-db")
        client.put_secret_value.assert_not_awaited()
        client.create_secret.assert_not_awaited()

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_publish_read_failure_raises(self, mock_session_class):
        client = AsyncMock()
        client.get_secret_value.side_effect = client_error("AccessDeniedException")
        mock_session_class.return_value = session_with(client)

        with pytest.raises(OutputPublishError):
            await SecretsManagerOutputSink().publish("orders-db", {"host": "db"})
        client.put_secret_value.assert_not_awaited()

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_publish_failure_raises(self, mock_session_class):
        client = AsyncMock()
        client.put_secret_value.side_effect = client_error("AccessDeniedException")
        mock_session_class.return_value = session_with(client)

        with pytest.raises(OutputPublishError):
            await SecretsManagerOutputSink().publish("orders-db", {"host": "db"})

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_clear_force_deletes(self, mock_session_class):
        client = AsyncMock()
        mock_session_class.return_value = session_with(client)

        await SecretsManagerOutputSink().clear("orders-db")

        client.delete_secret.assert_awaited_once_with(
            SecretId="orders-db", ForceDeleteWithoutRecovery=True
        )

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_clear_missing_secret_is_noop(self, mock_session_class):
        client = AsyncMock()
        client.delete_secret.side_effect = client_error("ResourceNotFoundException")
        mock_session_class.return_value = session_with(client)

        await SecretsManagerOutputSink().clear("orders-db")

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_read(self, mock_session_class):
        client = AsyncMock()
        client.get_secret_value.return_value = {"SecretString": json.dumps({"host": "db"})}
        mock_session_class.return_value = session_with(client)

        assert await SecretsManagerOutputSink().read("orders-db") == {"host": "db"}

    @patch("cloudres.secrets.aioboto3.Session")
    async def test_read_missing_secret(self, mock_session_class):
        client = AsyncMock()
        client.get_secret_value.side_effect = client_error("ResourceNotFoundException")
        mock_session_class.return_value = session_with(client)

        assert await SecretsManagerOutputSink().read("orders-db") is None


class TestGetSecretsSink:
    def test_returns_cached_instance(self):
        get_secrets_sink.cache_clear()

        assert get_secrets_sink("eu-west-1", "cr/") is get_secrets_sink("eu-west-1", "cr/")
