"""Tests for reconcile/engine.py.

Create-path behaviour of the reconciliation state machine, driven against the
in-process local backend.
"""

from unittest.mock import AsyncMock, patch

import pytest

from cloudres.core.errors import StatusConflictError, TransientProviderError
from cloudres.domain.models import Phase, ResourceKind, ResourceRequest
from cloudres.providers.naming import build_infra_name
from cloudres.reconcile import UNSUPPORTED_STRATEGY

KEY = "default/orders-db"


@pytest.fixture
def request_spec():
    return ResourceRequest(
        name="orders-db",
        kind=ResourceKind.postgres,
        tier="development",
        output_ref="orders-db-connection",
    )


@pytest.fixture
def engine(engines):
    return engines[ResourceKind.postgres]


async def reconcile_to_complete(engine, store, key=KEY, limit=10):
    for _ in range(limit):
        await engine.reconcile(key)
        record = await store.get(key)
        if record.status.phase == Phase.complete:
            return record
    raise AssertionError(f"{key} did not complete within {limit} reconciliations")


class TestCreate:
    """Tests for the create path."""

    async def test_phase_progression(self, engine, store, strategy_store, request_spec):
        """Phases move Pending -> InProgress x N -> Complete and never backwards."""
        strategy_store.set_tier(
            "postgres", "development", {"strategy": "local", "strategy_config": {"converge_after": 2}}
        )
        await store.put(request_spec)
        assert (await store.get(KEY)).status.phase == Phase.pending

        phases = []
        for _ in range(6):
            await engine.reconcile(KEY)
            phases.append((await store.get(KEY)).status.phase)

        assert phases[:4] == [Phase.in_progress] * 3 + [Phase.complete]
        assert phases[4:] == [Phase.complete, Phase.complete]

    async def test_complete_publishes_connection_data(self, engine, store, sink, request_spec):
        """Test connection data is published before the request reads as complete."""
        await store.put(request_spec)

        record = await reconcile_to_complete(engine, store)

        output = await sink.read("orders-db-connection")
        assert output is not None
        assert output["host"] == f"{build_infra_name(request_spec)}.local"
        assert record.status.output_ref == "orders-db-connection"
        assert record.status.external_id == build_infra_name(request_spec)
        assert record.status.provider == "local-postgres"
        assert record.status.strategy == "local"
        assert record.status.finalizer is True

    async def test_repeated_reconcile_is_idempotent(self, engine, store, backend, request_spec):
        """Test reconciling a complete request creates nothing new and writes nothing."""
        await store.put(request_spec)
        record = await reconcile_to_complete(engine, store)

        for _ in range(3):
            result = await engine.reconcile(KEY)
            assert result.requeue

        assert backend.count_calls("create") == 1
        assert backend.names() == [build_infra_name(request_spec)]
        assert (await store.get(KEY)).version == record.version

    async def test_requeue_intervals(self, engine, store, settings, request_spec):
        """Test in-progress and complete requests requeue at the provider intervals."""
        await store.put(request_spec)

        first = await engine.reconcile(KEY)
        second = await engine.reconcile(KEY)

        assert first.requeue_after == settings.in_progress_requeue_seconds
        assert second.requeue_after == settings.complete_requeue_seconds

    async def test_finalizer_persisted_before_create(self, engine, store, backend, request_spec):
        """Test the first create call sees a record already carrying the finalizer."""
        await store.put(request_spec)
        seen = []
        provider = engine.providers.get("local-postgres")
        original = provider.create

        async def spy(request, config):
            seen.append((await store.get(KEY)).status)
            return await original(request, config)

        provider.create = spy
        await engine.reconcile(KEY)

        assert seen[0].finalizer is True
        assert seen[0].external_id == build_infra_name(request_spec)
        assert seen[0].provider == "local-postgres"

    async def test_missing_request_is_ignored(self, engine):
        """Test a trigger for a removed request does nothing and is not requeued."""
        result = await engine.reconcile("default/gone")

        assert not result.requeue


class TestStrategyResolution:
    """Tests for strategy lookup and provider binding."""

    async def test_missing_tier_stays_pending(self, engine, store, backend, settings):
        """Test a tier without configuration waits without calling any provider."""
        await store.put(
            ResourceRequest(
                name="orders-db", kind=ResourceKind.postgres, tier="production", output_ref="x"
            )
        )

        result = await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.pending
        assert record.status.message == "waiting for strategy configuration for tier production"
        assert record.status.provider is None
        assert result.requeue_after == settings.pending_requeue_seconds
        assert backend.calls == []

    async def test_missing_strategy_record_requeues_without_status_change(
        self, engine, store, strategy_store, settings, request_spec
    ):
        """Test an unavailable strategy record is retried without touching status."""
        strategy_store.set(None)
        before = await store.put(request_spec)

        result = await engine.reconcile(KEY)

        after = await store.get(KEY)
        assert after.version == before.version
        assert after.status == before.status
        assert result.requeue_after == settings.error_requeue_seconds

    async def test_unsupported_strategy_fails_without_requeue(
        self, engine, store, strategy_store, backend, request_spec
    ):
        """Test a strategy no provider supports is terminal."""
        strategy_store.set_tier("postgres", "development", {"strategy": "gcp"})
        await store.put(request_spec)

        result = await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.failed
        assert record.status.message == UNSUPPORTED_STRATEGY
        assert record.status.finalizer is False
        assert not result.requeue
        assert backend.calls == []

    async def test_changing_strategy_after_binding_fails(
        self, engine, store, sink, strategy_store, request_spec
    ):
        """Test the bound strategy is frozen and a change is reported."""
        await store.put(request_spec)
        await reconcile_to_complete(engine, store)

        strategy_store.set_tier("postgres", "development", {"strategy": "aws"})
        result = await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.failed
        assert record.status.message == (
            "strategy changed from local to aws, changing strategy is unsupported"
        )
        assert record.status.provider == "local-postgres"
        assert record.status.output_ref is None
        assert "orders-db-connection" not in sink
        assert not result.requeue

    async def test_tier_removed_after_binding_keeps_phase(
        self, engine, store, strategy_store, request_spec
    ):
        """Test a bound request keeps its phase while its tier is missing."""
        await store.put(request_spec)
        await reconcile_to_complete(engine, store)

        strategy_store.set({"postgres": {}})
        result = await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.complete
        assert "unavailable" in record.status.message
        assert result.requeue


class TestFailures:
    """Tests for failure handling on the create path."""

    async def test_provider_error_marks_failed(
        self, engine, store, strategy_store, settings, request_spec
    ):
        """Test a failed create call yields Failed with the provider's message."""
        strategy_store.set_tier(
            "postgres",
            "development",
            {"strategy": "local", "strategy_config": {"fail_create": "quota exceeded"}},
        )
        await store.put(request_spec)

        result = await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.failed
        assert record.status.message == "quota exceeded"
        assert record.status.finalizer is True
        assert result.requeue_after == settings.in_progress_requeue_seconds

    async def test_failure_clears_published_output(
        self, engine, store, sink, strategy_store, request_spec
    ):
        """Test a complete request that later fails no longer exposes its output."""
        await store.put(request_spec)
        await reconcile_to_complete(engine, store)
        assert "orders-db-connection" in sink

        strategy_store.set_tier(
            "postgres",
            "development",
            {"strategy": "local", "strategy_config": {"fail_create": "credentials revoked"}},
        )
        await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.failed
        assert record.status.output_ref is None
        assert "orders-db-connection" not in sink

    async def test_failed_request_recovers(self, engine, store, strategy_store, request_spec):
        """Test a Failed request is retried and can complete."""
        strategy_store.set_tier(
            "postgres",
            "development",
            {"strategy": "local", "strategy_config": {"fail_create": "boom"}},
        )
        await store.put(request_spec)
        await engine.reconcile(KEY)
        assert (await store.get(KEY)).status.phase == Phase.failed

        strategy_store.set_tier("postgres", "development", {"strategy": "local"})
        record = await reconcile_to_complete(engine, store)

        assert record.status.message == "local resource available"

    async def test_publish_failure_marks_failed(self, engine, store, sink, request_spec):
        """Test a request never reads Complete when its output could not be published."""
        sink.fail_publish = "access denied"
        await store.put(request_spec)

        await engine.reconcile(KEY)
        await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.failed
        assert record.status.message.startswith("failed to publish output to orders-db-connection")
        assert record.status.output_ref is None

    async def test_transient_error_keeps_phase(self, engine, store, settings, request_spec):
        """Test throttling leaves the phase untouched and requeues."""
        await store.put(request_spec)
        await engine.reconcile(KEY)
        before = await store.get(KEY)

        provider = engine.providers.get("local-postgres")
        provider.create = AsyncMock(side_effect=TransientProviderError("throttled"))
        result = await engine.reconcile(KEY)

        after = await store.get(KEY)
        assert after.status == before.status
        assert result.requeue_after == settings.error_requeue_seconds


class TestConflicts:
    """Tests for conditional status writes."""

    async def test_conflicting_write_requeues(self, engine, store, settings, request_spec):
        """Test a lost status write is retried instead of overwriting."""
        before = await store.put(request_spec)

        with patch.object(
            store, "update_status", AsyncMock(side_effect=StatusConflictError("conflict"))
        ):
            result = await engine.reconcile(KEY)

        assert result.requeue_after == settings.conflict_requeue_seconds
        assert (await store.get(KEY)).status == before.status

    async def test_stale_version_is_rejected(self, store, request_spec):
        """Test a write based on an old version raises a conflict."""
        record = await store.put(request_spec)
        await store.update_status(KEY, record.status.model_copy(update={"message": "a"}), record.version)

        with pytest.raises(StatusConflictError):
            await store.update_status(
                KEY, record.status.model_copy(update={"message": "b"}), record.version
            )

    async def test_output_withdrawn_when_complete_write_conflicts(
        self, engine, store, sink, settings, request_spec
    ):
        """Test connection data does not outlive a lost Complete write."""
        await store.put(request_spec)
        update_status = store.update_status

        async def deletion_races_complete(key, status, expected_version):
            if status.phase == Phase.complete:
                await store.request_deletion(key)
            return await update_status(key, status, expected_version)

        with patch.object(store, "update_status", side_effect=deletion_races_complete):
            for _ in range(10):
                result = await engine.reconcile(KEY)
                if (await store.get(KEY)).request.deletion_requested:
                    break

        record = await store.get(KEY)
        assert result.requeue_after == settings.conflict_requeue_seconds
        assert record.status.phase == Phase.in_progress
        assert record.status.output_ref is None
        assert await sink.read("orders-db-connection") is None

        await engine.reconcile(KEY)

        record = await store.get(KEY)
        assert record.status.phase == Phase.delete_in_progress
        assert await sink.read("orders-db-connection") is None
