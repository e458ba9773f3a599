"""Tests for providers/registry.py, providers/base.py and providers/naming.py."""

import pytest

from cloudres.domain.models import Phase, ResourceKind, ResourceRequest, ResourceStatus
from cloudres.providers import create_providers, list_providers
from cloudres.providers.aws import (
    AWSBlobStorageProvider,
    AWSPostgresProvider,
    AWSPostgresSnapshotProvider,
)
from cloudres.providers.base import BaseProvider, BaseSnapshotProvider
from cloudres.providers.local import LocalBackend, LocalResourceProvider, LocalSnapshotProvider
from cloudres.providers.naming import build_infra_name, build_timestamped_name
from cloudres.providers.registry import ProviderRegistry, ProviderSet


class FakeProvider(BaseProvider):
    def __init__(self, name, strategies, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        self.strategies = frozenset(strategies)


class TestProviderSet:
    """Tests for provider selection."""

    def test_first_supporting_provider_wins(self):
        first = FakeProvider("first", {"aws"})
        second = FakeProvider("second", {"aws", "local"})
        providers = ProviderSet(ResourceKind.redis, [first, second])

        assert providers.select("aws") is first
        assert providers.select("local") is second
        assert providers.select("gcp") is None

    def test_get_by_name(self):
        provider = FakeProvider("first", {"aws"})
        providers = ProviderSet(ResourceKind.redis, [provider])

        assert providers.get("first") is provider
        assert providers.get("other") is None
        assert providers.names() == ["first"]
        assert len(providers) == 1


class TestProviderRegistry:
    """Tests for ProviderRegistry."""

    def test_register_and_create_for_kind(self):
        registry = ProviderRegistry()
        registry.register(
            "fake",
            lambda *, kind, **kwargs: FakeProvider(f"fake-{kind.value}", {"fake"}, **kwargs),
            kinds=[ResourceKind.redis],
        )

        providers = registry.create_for_kind(ResourceKind.redis, in_progress_interval=5.0)

        assert providers.names() == ["fake-redis"]
        assert len(registry.create_for_kind(ResourceKind.postgres)) == 0

    def test_register_requires_name(self):
        with pytest.raises(ValueError):
            ProviderRegistry().register("", lambda **_: None, kinds=[ResourceKind.redis])

    def test_register_requires_kinds(self):
        with pytest.raises(ValueError):
            ProviderRegistry().register("fake", lambda **_: None, kinds=[])

    def test_create_unknown_provider(self):
        with pytest.raises(KeyError):
            ProviderRegistry().create("missing")


class TestBuiltinProviders:
    """Tests for the providers registered on import."""

    def test_builtin_registrations(self):
        names = {spec.name for spec in list_providers()}

        assert {"aws-s3", "aws-rds", "aws-rds-snapshots", "local"} <= names

    def test_aws_is_tried_before_local(self):
        providers = create_providers(ResourceKind.blobstorage)

        assert providers.names() == ["aws-s3", "local-blobstorage"]
        assert isinstance(providers.select("aws"), AWSBlobStorageProvider)
        assert isinstance(providers.select("local"), LocalResourceProvider)

    def test_postgres_providers(self):
        providers = create_providers(ResourceKind.postgres)

        assert isinstance(providers.select("aws"), AWSPostgresProvider)

    def test_snapshot_kind_gets_snapshot_provider(self):
        providers = create_providers(ResourceKind.postgres_snapshot)

        assert isinstance(providers.select("local"), LocalSnapshotProvider)

    def test_local_only_kinds(self):
        providers = create_providers(ResourceKind.smtp_credentials)

        assert providers.names() == ["local-smtpCredentials"]
        assert providers.select("aws") is None

    def test_intervals_are_passed_through(self):
        providers = create_providers(
            ResourceKind.redis, in_progress_interval=7.0, complete_interval=70.0
        )
        provider = providers.select("local")

        assert provider.reconcile_interval(ResourceStatus(phase=Phase.in_progress)) == 7.0
        assert provider.reconcile_interval(ResourceStatus(phase=Phase.failed)) == 7.0
        assert provider.reconcile_interval(ResourceStatus(phase=Phase.complete)) == 70.0


class TestNaming:
    """Tests for external resource names."""

    def make_request(self, name, namespace="default"):
        return ResourceRequest(
            name=name,
            namespace=namespace,
            kind=ResourceKind.blobstorage,
            tier="development",
            output_ref="out",
        )

    def test_infra_name_is_deterministic(self):
        request = self.make_request("Assets_Bucket")

        name = build_infra_name(request)

        assert name.startswith("crdefaultassetsbucket")
        assert len(name) == len("crdefaultassetsbucket") + 8
        assert name == build_infra_name(self.make_request("Assets_Bucket"))

    @pytest.mark.parametrize(
        ("first", "second"),
        [
            (("db", "team-a"), ("db", "teama")),
            (("c", "ab"), ("bc", "a")),
            (("Assets_Bucket", "default"), ("assetsbucket", "default")),
        ],
    )
    def test_keys_differing_only_in_stripped_characters_get_distinct_names(
        self, first, second
    ):
        first_request = self.make_request(*first)
        second_request = self.make_request(*second)

        assert first_request.key != second_request.key
        assert build_infra_name(first_request) != build_infra_name(second_request)

    def test_long_names_are_shortened_with_hash(self):
        first = self.make_request("a" * 60)
        second = self.make_request("a" * 61)

        assert len(build_infra_name(first)) == 40
        assert build_infra_name(first) != build_infra_name(second)

    def test_timestamped_name_fits_length(self):
        request = self.make_request("b" * 60)

        name = build_timestamped_name(request)

        assert len(name) == 40
        assert name.endswith(request.created_at.strftime("-%Y%m%d%H%M%S"))


class TestBaseSnapshotProvider:
    """Tests for the snapshot provider base class."""

    def test_missing_snapshot_hook_fails_at_instantiation(self):
        class IncompleteSnapshotProvider(BaseSnapshotProvider):
            name = "incomplete"
            strategies = frozenset({"local"})

        with pytest.raises(TypeError):
            IncompleteSnapshotProvider()

    def test_builtin_snapshot_providers_are_concrete(self):
        assert isinstance(AWSPostgresSnapshotProvider(), BaseSnapshotProvider)
        assert isinstance(
            LocalSnapshotProvider(ResourceKind.postgres_snapshot, LocalBackend()), BaseSnapshotProvider
        )
