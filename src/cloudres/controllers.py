"""
Wiring of one reconcile engine per resource kind.

Everything here is built from ``Settings``: the strategy store, the output
sink and the request store are selected by name, and provider sets are
instantiated from the registry with the configured requeue intervals.
"""

from __future__ import annotations

from typing import Any

import structlog

from cloudres.config import Settings
from cloudres.core.errors import ConfigurationError
from cloudres.db import SqlRequestStore
from cloudres.db.session import get_session_factory, init_engine
from cloudres.domain.models import SNAPSHOT_KINDS, ResourceKind
from cloudres.providers import create_providers
from cloudres.providers.local import LocalBackend
from cloudres.reconcile import (
    InMemoryOutputSink,
    OutputSink,
    ReconcileEngine,
    SnapshotReconcileEngine,
)
from cloudres.secrets import get_secrets_sink
from cloudres.store import InMemoryRequestStore, RequestStore
from cloudres.strategy import (
    FileStrategyStore,
    InMemoryStrategyStore,
    StrategyResolver,
    StrategyStore,
)

logger = structlog.get_logger()


def build_strategy_store(settings: Settings) -> StrategyStore:
    if settings.strategy_store == "file":
        return FileStrategyStore(settings.strategy_config_path)
    if settings.strategy_store == "memory":
        return InMemoryStrategyStore()
    raise ConfigurationError(f"unknown strategy store {settings.strategy_store}")


def build_output_sink(settings: Settings) -> OutputSink:
    if settings.output_sink == "secretsmanager":
        return get_secrets_sink(settings.aws_region, settings.output_secret_prefix)
    if settings.output_sink == "memory":
        return InMemoryOutputSink()
    raise ConfigurationError(f"unknown output sink {settings.output_sink}")


def build_request_store(settings: Settings) -> RequestStore:
    if settings.request_store == "sql":
        init_engine(settings)
        return SqlRequestStore(get_session_factory())
    if settings.request_store == "memory":
        return InMemoryRequestStore()
    raise ConfigurationError(f"unknown request store {settings.request_store}")


def build_engines(
    settings: Settings,
    *,
    store: RequestStore,
    sink: OutputSink,
    strategy_store: StrategyStore,
    local_backend: LocalBackend | None = None,
) -> dict[ResourceKind, ReconcileEngine]:
    """Create an engine for every kind that has at least one provider."""
    resolver = StrategyResolver(strategy_store, settings.default_region)
    backend = local_backend or LocalBackend()
    provider_kwargs: dict[str, Any] = {
        "in_progress_interval": settings.in_progress_requeue_seconds,
        "complete_interval": settings.complete_requeue_seconds,
        "local_backend": backend,
    }

    engines: dict[ResourceKind, ReconcileEngine] = {}
    for kind in ResourceKind:
        providers = create_providers(kind, **provider_kwargs)
        if not len(providers):
            continue
        engine_cls = SnapshotReconcileEngine if kind in SNAPSHOT_KINDS else ReconcileEngine
        engines[kind] = engine_cls(
            kind,
            store=store,
            resolver=resolver,
            providers=providers,
            sink=sink,
            settings=settings,
        )
        logger.debug("engine_built", kind=kind.value, providers=providers.names())
    return engines
