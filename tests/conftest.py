"""Root test configuration."""

import logging

import pytest
import structlog

from cloudres.config import Settings
from cloudres.controllers import build_engines
from cloudres.domain.models import ResourceKind
from cloudres.providers.local import LocalBackend
from cloudres.reconcile import InMemoryOutputSink
from cloudres.store import InMemoryRequestStore
from cloudres.strategy import InMemoryStrategyStore

TIER = "development"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def settings():
    """Settings with short intervals so requeue values are easy to tell apart."""
    return Settings(
        default_region="eu-west-1",
        strategy_store="memory",
        output_sink="memory",
        request_store="memory",
        pending_requeue_seconds=11.0,
        in_progress_requeue_seconds=12.0,
        complete_requeue_seconds=13.0,
        delete_requeue_seconds=14.0,
        error_requeue_seconds=15.0,
        conflict_requeue_seconds=16.0,
        worker_count=2,
    )


@pytest.fixture
def strategy_store():
    """Every kind mapped to the local strategy for the development tier."""
    store = InMemoryStrategyStore()
    for kind in ResourceKind:
        store.set_tier(kind.value, TIER, {"strategy": "local", "region": "eu-west-1"})
    return store


@pytest.fixture
def backend():
    return LocalBackend()


@pytest.fixture
def store():
    return InMemoryRequestStore()


@pytest.fixture
def sink():
    return InMemoryOutputSink()


@pytest.fixture
def engines(settings, store, sink, strategy_store, backend):
    return build_engines(
        settings,
        store=store,
        sink=sink,
        strategy_store=strategy_store,
        local_backend=backend,
    )
