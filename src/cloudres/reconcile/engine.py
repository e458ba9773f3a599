"""
Reconciliation state machine for resource requests.

Each call to ``ReconcileEngine.reconcile`` reads the persisted record, asks
the strategy resolver and the bound provider about the current state of the
world and writes at most a few conditional status updates. Nothing is carried
over in memory between calls, so a restart between any two invocations is
safe: the next one repeats the same lookup-then-act sequence.

Precedence per invocation:
1. deletion requested -> deletion protocol
2. strategy resolution (pending / transient error / frozen strategy check)
3. provider binding (first supporting provider wins, then permanent)
4. provider create -> Failed / InProgress / Complete
"""

from __future__ import annotations

from typing import Any

import structlog

from cloudres.config import Settings
from cloudres.core.errors import (
    OutputPublishError,
    ProviderError,
    PrimaryResourceError,
    StatusConflictError,
    StrategyResolutionError,
    TransientProviderError,
    UnsupportedStrategyError,
)
from cloudres.domain.models import (
    Phase,
    ReconcileResult,
    ResourceKind,
    ResourceRecord,
    ResourceStatus,
)
from cloudres.logging import bind_request_context
from cloudres.providers.base import CreateResult
from cloudres.providers.registry import ProviderSet
from cloudres.reconcile.deletion import DeletionProtocol
from cloudres.reconcile.outputs import OutputSink, invalidate_output, publish_output
from cloudres.reconcile.status import StatusWriter
from cloudres.store.base import RequestStore
from cloudres.strategy.resolver import PENDING, StrategyConfig, StrategyResolver

logger = structlog.get_logger()

UNSUPPORTED_STRATEGY = "unsupported deployment strategy"


class ReconcileEngine:
    """Drives requests of one resource kind towards their desired state."""

    def __init__(
        self,
        kind: ResourceKind,
        *,
        store: RequestStore,
        resolver: StrategyResolver,
        providers: ProviderSet[Any],
        sink: OutputSink,
        settings: Settings,
    ) -> None:
        self.kind = kind
        self.store = store
        self.resolver = resolver
        self.providers = providers
        self.sink = sink
        self.settings = settings
        self.status_writer = StatusWriter(store, sink)
        self.deletion = DeletionProtocol(
            resolver=resolver,
            providers=providers,
            status_writer=self.status_writer,
            settings=settings,
        )

    async def reconcile(self, key: str) -> ReconcileResult:
        record = await self.store.get(key)
        if record is None:
            # removed after the trigger fired; nothing left to do
            logger.info("request_not_found", request=key)
            return ReconcileResult()

        bind_request_context(key, self.kind.value)
        logger.debug("reconcile_started", phase=record.status.phase.value, version=record.version)
        try:
            if record.request.deletion_requested:
                return await self.deletion.run(record)
            return await self._reconcile_create(record)
        except StatusConflictError as exc:
            logger.info("status_write_conflict", **exc.details)
            return ReconcileResult(requeue_after=self.settings.conflict_requeue_seconds)

    async def _reconcile_create(self, record: ResourceRecord) -> ReconcileResult:
        request = record.request
        status = record.status.model_copy(deep=True)

        try:
            resolution = await self.resolver.resolve(request.kind.value, request.tier)
        except StrategyResolutionError as exc:
            logger.warning("strategy_resolution_failed", error=exc.message, **exc.details)
            return ReconcileResult(requeue_after=self.settings.error_requeue_seconds)

        if resolution is PENDING:
            if status.strategy is None:
                status.phase = Phase.pending
                status.message = f"waiting for strategy configuration for tier {request.tier}"
            else:
                status.message = f"strategy configuration for tier {request.tier} is unavailable"
            await self.status_writer.write(record, status)
            return ReconcileResult(requeue_after=self.settings.pending_requeue_seconds)

        config: StrategyConfig = resolution
        if status.strategy is not None and status.strategy != config.strategy:
            await self.status_writer.fail(
                record,
                status,
                f"strategy changed from {status.strategy} to {config.strategy}, "
                "changing strategy is unsupported",
            )
            return ReconcileResult()

        try:
            provider = self._bound_provider(status, config)
        except UnsupportedStrategyError as exc:
            logger.error("provider_selection_failed", error=exc.message, **exc.details)
            await self.status_writer.fail(record, status, exc.message)
            return ReconcileResult()

        record, status = await self._ensure_finalizer(record, status, provider)

        try:
            instance, message = await self._create(provider, record, status, config)
        except TransientProviderError as exc:
            logger.warning("provider_create_transient_error", error=exc.message, **exc.details)
            return ReconcileResult(requeue_after=self.settings.error_requeue_seconds)
        except (ProviderError, PrimaryResourceError) as exc:
            logger.warning("provider_create_failed", error=exc.message, **exc.details)
            record = await self.status_writer.fail(record, status, exc.message)
            return ReconcileResult(requeue_after=provider.reconcile_interval(record.status))

        if instance is None:
            status.phase = Phase.in_progress
            status.message = message
            record = await self.status_writer.write(record, status)
            return ReconcileResult(requeue_after=provider.reconcile_interval(record.status))

        # connection data must be published before the request reads as complete
        if status.output_ref and status.output_ref != request.output_ref:
            await self.status_writer.clear_outputs(record, status)
        try:
            await publish_output(self.sink, request.output_ref, instance.connection)
        except OutputPublishError as exc:
            record = await self.status_writer.fail(record, status, exc.message)
            return ReconcileResult(requeue_after=provider.reconcile_interval(record.status))

        status.phase = Phase.complete
        status.message = message
        status.output_ref = request.output_ref
        status.external_id = status.external_id or instance.external_id
        try:
            record = await self.status_writer.write(record, status)
        except StatusConflictError:
            # output must not stay readable unless the request reads as complete
            await invalidate_output(self.sink, request.output_ref)
            raise
        return ReconcileResult(requeue_after=provider.reconcile_interval(record.status))

    def _bound_provider(self, status: ResourceStatus, config: StrategyConfig) -> Any:
        """Return the provider bound to this request, binding one if needed."""
        if status.provider is not None:
            provider = self.providers.get(status.provider)
            if provider is None:
                raise UnsupportedStrategyError(
                    f"provider {status.provider} is not registered",
                    details={"provider": status.provider},
                )
            return provider
        provider = self.providers.select(config.strategy)
        if provider is None:
            raise UnsupportedStrategyError(
                UNSUPPORTED_STRATEGY, details={"strategy": config.strategy}
            )
        logger.info("provider_bound", provider=provider.name, strategy=config.strategy)
        status.provider = provider.name
        status.strategy = config.strategy
        return provider

    async def _ensure_finalizer(
        self, record: ResourceRecord, status: ResourceStatus, provider: Any
    ) -> tuple[ResourceRecord, ResourceStatus]:
        """Persist binding, finalizer and external name before the first create call."""
        external_name = provider.external_name(record.request)
        if status.finalizer and (status.external_id or not external_name):
            return record, status
        status.finalizer = True
        if status.external_id is None:
            status.external_id = external_name
        record = await self.status_writer.write(record, status)
        return record, record.status.model_copy(deep=True)

    async def _create(
        self,
        provider: Any,
        record: ResourceRecord,
        status: ResourceStatus,
        config: StrategyConfig,
    ) -> CreateResult:
        return await provider.create(record.request, config)


__all__ = ["ReconcileEngine", "UNSUPPORTED_STRATEGY"]
