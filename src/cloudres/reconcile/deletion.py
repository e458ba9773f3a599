"""
Finalizer-guarded deletion.

The finalizer flag on a request's status means "external cleanup owed". It is
set before the first provider create call and cleared here, and only here,
once the provider confirms the external resource no longer exists. A request
that asks for deletion and carries no finalizer therefore has nothing left
outside.
"""

from __future__ import annotations

from typing import Any

import structlog

from cloudres.config import Settings
from cloudres.core.errors import (
    ProviderError,
    StrategyResolutionError,
    TransientProviderError,
    UnsupportedStrategyError,
)
from cloudres.domain.models import Phase, ReconcileResult, ResourceRecord, ResourceStatus
from cloudres.providers.registry import ProviderSet
from cloudres.reconcile.status import StatusWriter
from cloudres.strategy.resolver import PENDING, StrategyConfig, StrategyResolver

logger = structlog.get_logger()


class DeletionProtocol:
    def __init__(
        self,
        *,
        resolver: StrategyResolver,
        providers: ProviderSet[Any],
        status_writer: StatusWriter,
        settings: Settings,
    ) -> None:
        self._resolver = resolver
        self._providers = providers
        self._status_writer = status_writer
        self._settings = settings

    async def run(self, record: ResourceRecord) -> ReconcileResult:
        request = record.request
        status = record.status.model_copy(deep=True)

        # consumers must not pick up credentials for a resource on its way out,
        # including output published by a create pass whose status write was lost
        await self._status_writer.clear_outputs(record, status)

        if not status.finalizer:
            if status.phase != Phase.deleted:
                status.phase = Phase.deleted
                status.message = "deleted, no external resource was created"
                await self._status_writer.write(record, status)
            return ReconcileResult()

        try:
            resolution = await self._resolver.resolve(request.kind.value, request.tier)
        except StrategyResolutionError as exc:
            logger.warning("strategy_resolution_failed", error=exc.message, **exc.details)
            return ReconcileResult(requeue_after=self._settings.error_requeue_seconds)

        if resolution is PENDING:
            status.phase = Phase.delete_in_progress
            status.message = f"waiting for strategy configuration for tier {request.tier} to delete"
            await self._status_writer.write(record, status)
            return ReconcileResult(requeue_after=self._settings.pending_requeue_seconds)
        config: StrategyConfig = resolution

        try:
            provider = self._bound_provider(status, config)
        except UnsupportedStrategyError as exc:
            logger.error("provider_selection_failed", error=exc.message, **exc.details)
            await self._status_writer.fail(
                record, status, f"{exc.message}, cannot delete external resource"
            )
            return ReconcileResult(requeue_after=self._settings.error_requeue_seconds)

        try:
            result = await provider.delete(request, status, config)
        except TransientProviderError as exc:
            logger.warning("provider_delete_transient_error", error=exc.message, **exc.details)
            return ReconcileResult(requeue_after=self._settings.error_requeue_seconds)
        except ProviderError as exc:
            logger.warning("provider_delete_failed", error=exc.message, **exc.details)
            record = await self._status_writer.fail(record, status, exc.message)
            return ReconcileResult(requeue_after=provider.reconcile_interval(record.status))

        if result.completed:
            await self._status_writer.clear_outputs(record, status)
            status.finalizer = False
            status.phase = Phase.deleted
            status.message = result.message
            await self._status_writer.write(record, status)
            logger.info("external_resource_deleted", provider=provider.name)
            return ReconcileResult()

        logger.info("waiting_on_external_deletion", provider=provider.name, message=result.message)
        status.phase = Phase.delete_in_progress
        status.message = result.message
        await self._status_writer.write(record, status)
        return ReconcileResult(requeue_after=self._settings.delete_requeue_seconds)

    def _bound_provider(self, status: ResourceStatus, config: StrategyConfig) -> Any:
        if status.provider is not None:
            provider = self._providers.get(status.provider)
            if provider is None:
                raise UnsupportedStrategyError(
                    f"provider {status.provider} is not registered",
                    details={"provider": status.provider},
                )
            return provider
        # finalizer without a recorded provider binding
        provider = self._providers.select(config.strategy)
        if provider is None:
            raise UnsupportedStrategyError(
                "unsupported deployment strategy", details={"strategy": config.strategy}
            )
        status.provider = provider.name
        status.strategy = status.strategy or config.strategy
        return provider
