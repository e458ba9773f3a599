"""Bounded pool of asyncio workers draining the reconcile queue."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import structlog

from cloudres.config import Settings
from cloudres.domain.models import ResourceKind
from cloudres.queue.memory import ReconcileQueue
from cloudres.queue.models import ReconcileMessage
from cloudres.reconcile.engine import ReconcileEngine
from cloudres.store.base import RequestStore

logger = structlog.get_logger()


class ReconcileWorkerPool:
    def __init__(
        self,
        engines: Mapping[ResourceKind, ReconcileEngine],
        queue: ReconcileQueue,
        settings: Settings,
    ) -> None:
        self._engines = engines
        self._queue = queue
        self._settings = settings
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        for index in range(max(self._settings.worker_count, 1)):
            task = asyncio.create_task(self._run(), name=f"reconcile-worker-{index}")
            self._tasks.append(task)
        logger.info("worker_pool_started", workers=len(self._tasks))

    async def stop(self) -> None:
        await self._queue.shutdown()
        await asyncio.gather(*self._tasks)
        self._tasks = []
        logger.info("worker_pool_stopped")

    async def resync(self, store: RequestStore) -> int:
        """Enqueue every stored request so nothing depends on a missed trigger."""
        count = 0
        for kind in self._engines:
            for key in await store.list_keys(kind):
                message = ReconcileMessage(key=key, kind=kind.value, reason="resync")
                await self._queue.enqueue(message)
                count += 1
        logger.info("worker_pool_resynced", requests=count)
        return count

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self.process(message)
            finally:
                await self._queue.done(message.key)

    async def process(self, message: ReconcileMessage) -> None:
        """Reconcile one request and schedule its next trigger."""
        try:
            kind = ResourceKind(message.kind)
        except ValueError:
            logger.error("unknown_resource_kind", request=message.key, kind=message.kind)
            return
        engine = self._engines.get(kind)
        if engine is None:
            logger.error("no_engine_for_kind", request=message.key, kind=message.kind)
            return

        try:
            result = await engine.reconcile(message.key)
        except Exception as exc:
            logger.exception("reconcile_crashed", request=message.key, error=str(exc))
            delay: float | None = self._settings.error_requeue_seconds
        else:
            delay = result.requeue_after

        if delay is not None:
            await self._queue.enqueue(
                ReconcileMessage(key=message.key, kind=message.kind, reason="requeue"), delay
            )
