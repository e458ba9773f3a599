from __future__ import annotations

import asyncio
import heapq
import itertools

from cloudres.queue.models import ReconcileMessage


class ReconcileQueue:
    """Keyed, de-duplicating delayed queue for local workers.

    A key is scheduled at most once; adding it again keeps the earliest ready
    time. A key handed out by ``get`` is in flight until ``done`` is called,
    and re-adds in the meantime are held back until then, so two workers never
    reconcile the same request concurrently.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._heap: list[tuple[float, int, str]] = []
        self._counter = itertools.count()
        self._scheduled: dict[str, tuple[float, ReconcileMessage]] = {}
        self._deferred: dict[str, tuple[float, ReconcileMessage]] = {}
        self._processing: set[str] = set()
        self._closed = False

    async def enqueue(self, message: ReconcileMessage, delay: float = 0.0) -> str:
        ready_at = asyncio.get_running_loop().time() + max(delay, 0.0)
        async with self._cond:
            if message.key in self._processing:
                held = self._deferred.get(message.key)
                if held is None or ready_at < held[0]:
                    self._deferred[message.key] = (ready_at, message)
                return message.key
            self._schedule(message, ready_at)
        return message.key

    async def get(self) -> ReconcileMessage | None:
        """Wait for the next ready message; ``None`` once the queue is shut down."""
        loop = asyncio.get_running_loop()
        async with self._cond:
            while True:
                if self._closed:
                    return None
                self._drop_stale()
                now = loop.time()
                if self._heap and self._heap[0][0] <= now:
                    _, _, key = heapq.heappop(self._heap)
                    _, message = self._scheduled.pop(key)
                    self._processing.add(key)
                    return message
                timeout = self._heap[0][0] - now if self._heap else None
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout)
                except TimeoutError:
                    pass

    async def done(self, key: str) -> None:
        async with self._cond:
            self._processing.discard(key)
            held = self._deferred.pop(key, None)
            if held is not None:
                ready_at, message = held
                self._schedule(message, ready_at)

    async def shutdown(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    def size(self) -> int:
        return len(self._scheduled) + len(self._deferred)

    def in_flight(self) -> int:
        return len(self._processing)

    def _schedule(self, message: ReconcileMessage, ready_at: float) -> None:
        current = self._scheduled.get(message.key)
        if current is not None and current[0] <= ready_at:
            return
        self._scheduled[message.key] = (ready_at, message)
        heapq.heappush(self._heap, (ready_at, next(self._counter), message.key))
        self._cond.notify_all()

    def _drop_stale(self) -> None:
        # entries superseded by an earlier reschedule of the same key
        while self._heap:
            ready_at, _, key = self._heap[0]
            current = self._scheduled.get(key)
            if current is not None and current[0] == ready_at:
                return
            heapq.heappop(self._heap)
