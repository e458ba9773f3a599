from __future__ import annotations

from typing import Protocol

from cloudres.queue.memory import ReconcileQueue
from cloudres.queue.models import ReconcileMessage
from cloudres.queue.sqs import MAX_DELAY_SECONDS, SqsReconcileQueue


class TriggerQueue(Protocol):
    async def enqueue(self, message: ReconcileMessage, delay: float = 0.0) -> str: ...


__all__ = [
    "MAX_DELAY_SECONDS",
    "ReconcileMessage",
    "ReconcileQueue",
    "SqsReconcileQueue",
    "TriggerQueue",
]
