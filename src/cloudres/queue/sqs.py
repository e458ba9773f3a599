from __future__ import annotations

import uuid

import aioboto3

from cloudres.config import Settings
from cloudres.queue.models import ReconcileMessage

# SQS rejects longer per-message delays
MAX_DELAY_SECONDS = 900


class SqsReconcileQueue:
    """Send reconciliation triggers to SQS."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def enqueue(self, message: ReconcileMessage, delay: float = 0.0) -> str:
        session = aioboto3.Session(region_name=self._settings.aws_region)
        async with session.client("sqs") as client:
            queue_url = self._settings.sqs_queue_url or ""
            payload = {
                "QueueUrl": queue_url,
                "MessageBody": message.to_message_body(),
            }
            if queue_url.endswith(".fifo"):
                # FIFO queues only support queue-level delays
                payload["MessageGroupId"] = message.key
                payload["MessageDeduplicationId"] = uuid.uuid4().hex
            elif delay > 0:
                payload["DelaySeconds"] = min(int(delay), MAX_DELAY_SECONDS)

            response = await client.send_message(**payload)
        return response["MessageId"]
