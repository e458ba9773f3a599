from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import structlog

from cloudres.config import Settings, get_settings
from cloudres.controllers import (
    build_engines,
    build_output_sink,
    build_request_store,
    build_strategy_store,
)
from cloudres.domain.models import ResourceKind
from cloudres.logging import configure_logging
from cloudres.queue import ReconcileMessage, SqsReconcileQueue, TriggerQueue
from cloudres.reconcile.engine import ReconcileEngine

logger = structlog.get_logger()


async def process_message(
    message: ReconcileMessage,
    engines: Mapping[ResourceKind, ReconcileEngine],
    requeue: TriggerQueue,
) -> None:
    engine = engines.get(ResourceKind(message.kind))
    if engine is None:
        raise LookupError(f"no reconcile engine for kind {message.kind}")

    result = await engine.reconcile(message.key)
    if result.requeue_after is not None:
        await requeue.enqueue(
            ReconcileMessage(key=message.key, kind=message.kind, reason="requeue"),
            result.requeue_after,
        )


async def handle_event(
    event: dict[str, Any],
    engines: Mapping[ResourceKind, ReconcileEngine],
    requeue: TriggerQueue,
) -> dict[str, Any]:
    """
    Handle SQS event with partial batch failure support.
    Returns batchItemFailures for failed messages.
    """
    records = event.get("Records", [])
    failed_message_ids = []

    for record in records:
        message_id = record.get("messageId")
        try:
            message = ReconcileMessage.from_message_body(json.loads(record["body"]))
            await process_message(message, engines, requeue)
        except Exception as exc:
            logger.error(
                "message_processing_failed",
                message_id=message_id,
                error=str(exc),
            )
            failed_message_ids.append(message_id)

    return {"batchItemFailures": [{"itemIdentifier": msg_id} for msg_id in failed_message_ids]}


def build_handler_engines(settings: Settings) -> dict[ResourceKind, ReconcileEngine]:
    return build_engines(
        settings,
        store=build_request_store(settings),
        sink=build_output_sink(settings),
        strategy_store=build_strategy_store(settings),
    )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else "INFO")

    logger.info(
        "lambda_invoked",
        request_id=getattr(context, "aws_request_id", "unknown"),
        record_count=len(event.get("Records", [])),
    )

    engines = build_handler_engines(settings)
    return asyncio.run(handle_event(event, engines, SqsReconcileQueue(settings)))
