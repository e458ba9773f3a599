from __future__ import annotations

from typing import Any, Protocol

import structlog

from cloudres.core.errors import OutputPublishError

logger = structlog.get_logger()


class OutputSink(Protocol):
    """Key-value target that receives connection data for completed resources."""

    async def publish(self, ref: str, data: dict[str, Any]) -> None: ...

    async def clear(self, ref: str) -> None: ...

    async def read(self, ref: str) -> dict[str, Any] | None: ...


class InMemoryOutputSink:
    """Output sink backed by a dict, for local development and tests."""

    def __init__(self) -> None:
        self._outputs: dict[str, dict[str, Any]] = {}
        self.fail_publish: str | None = None

    async def publish(self, ref: str, data: dict[str, Any]) -> None:
        if self.fail_publish:
            raise OutputPublishError(f"failed to publish output to {ref}: {self.fail_publish}")
        self._outputs[ref] = dict(data)

    async def clear(self, ref: str) -> None:
        self._outputs.pop(ref, None)

    async def read(self, ref: str) -> dict[str, Any] | None:
        data = self._outputs.get(ref)
        return dict(data) if data is not None else None

    def __contains__(self, ref: object) -> bool:
        return ref in self._outputs


async def publish_output(sink: OutputSink, ref: str, data: dict[str, Any]) -> None:
    """Publish ``data`` to ``ref``; any sink failure surfaces as ``OutputPublishError``."""
    if not ref:
        raise OutputPublishError("request has no output reference to publish to")
    try:
        await sink.publish(ref, data)
    except OutputPublishError:
        raise
    except Exception as exc:
        raise OutputPublishError(f"failed to publish output to {ref}: {exc}") from exc


async def invalidate_output(sink: OutputSink, ref: str | None) -> None:
    """Remove previously published output so consumers never read stale data."""
    if not ref:
        return
    try:
        await sink.clear(ref)
    except Exception as exc:
        # the status no longer points at the output either way
        logger.warning("output_clear_failed", output_ref=ref, error=str(exc))
