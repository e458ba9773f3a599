from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(slots=True)
class ReconcileMessage:
    """Trigger for one reconciliation of the request stored under ``key``."""

    key: str
    kind: str
    reason: str = "trigger"

    def to_message_body(self) -> str:
        data = asdict(self)
        return json.dumps({k: v for k, v in data.items() if v is not None}, separators=(",", ":"))

    @classmethod
    def from_message_body(cls, body: str | dict[str, Any]) -> ReconcileMessage:
        data = json.loads(body) if isinstance(body, str) else body
        return cls(key=data["key"], kind=data["kind"], reason=data.get("reason", "trigger"))
