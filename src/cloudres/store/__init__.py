from __future__ import annotations

from cloudres.store.base import RequestStore
from cloudres.store.memory import InMemoryRequestStore

__all__ = ["InMemoryRequestStore", "RequestStore"]
