"""SQL persistence for request records."""

from cloudres.db.repositories import SqlRequestStore

__all__ = ["SqlRequestStore"]
