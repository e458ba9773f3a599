"""Reconciliation of resource requests against provider backends."""

from cloudres.reconcile.deletion import DeletionProtocol
from cloudres.reconcile.engine import UNSUPPORTED_STRATEGY, ReconcileEngine
from cloudres.reconcile.outputs import (
    InMemoryOutputSink,
    OutputSink,
    invalidate_output,
    publish_output,
)
from cloudres.reconcile.snapshot import SnapshotReconcileEngine
from cloudres.reconcile.status import StatusWriter

__all__ = [
    "DeletionProtocol",
    "InMemoryOutputSink",
    "OutputSink",
    "ReconcileEngine",
    "SnapshotReconcileEngine",
    "StatusWriter",
    "UNSUPPORTED_STRATEGY",
    "invalidate_output",
    "publish_output",
]
