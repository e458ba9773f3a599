from cloudres.workers.pool import ReconcileWorkerPool

__all__ = ["ReconcileWorkerPool"]
