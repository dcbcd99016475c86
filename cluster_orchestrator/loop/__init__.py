"""
cluster_orchestrator/loop - periodic reconciliation.

Public API:
    ReconcileLoop         - runs ClusterReconciler.reconcile() on a timer
    RECONCILE_INTERVAL_S  - default seconds between passes
"""

from cluster_orchestrator.loop.runner import RECONCILE_INTERVAL_S, ReconcileLoop

__all__ = ["ReconcileLoop", "RECONCILE_INTERVAL_S"]
