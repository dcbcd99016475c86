"""
cluster_orchestrator/control_plane/inquirer.py
──────────────────────────────────────────────
ClusterReconcilerInquirer: the handle a per-node reconciler receives.

It answers three questions and nothing else:
    which node am I reconciling?           → inquirer.node
    where does it run?                     → inquirer.hypervisor()
    which cluster does it belong to?       → inquirer.cluster()

Lookups go through the reconciler's registries, but the registries
themselves are never handed out. A per-node reconciler that needs to
change something calls methods on the Node or Hypervisor it got back
(e.g. hypervisor.request_port), not on the maps.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from cluster_orchestrator.control_plane.cluster import Cluster
from cluster_orchestrator.control_plane.node import Node
from infra_core.hypervisor import Hypervisor

if TYPE_CHECKING:
    from cluster_orchestrator.control_plane.reconciler import ClusterReconciler


class ClusterReconcilerInquirer:
    """Read-only lookup view bound to one node and one ClusterReconciler."""

    def __init__(self, node: Node, cluster_reconciler: "ClusterReconciler") -> None:
        self._node = node
        self._cluster_reconciler = cluster_reconciler

    @property
    def node(self) -> Node:
        return self._node

    def lookup_hypervisor(self, name: str) -> Optional[Hypervisor]:
        return self._cluster_reconciler.hypervisor_map.get(name)

    def lookup_cluster(self, name: str) -> Optional[Cluster]:
        return self._cluster_reconciler.cluster_map.get(name)

    def hypervisor(self) -> Optional[Hypervisor]:
        """The hypervisor hosting this node, or None if it is not registered."""
        return self.lookup_hypervisor(self._node.hypervisor_name)

    def cluster(self) -> Optional[Cluster]:
        """The cluster this node belongs to, or None if it is not registered."""
        return self.lookup_cluster(self._node.cluster_name)
