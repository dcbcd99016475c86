"""
cluster_orchestrator/control_plane/reconciler.py
────────────────────────────────────────────────
ClusterReconciler: drives every known node towards its desired state.

What it holds
──────────────
References (not copies) to three registries:

    hypervisor_map : infra_core.HypervisorMap
    cluster_map    : ClusterMap
    node_list      : NodeList

Whoever builds the reconciler owns them. Nodes added to node_list from an
API thread show up in the next reconcile() pass without re-wiring.

reconcile()
────────────
One sweep:

    for node in snapshot(node_list):
        node_reconciler(ClusterReconcilerInquirer(node, self))

Every node is visited exactly once per pass, whatever happened to the
nodes before it. Per-node failures belong to the node reconciler: they
are reported through node status or logs, never through reconcile()'s
return value. If a node reconciler lets an exception escape anyway, it is
logged here and the sweep carries on.

The reconciler keeps no state between passes besides the registries, so
calling reconcile() twice invokes the node reconciler for the same nodes
in the same order.

specs()
────────
Concatenates the YAML streams of all hypervisors, then all clusters, then
all nodes. The first collection that fails to encode raises
SpecsAggregationError naming that collection; nothing partial is returned.
"""

from __future__ import annotations

import logging
from typing import Optional

from cluster_orchestrator.control_plane.cluster import ClusterMap
from cluster_orchestrator.control_plane.inquirer import ClusterReconcilerInquirer
from cluster_orchestrator.control_plane.node import NodeList
from cluster_orchestrator.control_plane.node_reconciler import (
    NodeReconciler,
    reconcile_node,
)
from cluster_orchestrator.shared.codec import EncodingError, Scheme, default_scheme
from infra_core.pool import HypervisorMap

logger = logging.getLogger(__name__)


class SpecsAggregationError(Exception):
    """
    Raised by ClusterReconciler.specs() when one collection fails to encode.

    The underlying EncodingError is chained as __cause__ and names the
    individual entity.

    Attributes:
        collection: "hypervisors", "clusters" or "nodes".
    """

    def __init__(self, collection: str, cause: Exception) -> None:
        self.collection = collection
        super().__init__(f"could not export {collection} specs: {cause}")


class ClusterReconciler:
    """
    Reconciles all nodes known to it.

    Public API:
        reconcile()  → None
        specs()      → str  (raises SpecsAggregationError)
    """

    def __init__(
        self,
        hypervisor_map: HypervisorMap,
        cluster_map: ClusterMap,
        node_list: NodeList,
        node_reconciler: NodeReconciler = reconcile_node,
    ) -> None:
        self._hypervisor_map = hypervisor_map
        self._cluster_map = cluster_map
        self._node_list = node_list
        self._node_reconciler = node_reconciler

    @property
    def hypervisor_map(self) -> HypervisorMap:
        return self._hypervisor_map

    @property
    def cluster_map(self) -> ClusterMap:
        return self._cluster_map

    @property
    def node_list(self) -> NodeList:
        return self._node_list

    def reconcile(self) -> None:
        """Run one reconciliation pass over every node."""
        logger.info("starting reconciliation process")
        visited = 0
        for node in self._node_list:
            inquirer = ClusterReconcilerInquirer(node=node, cluster_reconciler=self)
            try:
                self._node_reconciler(inquirer)
            except Exception:
                logger.exception(
                    "node reconciler failed for %s/%s", node.cluster_name, node.name
                )
            visited += 1
        logger.debug("reconciliation process finished (%d nodes)", visited)

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """Versioned specs of every hypervisor, cluster and node, in that order."""
        scheme = scheme or default_scheme()
        collections = (
            ("hypervisors", self._hypervisor_map),
            ("clusters", self._cluster_map),
            ("nodes", self._node_list),
        )
        res = ""
        for collection, registry in collections:
            try:
                res += registry.specs(scheme)
            except EncodingError as err:
                raise SpecsAggregationError(collection, err) from err
        return res
