"""
cluster_orchestrator/control_plane/node_reconciler.py
─────────────────────────────────────────────────────
The per-node reconciler boundary.

ClusterReconciler does not know how to provision control plane software
on a hypervisor. For each node it calls a NodeReconciler with an inquirer
and moves on. Whatever the callable does (talk to the hypervisor, update
node status, log) is its own business, and so are its errors: a per-node
reconciler reports failures through its own side channel. The cluster
pass never returns them.

Contract for implementations
─────────────────────────────
  • Act on inquirer.node only.
  • Handle and report your own errors. Anything that escapes is logged
    by the cluster pass and otherwise ignored.
  • Passes may overlap in time. If you are not reentrant-safe for the same
    node, guard yourself (or run passes through loop.ReconcileLoop, which
    never overlaps its own passes).

reconcile_node() is the built-in implementation. It provisions nothing;
it checks that the node's bindings resolve and logs what it finds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from cluster_orchestrator.control_plane.inquirer import ClusterReconcilerInquirer

logger = logging.getLogger(__name__)


class NodeReconciler(Protocol):
    def __call__(self, inquirer: "ClusterReconcilerInquirer") -> None:
        ...


def reconcile_node(inquirer: "ClusterReconcilerInquirer") -> None:
    """
    Verify one node's bindings against the registries.

    Warns when:
      1. The node's hypervisor is not registered.
      2. The node's cluster is not registered.
      3. A host port recorded on the node is not reserved for it on the
         hypervisor (e.g. the hypervisor was re-imported without status).
    """
    node = inquirer.node
    logger.debug("reconciling node %s/%s", node.cluster_name, node.name)

    if inquirer.cluster() is None:
        logger.warning(
            "node %s/%s: cluster %s is not registered",
            node.cluster_name, node.name, node.cluster_name,
        )

    hypervisor = inquirer.hypervisor()
    if hypervisor is None:
        logger.warning(
            "node %s/%s: hypervisor %s is not registered",
            node.cluster_name, node.name, node.hypervisor_name,
        )
        return

    reserved = {
        allocation.name: allocation.port
        for allocation in hypervisor.allocated_ports()
        if allocation.cluster == node.cluster_name and allocation.node == node.name
    }
    for resource, port in node.allocated_host_ports.items():
        if reserved.get(resource) != port:
            logger.warning(
                "node %s/%s: port %d (%s) is not reserved on hypervisor %s",
                node.cluster_name, node.name, port, resource, hypervisor.name,
            )
