"""
cluster_orchestrator/control_plane/allocation.py
────────────────────────────────────────────────
allocate_node(): the node creation path used by API callers.

Node.create_with_random_hypervisor() makes one attempt and gives up on
PortExhaustionError. This helper is the caller that decides to retry:
it samples again (possibly landing on a different hypervisor) up to
max_attempts times, then registers the node.

Error handling contract
────────────────────────
  EmptyPoolError:      raised immediately. Re-sampling an empty pool
                       cannot help.
  PortExhaustionError: retried; the last one is re-raised once the
                       attempts run out.
  DuplicateNodeError:  the node already exists. Checked before sampling;
                       if a concurrent call registers the same node first,
                       ports reserved here on another hypervisor are
                       released before re-raising.
"""

from __future__ import annotations

import logging
from typing import Optional

from cluster_orchestrator.control_plane.node import DuplicateNodeError, Node, NodeList, Role
from infra_core.hypervisor import PortExhaustionError
from infra_core.pool import HypervisorMap

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS: int = 3
"""How many hypervisors allocate_node() samples before giving up.
With uniform sampling and one exhausted hypervisor out of n, the chance of
hitting it three times in a row is 1/n³.
"""


def allocate_node(
    cluster_name: str,
    node_name: str,
    role: Role,
    hypervisors: HypervisorMap,
    nodes: NodeList,
    max_attempts: int = MAX_ALLOCATION_ATTEMPTS,
) -> Node:
    """
    Create a node on a random hypervisor and register it in nodes.

    Args:
        cluster_name: Owning cluster.
        node_name:    Node name, unique within the cluster.
        role:         Role of the new node.
        hypervisors:  Pool to sample from and reserve ports on.
        nodes:        Registry the new node is added to.
        max_attempts: Samples tried before PortExhaustionError escapes.

    Returns:
        The registered Node.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
    if (cluster_name, node_name) in nodes:
        raise DuplicateNodeError(cluster_name, node_name)

    last_error: Optional[PortExhaustionError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            node = Node.create_with_random_hypervisor(
                cluster_name, node_name, role, hypervisors
            )
            break
        except PortExhaustionError as err:
            last_error = err
            logger.warning(
                "allocate_node: attempt %d/%d for %s/%s failed: %s",
                attempt, max_attempts, cluster_name, node_name, err,
            )
    else:
        assert last_error is not None
        raise last_error

    try:
        nodes.add(node)
    except DuplicateNodeError:
        # Lost a race with a concurrent allocation of the same node. Ports
        # on the winner's hypervisor are shared by key and stay reserved.
        winner = nodes.get(cluster_name, node_name)
        if winner is None or winner.hypervisor_name != node.hypervisor_name:
            node.release_ports(hypervisors)
        raise
    return node
