"""
cluster_orchestrator/control_plane - nodes, clusters and the reconcile pass.

Public API:

    Node model:
        Role                    - control-plane / control-plane-ingress
        Node                    - one node bound to one hypervisor
        NodeList                - (cluster, name) → Node registry
        UnrecognizedRoleError   - strict import of an unknown role
        DuplicateNodeError      - NodeList.add() of an existing node

    Clusters:
        Cluster, ClusterMap

    Reconciliation:
        ClusterReconciler          - reconcile() / specs()
        ClusterReconcilerInquirer  - read-only handle given to node reconcilers
        NodeReconciler             - the per-node reconciler protocol
        reconcile_node             - built-in per-node reconciler
        SpecsAggregationError      - specs() failed for one collection

    Helpers:
        allocate_node()         - create + register with retry on port exhaustion
        load_specs()            - YAML stream → registries
"""

from cluster_orchestrator.control_plane.node import (
    DuplicateNodeError,
    Node,
    NodeList,
    Role,
    UnrecognizedRoleError,
)
from cluster_orchestrator.control_plane.cluster import Cluster, ClusterMap
from cluster_orchestrator.control_plane.inquirer import ClusterReconcilerInquirer
from cluster_orchestrator.control_plane.node_reconciler import (
    NodeReconciler,
    reconcile_node,
)
from cluster_orchestrator.control_plane.reconciler import (
    ClusterReconciler,
    SpecsAggregationError,
)
from cluster_orchestrator.control_plane.allocation import allocate_node
from cluster_orchestrator.control_plane.manifests import Registries, load_specs

__all__ = [
    "Role",
    "Node",
    "NodeList",
    "UnrecognizedRoleError",
    "DuplicateNodeError",
    "Cluster",
    "ClusterMap",
    "ClusterReconciler",
    "ClusterReconcilerInquirer",
    "NodeReconciler",
    "reconcile_node",
    "SpecsAggregationError",
    "allocate_node",
    "Registries",
    "load_specs",
]
