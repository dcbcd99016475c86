"""
cluster_orchestrator/control_plane/node.py
──────────────────────────────────────────
Node: one control plane (or control plane ingress) instance bound to a
hypervisor, and NodeList, the registry of all of them.

How a node comes to exist
──────────────────────────
1. Node.create_with_random_hypervisor(...)
     Fresh node. Samples a hypervisor from the pool and reserves one
     host port per resource (by default just "apiserver").

2. Node.from_v1alpha1(versioned)
     Reconstructed node. Ports were reserved when the node was first
     created; the versioned status already records them, so the pool
     is not touched.

A node keeps its hypervisor for life. Moving it is a different
operation, not something reconciliation does on its own.

How a node goes away
─────────────────────
NodeList.remove() drops the node AND returns its ports to the owning
hypervisor. Without the release the ports would be held forever.

Role mapping
─────────────
Role (operational) and v1alpha1.NodeRole (wire) are separate enums joined
by explicit tables. An unrecognized wire value does not fail the import:
the node comes back with role=None and a warning is logged. Pass
strict=True to get UnrecognizedRoleError instead.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, conint

from cluster_orchestrator.shared import models as v1alpha1
from cluster_orchestrator.shared.codec import EncodingError, Scheme, default_scheme
from infra_core.hypervisor import APISERVER_RESOURCE, MAX_PORT, MIN_PORT

if TYPE_CHECKING:
    from infra_core.pool import HypervisorMap

logger = logging.getLogger(__name__)

HostPort = conint(ge=MIN_PORT, le=MAX_PORT)


class Role(str, Enum):
    """
    What a node does for its cluster.

    CONTROL_PLANE          → runs the cluster's control plane components.
    CONTROL_PLANE_INGRESS  → fronts the control plane instances.
    """
    CONTROL_PLANE = "control-plane"
    CONTROL_PLANE_INGRESS = "control-plane-ingress"


_ROLE_TO_VERSIONED: Dict[Role, v1alpha1.NodeRole] = {
    Role.CONTROL_PLANE: v1alpha1.NodeRole.CONTROL_PLANE,
    Role.CONTROL_PLANE_INGRESS: v1alpha1.NodeRole.CONTROL_PLANE_INGRESS,
}

_VERSIONED_TO_ROLE: Dict[str, Role] = {
    versioned.value: role for role, versioned in _ROLE_TO_VERSIONED.items()
}


class UnrecognizedRoleError(Exception):
    """
    Raised by Node.from_v1alpha1(strict=True) for an unknown spec.role.

    Only raised in strict mode. The default import is lenient and leaves
    the role unset instead.

    Attributes:
        node:  Name of the node being imported.
        value: The role string that did not match any known role.
    """

    def __init__(self, node: str, value: str) -> None:
        self.node = node
        self.value = value
        super().__init__(f"node {node!r} has unrecognized role {value!r}")


class DuplicateNodeError(Exception):
    """Raised when a node with the same (cluster, name) is already registered."""

    def __init__(self, cluster: str, name: str) -> None:
        self.cluster = cluster
        self.name = name
        super().__init__(f"node {cluster}/{name} already exists")


class Node(BaseModel):
    """
    In-memory representation of a control plane node.

    Fields:
        name                 → unique within its cluster.
        cluster_name         → owning cluster. (cluster_name, name) is the identity.
        role                 → Role, or None when imported with an unknown role.
                               Frozen once set.
        hypervisor_name      → the hypervisor hosting this node.
        allocated_host_ports → resource name → port reserved on hypervisor_name.
    """
    model_config = ConfigDict(validate_assignment=True)

    name: str
    cluster_name: str
    role: Optional[Role] = Field(None, frozen=True)
    hypervisor_name: str
    allocated_host_ports: Dict[str, HostPort] = Field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.cluster_name, self.name)

    # ── Construction ──────────────────────────────────────────────────────────

    @classmethod
    def create_with_random_hypervisor(
        cls,
        cluster_name: str,
        node_name: str,
        role: Role,
        hypervisors: "HypervisorMap",
        resources: Sequence[str] = (APISERVER_RESOURCE,),
    ) -> "Node":
        """
        Place a new node on a randomly sampled hypervisor.

        Steps:
          1. hypervisors.sample()           → EmptyPoolError propagates.
          2. reserve_port() per resource   → PortExhaustionError propagates.
          3. Build the node with the sampled binding and its ports.

        No re-sampling happens here. If a port request fails, every port
        already reserved by this call is released before the error leaves,
        so the hypervisor's reservations are exactly as they were.
        """
        hypervisor = hypervisors.sample()
        allocated: Dict[str, int] = {}
        reserved_here: List[str] = []
        try:
            for resource in resources:
                port, created = hypervisor.reserve_port(cluster_name, node_name, resource)
                if created:
                    reserved_here.append(resource)
                allocated[resource] = port
        except Exception:
            # Ports held before this call are not ours to give back.
            for resource in reserved_here:
                hypervisor.release_port(cluster_name, node_name, resource)
            raise

        logger.info(
            "node %s/%s placed on hypervisor %s (ports: %s)",
            cluster_name, node_name, hypervisor.name, allocated,
        )
        return cls(
            name=node_name,
            cluster_name=cluster_name,
            role=role,
            hypervisor_name=hypervisor.name,
            allocated_host_ports=allocated,
        )

    @classmethod
    def from_v1alpha1(cls, node: v1alpha1.Node, strict: bool = False) -> "Node":
        """
        Build a node from its versioned form. No side effects on the pool.

        Raises:
            UnrecognizedRoleError: only when strict=True.
        """
        role: Optional[Role] = None
        if node.spec.role:
            role = _VERSIONED_TO_ROLE.get(node.spec.role)
            if role is None:
                if strict:
                    raise UnrecognizedRoleError(node.metadata.name, node.spec.role)
                logger.warning(
                    "node %s/%s: unrecognized role %r, leaving role unset",
                    node.spec.cluster, node.metadata.name, node.spec.role,
                )
        return cls(
            name=node.metadata.name,
            cluster_name=node.spec.cluster,
            role=role,
            hypervisor_name=node.spec.hypervisor,
            allocated_host_ports={
                host_port.name: host_port.port
                for host_port in node.status.allocated_host_ports
            },
        )

    # ── Export ────────────────────────────────────────────────────────────────

    def export(self) -> v1alpha1.Node:
        """The versioned form. Inverse of from_v1alpha1()."""
        role = _ROLE_TO_VERSIONED[self.role].value if self.role is not None else ""
        return v1alpha1.Node(
            metadata=v1alpha1.ObjectMeta(name=self.name),
            spec=v1alpha1.NodeSpec(
                hypervisor=self.hypervisor_name,
                cluster=self.cluster_name,
                role=role,
            ),
            status=v1alpha1.NodeStatus(
                allocated_host_ports=[
                    v1alpha1.NodeHostPortAllocation(name=name, port=port)
                    for name, port in self.allocated_host_ports.items()
                ],
            ),
        )

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """YAML document of this node. Raises EncodingError naming the node."""
        scheme = scheme or default_scheme()
        try:
            versioned = self.export()
        except ValidationError as err:
            raise EncodingError("Node", self.name, str(err)) from err
        return scheme.encode(versioned, v1alpha1.CLUSTER_GROUP_VERSION, name=self.name)

    # ── Teardown ──────────────────────────────────────────────────────────────

    def release_ports(self, hypervisors: "HypervisorMap") -> None:
        """Give every host port back to the hypervisor hosting this node."""
        hypervisor = hypervisors.get(self.hypervisor_name)
        if hypervisor is None:
            logger.warning(
                "node %s/%s: hypervisor %s not found, ports %s not released",
                self.cluster_name, self.name, self.hypervisor_name,
                self.allocated_host_ports,
            )
            return
        for resource in self.allocated_host_ports:
            hypervisor.release_port(self.cluster_name, self.name, resource)


class NodeList:
    """
    Registry of nodes keyed by (cluster_name, name).

    Iteration walks a snapshot, so a reconciliation pass is not disturbed
    by nodes being added or removed from another thread.
    """

    def __init__(self, nodes: Optional[List[Node]] = None) -> None:
        self._nodes: Dict[Tuple[str, str], Node] = {}
        self._lock = threading.Lock()
        for node in nodes or []:
            self.add(node)

    def add(self, node: Node) -> None:
        with self._lock:
            if node.key in self._nodes:
                raise DuplicateNodeError(node.cluster_name, node.name)
            self._nodes[node.key] = node

    def get(self, cluster_name: str, name: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get((cluster_name, name))

    def remove(
        self,
        cluster_name: str,
        name: str,
        hypervisors: "HypervisorMap",
    ) -> Optional[Node]:
        """Unregister a node and release its ports. Unknown nodes are a no-op."""
        with self._lock:
            node = self._nodes.pop((cluster_name, name), None)
        if node is None:
            return None
        node.release_ports(hypervisors)
        logger.info("node %s/%s removed", cluster_name, name)
        return node

    def __iter__(self) -> Iterator[Node]:
        with self._lock:
            snapshot = list(self._nodes.values())
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._nodes

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """All nodes as a multi-document YAML stream."""
        scheme = scheme or default_scheme()
        return "".join(f"---\n{node.specs(scheme)}" for node in self)
