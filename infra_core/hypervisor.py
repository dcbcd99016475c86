"""
infra_core/hypervisor.py
────────────────────────
A Hypervisor: one execution host and the ports it has handed out.

What a hypervisor tracks
─────────────────────────
  name            → unique within the HypervisorMap.
  ip_address      → where the host is reachable. Opaque to the core.
  public          → whether the host is reachable from outside the fabric.
  port range      → [port_range_low, port_range_high], inclusive.
  reservations    → one PortAllocation per (cluster, node, resource).

Port reservation
─────────────────
request_port() hands out the LOWEST free port in range. A port that is
held by one (cluster, node, resource) owner is never returned to another
owner until release_port() gives it back.

Asking again for a key that already holds a port returns that same port.
This keeps node creation retry-safe: re-running an allocation for the
same node cannot leak a second port.

Thread safety
──────────────
Each hypervisor owns a threading.Lock around its reservation list, so
"find a free port, reserve it" is atomic. Two node creations landing on
the same hypervisor at the same time get different ports.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from cluster_orchestrator.shared import models as v1alpha1
from cluster_orchestrator.shared.codec import EncodingError, Scheme, default_scheme

logger = logging.getLogger(__name__)

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_PORT_RANGE_LOW: int = 30000
"""First port a hypervisor hands out when no range is configured."""

DEFAULT_PORT_RANGE_HIGH: int = 32767
"""Last port (inclusive) a hypervisor hands out when no range is configured."""

APISERVER_RESOURCE: str = "apiserver"
"""Resource name of the port every control plane node needs."""

MIN_PORT: int = 1
"""Lowest port a range may start at."""

MAX_PORT: int = 65535
"""Highest port a range may end at."""


class PortExhaustionError(Exception):
    """
    Raised when a hypervisor has no free port left in its range.

    Caller contract:
        Node creation propagates this untouched. The caller may retry
        against a different hypervisor (see control_plane.allocation).

    Attributes:
        hypervisor: Name of the exhausted hypervisor.
        cluster:    Cluster of the node that asked.
        node:       Node that asked.
        resource:   Resource the port was requested for.
    """

    def __init__(self, hypervisor: str, cluster: str, node: str, resource: str) -> None:
        self.hypervisor = hypervisor
        self.cluster = cluster
        self.node = node
        self.resource = resource
        super().__init__(
            f"hypervisor {hypervisor!r} has no free port for "
            f"{resource!r} of node {cluster}/{node}"
        )


class PortAllocation(BaseModel):
    """One reserved port and the (cluster, node, resource) that holds it."""
    cluster: str
    node: str
    name: str = Field(APISERVER_RESOURCE, description="Resource the port serves")
    port: int = Field(..., ge=MIN_PORT, le=MAX_PORT)

    def owned_by(self, cluster: str, node: str, name: str) -> bool:
        return self.cluster == cluster and self.node == node and self.name == name


class Hypervisor:
    """
    An execution host able to run control plane nodes.

    Public API:
        request_port(cluster, node, resource)  → int
        reserve_port(cluster, node, resource)  → (int, created)
        release_port(cluster, node, resource)  → None
        allocated_ports()                      → List[PortAllocation]
        export() / from_v1alpha1() / specs()   → versioned round trip
    """

    def __init__(
        self,
        name: str,
        ip_address: str = "",
        public: bool = False,
        port_range_low: int = DEFAULT_PORT_RANGE_LOW,
        port_range_high: int = DEFAULT_PORT_RANGE_HIGH,
        allocated_ports: Optional[List[PortAllocation]] = None,
    ) -> None:
        """
        Raises:
            ValueError: the range is empty or leaves MIN_PORT-MAX_PORT.
            ValueError: two reservations collide on a port or on a key.
            ValueError: a reservation lies outside the range.
        """
        if port_range_low > port_range_high:
            raise ValueError(
                f"hypervisor {name!r}: port range {port_range_low}-{port_range_high} is empty"
            )
        if port_range_low < MIN_PORT or port_range_high > MAX_PORT:
            raise ValueError(
                f"hypervisor {name!r}: port range {port_range_low}-{port_range_high} "
                f"is outside {MIN_PORT}-{MAX_PORT}"
            )
        self.name = name
        self.ip_address = ip_address
        self.public = public
        self.port_range_low = port_range_low
        self.port_range_high = port_range_high
        self._allocated: List[PortAllocation] = list(allocated_ports or [])
        self._check_reservations()
        self._lock = threading.Lock()

    def _check_reservations(self) -> None:
        ports = set()
        keys = set()
        for allocation in self._allocated:
            owner = f"{allocation.cluster}/{allocation.node} ({allocation.name})"
            if not self.port_range_low <= allocation.port <= self.port_range_high:
                raise ValueError(
                    f"hypervisor {self.name!r}: port {allocation.port} of {owner} "
                    f"is outside {self.port_range_low}-{self.port_range_high}"
                )
            if allocation.port in ports:
                raise ValueError(
                    f"hypervisor {self.name!r}: port {allocation.port} of {owner} "
                    f"is already reserved"
                )
            key = (allocation.cluster, allocation.node, allocation.name)
            if key in keys:
                raise ValueError(f"hypervisor {self.name!r}: {owner} holds two ports")
            ports.add(allocation.port)
            keys.add(key)

    def __repr__(self) -> str:
        return (
            f"Hypervisor(name={self.name!r}, ports={self.port_range_low}-"
            f"{self.port_range_high}, allocated={len(self._allocated)})"
        )

    # ── Port reservation ──────────────────────────────────────────────────────

    def request_port(
        self,
        cluster_name: str,
        node_name: str,
        resource_name: str = APISERVER_RESOURCE,
    ) -> int:
        """
        Reserve a port for (cluster_name, node_name, resource_name).

        Returns:
            The reserved port. If the key already holds a port, that port.

        Raises:
            PortExhaustionError: every port in range is already held.
        """
        port, _ = self.reserve_port(cluster_name, node_name, resource_name)
        return port

    def reserve_port(
        self,
        cluster_name: str,
        node_name: str,
        resource_name: str = APISERVER_RESOURCE,
    ) -> Tuple[int, bool]:
        """
        Like request_port(), but also says whether this call made the reservation.

        Returns:
            (port, created). created is False when the key already held
            a port before the call. Both are decided under one lock hold, so
            a caller rolling back only releases what it created itself.
        """
        with self._lock:
            for allocation in self._allocated:
                if allocation.owned_by(cluster_name, node_name, resource_name):
                    return allocation.port, False

            taken = {allocation.port for allocation in self._allocated}
            for port in range(self.port_range_low, self.port_range_high + 1):
                if port in taken:
                    continue
                self._allocated.append(
                    PortAllocation(
                        cluster=cluster_name,
                        node=node_name,
                        name=resource_name,
                        port=port,
                    )
                )
                logger.debug(
                    "hypervisor %s: reserved port %d for %s/%s (%s)",
                    self.name, port, cluster_name, node_name, resource_name,
                )
                return port, True

        raise PortExhaustionError(self.name, cluster_name, node_name, resource_name)

    def release_port(
        self,
        cluster_name: str,
        node_name: str,
        resource_name: str = APISERVER_RESOURCE,
    ) -> None:
        """Give a reserved port back. Releasing an unheld port is a no-op."""
        with self._lock:
            for idx, allocation in enumerate(self._allocated):
                if allocation.owned_by(cluster_name, node_name, resource_name):
                    del self._allocated[idx]
                    logger.debug(
                        "hypervisor %s: released port %d of %s/%s (%s)",
                        self.name, allocation.port, cluster_name, node_name, resource_name,
                    )
                    return

    def held_port(
        self,
        cluster_name: str,
        node_name: str,
        resource_name: str = APISERVER_RESOURCE,
    ) -> Optional[int]:
        """The port currently reserved for the key, or None."""
        with self._lock:
            for allocation in self._allocated:
                if allocation.owned_by(cluster_name, node_name, resource_name):
                    return allocation.port
        return None

    def allocated_ports(self) -> List[PortAllocation]:
        """Snapshot of the current reservations, in reservation order."""
        with self._lock:
            return [allocation.model_copy() for allocation in self._allocated]

    # ── Versioned representation ──────────────────────────────────────────────

    @classmethod
    def from_v1alpha1(cls, hypervisor: v1alpha1.Hypervisor) -> "Hypervisor":
        """
        Rebuild a hypervisor, reservations included, from its versioned form.

        Raises:
            ValueError: the range or the recorded reservations are unusable
                        (see __init__). Two owners never come back sharing a port.
        """
        return cls(
            name=hypervisor.metadata.name,
            ip_address=hypervisor.spec.ip_address,
            public=hypervisor.spec.public,
            port_range_low=hypervisor.spec.port_range.low,
            port_range_high=hypervisor.spec.port_range.high,
            allocated_ports=[
                PortAllocation(
                    cluster=allocation.cluster,
                    node=allocation.node,
                    name=allocation.name,
                    port=allocation.port,
                )
                for allocation in hypervisor.status.allocated_ports
            ],
        )

    def export(self) -> v1alpha1.Hypervisor:
        return v1alpha1.Hypervisor(
            metadata=v1alpha1.ObjectMeta(name=self.name),
            spec=v1alpha1.HypervisorSpec(
                ip_address=self.ip_address,
                public=self.public,
                port_range=v1alpha1.HypervisorPortRange(
                    low=self.port_range_low,
                    high=self.port_range_high,
                ),
            ),
            status=v1alpha1.HypervisorStatus(
                allocated_ports=[
                    v1alpha1.HypervisorPortAllocation(
                        cluster=allocation.cluster,
                        node=allocation.node,
                        name=allocation.name,
                        port=allocation.port,
                    )
                    for allocation in self.allocated_ports()
                ],
            ),
        )

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """YAML document of this hypervisor. Raises EncodingError."""
        scheme = scheme or default_scheme()
        try:
            versioned = self.export()
        except ValidationError as err:
            raise EncodingError("Hypervisor", self.name, str(err)) from err
        return scheme.encode(versioned, v1alpha1.INFRA_GROUP_VERSION, name=self.name)
