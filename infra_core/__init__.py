"""
infra_core - hypervisor pool and host port allocation.

Public API:
    Hypervisor          - one execution host and its port reservations
    HypervisorMap       - the pool, with uniform random sample()
    PortAllocation      - one reserved (cluster, node, resource) → port
    EmptyPoolError      - sample() on an empty pool
    PortExhaustionError - no free port left on a hypervisor

Usage:
    from infra_core import Hypervisor, HypervisorMap, EmptyPoolError

    pool = HypervisorMap([Hypervisor("hv-1"), Hypervisor("hv-2")])
    hypervisor = pool.sample()
    port = hypervisor.request_port("cluster-a", "node-0")
"""

from infra_core.hypervisor import (
    APISERVER_RESOURCE,
    Hypervisor,
    PortAllocation,
    PortExhaustionError,
)
from infra_core.pool import EmptyPoolError, HypervisorMap

__all__ = [
    "APISERVER_RESOURCE",
    "Hypervisor",
    "HypervisorMap",
    "PortAllocation",
    "EmptyPoolError",
    "PortExhaustionError",
]
