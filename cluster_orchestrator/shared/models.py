"""
cluster_orchestrator/shared/models.py
─────────────────────────────────────
The versioned (v1alpha1) representation of every persisted object.

Design philosophy
-----------------
These models are the WIRE shape: what gets written to disk, sent to the
API layer, and read back on the next start. They are deliberately dumb.
The operational model (control_plane.node.Node, infra_core.Hypervisor)
owns behaviour and converts to/from these classes.

Two API groups exist:

    cluster.orchestrator.io/v1alpha1 → Node, Cluster
    infra.orchestrator.io/v1alpha1   → Hypervisor

Field names are snake_case in Python and camelCase on the wire
(populate_by_name lets both spellings in; dumps use the aliases).

Reading guide
-------------
Read top-to-bottom. Shared metadata first, then one section per kind.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


CLUSTER_GROUP_VERSION: str = "cluster.orchestrator.io/v1alpha1"
INFRA_GROUP_VERSION: str = "infra.orchestrator.io/v1alpha1"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class VersionedModel(BaseModel):
    """Base for every wire model: camelCase aliases, strict field set."""
    model_config = ConfigDict(
        alias_generator=_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ObjectMeta(VersionedModel):
    name: str


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: NODE (cluster.orchestrator.io/v1alpha1)
# ─────────────────────────────────────────────────────────────────────────────

class NodeRole(str, Enum):
    """
    Role values as spelled on the wire.

    The operational Role enum (control_plane.node.Role) maps onto these
    through an explicit table. spec.role stays a plain string so that an
    unknown value can still be decoded and handled leniently.
    """
    CONTROL_PLANE = "control-plane"
    CONTROL_PLANE_INGRESS = "control-plane-ingress"


class NodeSpec(VersionedModel):
    hypervisor: str = ""
    cluster: str = ""
    role: str = Field("", description="One of NodeRole, or empty when unset")


class NodeHostPortAllocation(VersionedModel):
    name: str = Field(..., description="Resource the port serves, e.g. 'apiserver'")
    port: int = Field(..., ge=1, le=65535)


class NodeStatus(VersionedModel):
    allocated_host_ports: List[NodeHostPortAllocation] = Field(default_factory=list)


class Node(VersionedModel):
    metadata: ObjectMeta
    spec: NodeSpec = Field(default_factory=NodeSpec)
    status: NodeStatus = Field(default_factory=NodeStatus)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: CLUSTER (cluster.orchestrator.io/v1alpha1)
# ─────────────────────────────────────────────────────────────────────────────

class ClusterSpec(VersionedModel):
    pass


class Cluster(VersionedModel):
    metadata: ObjectMeta
    spec: ClusterSpec = Field(default_factory=ClusterSpec)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: HYPERVISOR (infra.orchestrator.io/v1alpha1)
# ─────────────────────────────────────────────────────────────────────────────

class HypervisorPortRange(VersionedModel):
    low: int = Field(..., ge=1, le=65535)
    high: int = Field(..., ge=1, le=65535)


class HypervisorSpec(VersionedModel):
    ip_address: str = ""
    public: bool = False
    port_range: HypervisorPortRange


class HypervisorPortAllocation(VersionedModel):
    cluster: str
    node: str
    name: str
    port: int = Field(..., ge=1, le=65535)


class HypervisorStatus(VersionedModel):
    allocated_ports: List[HypervisorPortAllocation] = Field(default_factory=list)


class Hypervisor(VersionedModel):
    metadata: ObjectMeta
    spec: HypervisorSpec
    status: HypervisorStatus = Field(default_factory=HypervisorStatus)
