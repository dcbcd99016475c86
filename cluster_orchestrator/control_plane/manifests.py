"""
cluster_orchestrator/control_plane/manifests.py
───────────────────────────────────────────────
load_specs(): desired state in, registries out.

Takes a multi-document YAML stream (the same text ClusterReconciler.specs()
produces) and builds fresh registries from it. Hypervisors come back with
their port reservations; nodes come back with their recorded host ports.
Nothing is reserved anew.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np

from cluster_orchestrator.control_plane.cluster import Cluster, ClusterMap
from cluster_orchestrator.control_plane.node import Node, NodeList
from cluster_orchestrator.shared import models as v1alpha1
from cluster_orchestrator.shared.codec import DecodingError, Scheme, default_scheme
from infra_core.hypervisor import Hypervisor
from infra_core.pool import HypervisorMap

logger = logging.getLogger(__name__)


class Registries(NamedTuple):
    hypervisor_map: HypervisorMap
    cluster_map: ClusterMap
    node_list: NodeList


def load_specs(
    text: str,
    scheme: Optional[Scheme] = None,
    rng: Optional[np.random.Generator] = None,
    strict: bool = False,
) -> Registries:
    """
    Import every hypervisor, cluster and node document in text.

    Args:
        text:   YAML stream, documents separated by '---'.
        scheme: Decoder to use. Defaults to the v1alpha1 scheme.
        rng:    Random source for the resulting HypervisorMap.
        strict: Forwarded to Node.from_v1alpha1.

    Raises:
        DecodingError: a document is malformed or of an unknown kind, or a
                       hypervisor carries an unusable range or reservation set.
        DuplicateNodeError: the stream holds the same node twice.
    """
    scheme = scheme or default_scheme()
    registries = Registries(HypervisorMap(rng=rng), ClusterMap(), NodeList())

    for obj in scheme.decode_all(text):
        if isinstance(obj, v1alpha1.Hypervisor):
            registries.hypervisor_map.add(_import_hypervisor(obj))
        elif isinstance(obj, v1alpha1.Cluster):
            registries.cluster_map.add(Cluster.from_v1alpha1(obj))
        elif isinstance(obj, v1alpha1.Node):
            registries.node_list.add(Node.from_v1alpha1(obj, strict=strict))

    logger.info(
        "loaded %d hypervisors, %d clusters, %d nodes",
        len(registries.hypervisor_map),
        len(registries.cluster_map),
        len(registries.node_list),
    )
    return registries


def _import_hypervisor(obj: v1alpha1.Hypervisor) -> Hypervisor:
    try:
        return Hypervisor.from_v1alpha1(obj)
    except ValueError as err:
        raise DecodingError(f"invalid Hypervisor {obj.metadata.name!r}: {err}") from err
