"""
cluster_orchestrator/control_plane/cluster.py
─────────────────────────────────────────────
Cluster and ClusterMap.

A cluster is little more than a name that nodes point at. The map exists
so inquirers can resolve node.cluster_name and so the cluster set can be
exported next to hypervisors and nodes.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel

from cluster_orchestrator.shared import models as v1alpha1
from cluster_orchestrator.shared.codec import Scheme, default_scheme

logger = logging.getLogger(__name__)


class Cluster(BaseModel):
    name: str

    @classmethod
    def from_v1alpha1(cls, cluster: v1alpha1.Cluster) -> "Cluster":
        return cls(name=cluster.metadata.name)

    def export(self) -> v1alpha1.Cluster:
        return v1alpha1.Cluster(metadata=v1alpha1.ObjectMeta(name=self.name))

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        scheme = scheme or default_scheme()
        return scheme.encode(self.export(), v1alpha1.CLUSTER_GROUP_VERSION, name=self.name)


class ClusterMap:
    """Name → Cluster registry."""

    def __init__(self, clusters: Optional[List[Cluster]] = None) -> None:
        self._clusters: Dict[str, Cluster] = {}
        self._lock = threading.Lock()
        for cluster in clusters or []:
            self.add(cluster)

    def add(self, cluster: Cluster) -> None:
        with self._lock:
            self._clusters[cluster.name] = cluster
        logger.debug("cluster %s registered", cluster.name)

    def get(self, name: str) -> Optional[Cluster]:
        with self._lock:
            return self._clusters.get(name)

    def remove(self, name: str) -> Optional[Cluster]:
        with self._lock:
            return self._clusters.pop(name, None)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._clusters

    def __iter__(self) -> Iterator[Cluster]:
        with self._lock:
            snapshot = list(self._clusters.values())
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clusters)

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """All clusters as a multi-document YAML stream."""
        scheme = scheme or default_scheme()
        return "".join(f"---\n{cluster.specs(scheme)}" for cluster in self)
