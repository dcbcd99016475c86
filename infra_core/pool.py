"""
infra_core/pool.py
──────────────────
HypervisorMap: the pool of known hypervisors, and uniform random placement.

How sampling works
───────────────────
sample() draws one index uniformly from the live hypervisor names:

    idx = rng.integers(len(names))

No weighting by load, capacity or free ports. Every registered hypervisor
has the same 1/n chance on every call, so none is permanently excluded.

The random source is a numpy Generator. Production code uses a fresh
default_rng(); tests pass default_rng(seed) for reproducible placement.

Copy-on-write registry
───────────────────────
add() and remove() build a new dict and swap it in under the write lock.
Readers (sample, get, iteration) grab the current dict reference and never
block on writers. A sample taken while a hypervisor is being added sees
either the old pool or the new one, never a half-built one.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, List, Optional

import numpy as np

from cluster_orchestrator.shared.codec import Scheme, default_scheme
from infra_core.hypervisor import Hypervisor

logger = logging.getLogger(__name__)


class EmptyPoolError(Exception):
    """
    Raised when sample() is called on a HypervisorMap with no hypervisors.

    Recoverable: the caller may retry once the capacity provider has
    registered hypervisors. sample() never returns None instead.
    """

    def __init__(self) -> None:
        super().__init__("no hypervisors available to sample from")


class HypervisorMap:
    """
    Name → Hypervisor registry.

    The map owns the hypervisors and, through them, all port reservation
    state. Reconcilers and inquirers only borrow it.
    """

    def __init__(
        self,
        hypervisors: Optional[List[Hypervisor]] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._hypervisors: Dict[str, Hypervisor] = {}
        self._write_lock = threading.Lock()
        # Generator instances are not thread safe; draws are serialized.
        self._rng = rng if rng is not None else np.random.default_rng()
        self._rng_lock = threading.Lock()
        for hypervisor in hypervisors or []:
            self.add(hypervisor)

    # ── Registry ──────────────────────────────────────────────────────────────

    def add(self, hypervisor: Hypervisor) -> None:
        """Register (or replace) a hypervisor under its name."""
        with self._write_lock:
            updated = dict(self._hypervisors)
            updated[hypervisor.name] = hypervisor
            self._hypervisors = updated
        logger.debug("hypervisor %s registered", hypervisor.name)

    def remove(self, name: str) -> Optional[Hypervisor]:
        with self._write_lock:
            if name not in self._hypervisors:
                return None
            updated = dict(self._hypervisors)
            removed = updated.pop(name)
            self._hypervisors = updated
        logger.debug("hypervisor %s unregistered", name)
        return removed

    def get(self, name: str) -> Optional[Hypervisor]:
        return self._hypervisors.get(name)

    def names(self) -> List[str]:
        return list(self._hypervisors)

    def __contains__(self, name: object) -> bool:
        return name in self._hypervisors

    def __iter__(self) -> Iterator[Hypervisor]:
        return iter(list(self._hypervisors.values()))

    def __len__(self) -> int:
        return len(self._hypervisors)

    # ── Placement ─────────────────────────────────────────────────────────────

    def sample(self) -> Hypervisor:
        """
        Pick one hypervisor uniformly at random.

        Raises:
            EmptyPoolError: the registry holds no hypervisors.
        """
        snapshot = self._hypervisors
        if not snapshot:
            raise EmptyPoolError()
        names = list(snapshot)
        with self._rng_lock:
            idx = int(self._rng.integers(len(names)))
        return snapshot[names[idx]]

    # ── Versioned representation ──────────────────────────────────────────────

    def specs(self, scheme: Optional[Scheme] = None) -> str:
        """All hypervisors as a multi-document YAML stream."""
        scheme = scheme or default_scheme()
        return "".join(
            f"---\n{hypervisor.specs(scheme)}" for hypervisor in self
        )
