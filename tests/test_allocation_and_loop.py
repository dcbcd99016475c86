"""
tests/test_allocation_and_loop.py
─────────────────────────────────
Test suite for the node creation path, manifest import and the reconcile loop.

Test groups
────────────
Group 1: allocate_node()   - retry on exhaustion, duplicates, registration
Group 2: load_specs()      - YAML stream → registries → identical YAML stream
Group 3: ReconcileLoop     - tick counting, overlap guard, deadline, run()
"""

from __future__ import annotations

import logging
import threading
from typing import List

import pytest

from cluster_orchestrator.control_plane import (
    Cluster,
    ClusterMap,
    ClusterReconciler,
    DuplicateNodeError,
    Node,
    NodeList,
    Role,
    allocate_node,
    load_specs,
)
from cluster_orchestrator.loop import ReconcileLoop
from cluster_orchestrator.shared.codec import DecodingError
from infra_core import EmptyPoolError, Hypervisor, HypervisorMap, PortExhaustionError


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class _ScriptedRng:
    """Stands in for numpy's Generator: integers() replays a fixed index list."""

    def __init__(self, picks: List[int]) -> None:
        self._picks = list(picks)

    def integers(self, high: int) -> int:
        pick = self._picks.pop(0)
        assert 0 <= pick < high
        return pick


def _full_and_free(picks: List[int]) -> HypervisorMap:
    full = Hypervisor("full", port_range_low=30000, port_range_high=30000)
    full.request_port("other", "squatter")
    free = Hypervisor("free", port_range_low=31000, port_range_high=31010)
    return HypervisorMap([full, free], rng=_ScriptedRng(picks))


class _CountingReconciler:
    def __init__(self) -> None:
        self.passes = 0

    def reconcile(self) -> None:
        self.passes += 1


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: allocate_node()
# ─────────────────────────────────────────────────────────────────────────────

class TestAllocateNode:

    def test_retries_on_another_sample(self) -> None:
        """First sample hits the exhausted hypervisor, second lands on the free one."""
        pool = _full_and_free([0, 1])
        nodes = NodeList()

        node = allocate_node("c1", "n1", Role.CONTROL_PLANE, pool, nodes)

        assert node.hypervisor_name == "free"
        assert node.allocated_host_ports == {"apiserver": 31000}
        assert nodes.get("c1", "n1") is node

    def test_gives_up_after_max_attempts(self) -> None:
        pool = _full_and_free([0, 0])
        nodes = NodeList()

        with pytest.raises(PortExhaustionError):
            allocate_node("c1", "n1", Role.CONTROL_PLANE, pool, nodes, max_attempts=2)

        assert len(nodes) == 0
        assert pool.get("free").allocated_ports() == []

    def test_empty_pool_is_not_retried(self) -> None:
        with pytest.raises(EmptyPoolError):
            allocate_node("c1", "n1", Role.CONTROL_PLANE, HypervisorMap(), NodeList())

    def test_duplicate_node_keeps_existing_port(self) -> None:
        pool = _full_and_free([1, 1])
        nodes = NodeList()
        first = allocate_node("c1", "n1", Role.CONTROL_PLANE, pool, nodes)

        with pytest.raises(DuplicateNodeError):
            allocate_node("c1", "n1", Role.CONTROL_PLANE, pool, nodes)

        assert pool.get("free").held_port("c1", "n1") == first.allocated_host_ports["apiserver"]

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError):
            allocate_node("c1", "n1", Role.CONTROL_PLANE, _full_and_free([]), NodeList(), max_attempts=0)


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: load_specs()
# ─────────────────────────────────────────────────────────────────────────────

class TestLoadSpecs:

    def _reconciler(self) -> ClusterReconciler:
        pool = HypervisorMap([
            Hypervisor("h1", ip_address="10.0.0.1", port_range_low=30000, port_range_high=30100),
            Hypervisor("h2", ip_address="10.0.0.2", public=True, port_range_low=31000, port_range_high=31100),
        ])
        clusters = ClusterMap([Cluster(name="c1")])
        nodes = NodeList()
        allocate_node("c1", "n1", Role.CONTROL_PLANE, pool, nodes)
        allocate_node("c1", "n2", Role.CONTROL_PLANE, pool, nodes)
        allocate_node("c1", "ingress", Role.CONTROL_PLANE_INGRESS, pool, nodes)
        return ClusterReconciler(pool, clusters, nodes)

    def test_specs_round_trip_is_exact(self) -> None:
        original = self._reconciler()
        text = original.specs()

        registries = load_specs(text)

        assert ClusterReconciler(*registries).specs() == text

    def test_loaded_nodes_match(self) -> None:
        original = self._reconciler()
        registries = load_specs(original.specs())

        for node in original.node_list:
            assert registries.node_list.get(node.cluster_name, node.name) == node

    def test_loaded_hypervisors_keep_reservations(self) -> None:
        original = self._reconciler()
        registries = load_specs(original.specs())

        for hypervisor in original.hypervisor_map:
            restored = registries.hypervisor_map.get(hypervisor.name)
            assert restored.allocated_ports() == hypervisor.allocated_ports()

    def test_lenient_role_on_import(self, caplog: pytest.LogCaptureFixture) -> None:
        text = Node(
            name="n1", cluster_name="c1", role=Role.CONTROL_PLANE, hypervisor_name="h1"
        ).specs().replace("role: control-plane", "role: etcd")

        with caplog.at_level(logging.WARNING):
            registries = load_specs(text)

        assert registries.node_list.get("c1", "n1").role is None

    def test_garbage_raises_decoding_error(self) -> None:
        with pytest.raises(DecodingError):
            load_specs("apiVersion: nope/v1\nkind: Widget\n")

    _HYPERVISOR_DOC = (
        "apiVersion: infra.orchestrator.io/v1alpha1\n"
        "kind: Hypervisor\n"
        "metadata:\n"
        "  name: h1\n"
        "spec:\n"
        "  portRange:\n"
        "    low: {low}\n"
        "    high: {high}\n"
        "status:\n"
        "  allocatedPorts:\n"
        "{ports}"
    )

    @staticmethod
    def _port(node: str, port: int) -> str:
        return f"  - cluster: c1\n    node: {node}\n    name: apiserver\n    port: {port}\n"

    def test_shared_port_in_status_rejected(self) -> None:
        text = self._HYPERVISOR_DOC.format(
            low=30000, high=30009, ports=self._port("a", 30000) + self._port("b", 30000)
        )
        with pytest.raises(DecodingError, match="'h1'"):
            load_specs(text)

    def test_inverted_port_range_rejected(self) -> None:
        text = self._HYPERVISOR_DOC.format(low=30000, high=29999, ports="    []\n")
        with pytest.raises(DecodingError, match="'h1'"):
            load_specs(text)


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: ReconcileLoop
# ─────────────────────────────────────────────────────────────────────────────

class TestReconcileLoop:

    def test_tick_runs_one_pass(self) -> None:
        reconciler = _CountingReconciler()
        loop = ReconcileLoop(reconciler)

        assert loop.tick() is True
        assert loop.tick() is True

        assert reconciler.passes == 2
        assert loop.tick_count == 2

    def test_overlapping_tick_is_skipped(self) -> None:
        """A tick issued while a pass is in flight does not start a second pass."""
        inner_results: List[bool] = []

        class _Reentrant:
            passes = 0

            def reconcile(self) -> None:
                self.passes += 1
                inner_results.append(loop.tick())

        reconciler = _Reentrant()
        loop = ReconcileLoop(reconciler)

        assert loop.tick() is True
        assert inner_results == [False]
        assert reconciler.passes == 1
        assert loop.tick_count == 1

    def test_slow_pass_counts_as_deadline_miss(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            loop = ReconcileLoop(_CountingReconciler(), pass_deadline_s=-1.0)
            loop.tick()

        assert loop.deadline_misses == 1
        assert "deadline" in caplog.text

    def test_no_deadline_no_miss(self) -> None:
        loop = ReconcileLoop(_CountingReconciler())
        loop.tick()
        assert loop.deadline_misses == 0
        assert loop.last_pass_ms >= 0.0

    def test_run_stops_after_max_ticks(self) -> None:
        reconciler = _CountingReconciler()
        ReconcileLoop(reconciler, interval_s=0.0).run(threading.Event(), max_ticks=3)
        assert reconciler.passes == 3

    def test_run_with_stop_set_does_nothing(self) -> None:
        reconciler = _CountingReconciler()
        stop = threading.Event()
        stop.set()
        ReconcileLoop(reconciler, interval_s=0.0).run(stop)
        assert reconciler.passes == 0

    def test_run_in_background_thread(self) -> None:
        reconciler = _CountingReconciler()
        loop = ReconcileLoop(reconciler, interval_s=0.001)
        stop = threading.Event()
        worker = threading.Thread(target=loop.run, args=(stop,))
        worker.start()
        try:
            while loop.tick_count < 5:
                stop.wait(0.001)
        finally:
            stop.set()
            worker.join(timeout=5.0)

        assert not worker.is_alive()
        assert reconciler.passes >= 5

    def test_negative_interval_rejected(self) -> None:
        with pytest.raises(ValueError):
            ReconcileLoop(_CountingReconciler(), interval_s=-1.0)

    def test_drives_real_reconciler(self) -> None:
        seen: List[str] = []
        nodes = NodeList([Node(name="n1", cluster_name="c1", hypervisor_name="h1")])
        reconciler = ClusterReconciler(
            HypervisorMap([Hypervisor("h1")]),
            ClusterMap([Cluster(name="c1")]),
            nodes,
            node_reconciler=lambda inquirer: seen.append(inquirer.node.name),
        )

        ReconcileLoop(reconciler, interval_s=0.0).run(threading.Event(), max_ticks=2)

        assert seen == ["n1", "n1"]
