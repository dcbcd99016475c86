"""
cluster_orchestrator/loop/runner.py
───────────────────────────────────
ReconcileLoop: runs ClusterReconciler.reconcile() on a timer.

Each tick is one full pass. The loop adds three things on top of a bare
call to reconcile():

  1. No overlapping passes.
       tick() takes a non-blocking lock. If a pass is still running (say a
       manual tick() from another thread), the new tick is skipped instead
       of starting a second sweep over the same nodes.

  2. A coarse deadline.
       Cancelling a pass half way is not supported. When a pass takes
       longer than pass_deadline_s the loop logs a warning so slow node
       reconcilers are visible.

  3. A stop signal.
       run() waits on a threading.Event between ticks, so stop_event.set()
       ends the loop within one interval.

Usage:
    loop = ReconcileLoop(reconciler, interval_s=5.0)
    stop = threading.Event()
    threading.Thread(target=loop.run, args=(stop,), daemon=True).start()
    ...
    stop.set()
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from cluster_orchestrator.control_plane.reconciler import ClusterReconciler

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL_S: float = 10.0
"""Seconds between the end of one pass and the start of the next."""


class ReconcileLoop:
    """
    Periodic driver for a ClusterReconciler.

    Attributes:
        tick_count       → passes actually run (skipped ticks not counted).
        last_pass_ms     → duration of the most recent pass.
        deadline_misses  → passes that ran past pass_deadline_s.
    """

    def __init__(
        self,
        reconciler: ClusterReconciler,
        interval_s: float = RECONCILE_INTERVAL_S,
        pass_deadline_s: Optional[float] = None,
    ) -> None:
        if interval_s < 0:
            raise ValueError(f"interval_s must be >= 0, got {interval_s}")
        self._reconciler = reconciler
        self._interval_s = interval_s
        self._pass_deadline_s = pass_deadline_s
        self._pass_lock = threading.Lock()
        self._tick_count: int = 0
        self._deadline_misses: int = 0
        self.last_pass_ms: float = 0.0

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def deadline_misses(self) -> int:
        return self._deadline_misses

    def tick(self) -> bool:
        """
        Run one reconciliation pass.

        Returns:
            True if a pass ran, False if one was already in flight.
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.debug("reconcile pass already running, skipping tick")
            return False
        try:
            start = time.perf_counter()
            self._reconciler.reconcile()
            elapsed = time.perf_counter() - start
        finally:
            self._pass_lock.release()

        self._tick_count += 1
        self.last_pass_ms = elapsed * 1000.0
        if self._pass_deadline_s is not None and elapsed > self._pass_deadline_s:
            self._deadline_misses += 1
            logger.warning(
                "reconcile pass took %.2fs, deadline is %.2fs",
                elapsed, self._pass_deadline_s,
            )
        return True

    def run(self, stop_event: threading.Event, max_ticks: Optional[int] = None) -> None:
        """Tick every interval_s until stop_event is set or max_ticks passes ran."""
        logger.info("reconcile loop started (interval %.1fs)", self._interval_s)
        while not stop_event.is_set():
            self.tick()
            if max_ticks is not None and self._tick_count >= max_ticks:
                break
            stop_event.wait(self._interval_s)
        logger.info("reconcile loop stopped after %d passes", self._tick_count)
