"""Periodic reconciliation sweep.

Optimistic transitions (STARTING, CANCELLING) and timed-out waits are only
settled by reconciliation, so a long-running service should always run a
ReconciliationLoop next to the orchestrator.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from streamops.core.orchestrator import LifecycleOrchestrator, Transition

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    """Run ``orchestrator.reconcile()`` on a fixed interval in a daemon thread."""

    def __init__(
        self,
        orchestrator: LifecycleOrchestrator,
        interval: float = 15.0,
        on_transitions: Callable[[list[Transition]], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.orchestrator = orchestrator
        self.interval = interval
        self.on_transitions = on_transitions
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep(self) -> list[Transition]:
        """Run one sweep and report its transitions."""
        transitions = self.orchestrator.reconcile()
        if transitions:
            logger.info("Reconciliation applied %d transition(s)", len(transitions))
            if self.on_transitions:
                self.on_transitions(transitions)
        return transitions

    def run(self) -> None:
        """Sweep until ``stop()`` is called; failures are logged and retried."""
        while not self._stop.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Reconciliation sweep failed")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run, name="streamops-reconcile", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
