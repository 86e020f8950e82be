"""Shared lifecycle primitives: per-application locks, transitions, polling.

These are the building blocks the orchestrator, the canceller and the
reconciliation sweep share, so that every state change goes through the
same compare-and-set and every bounded wait polls the cluster the same way.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

from streamops.core.applications import Application, ApplicationRepository, AppState
from streamops.core.cluster import ClusterClient, HandleState
from streamops.core.errors import BusyError, ClusterError, ConflictError

logger = logging.getLogger(__name__)


class OperationLocks:
    """
    Single-writer discipline per application id.

    A second operation on an id that is already held fails fast with
    BusyError instead of queueing.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, app_id: str) -> bool:
        with self._guard:
            if app_id in self._held:
                return False
            self._held.add(app_id)
            return True

    def release(self, app_id: str) -> None:
        with self._guard:
            self._held.discard(app_id)

    def is_held(self, app_id: str) -> bool:
        with self._guard:
            return app_id in self._held

    @contextmanager
    def hold(self, app_id: str) -> Iterator[None]:
        """Hold the lock for ``app_id`` or raise BusyError."""
        if not self.try_acquire(app_id):
            raise BusyError(app_id)
        try:
            yield
        finally:
            self.release(app_id)


def transition(
    repository: ApplicationRepository,
    app: Application,
    state: AppState,
    **changes: Any,
) -> Application:
    """
    Move ``app`` to ``state`` and persist it.

    The new record is validated before anything is written; the state
    change itself is a compare-and-set against the state ``app`` was read in.

    Raises:
        ConflictError: If the stored state no longer matches ``app.state``.
    """
    updated = app.with_state(state, **changes)
    if not repository.compare_and_set_state(app.id, app.state, state):
        raise ConflictError(
            f"Application {app.id} changed state concurrently "
            f"(expected {app.state.value})"
        )
    repository.save(updated)
    logger.info(
        "Application %s (%s): %s -> %s",
        app.id,
        app.name,
        app.state.value,
        state.value,
    )
    return updated


def release_handle(app: Application) -> dict[str, Any]:
    """Return the changes that clear the handle and keep it for audit."""
    if not app.cluster_handle:
        return {"cluster_handle": None}
    return {
        "cluster_handle": None,
        "previous_handles": app.previous_handles + (app.cluster_handle,),
    }


@dataclass(frozen=True)
class PollResult:
    """
    Outcome of a bounded wait on a cluster handle.

    Attributes:
        state: The target state observed, or None if the wait expired.
        reached: Whether the cluster answered at least once.
        last_error: The most recent query error, if the last query failed.
    """

    state: HandleState | None
    reached: bool = False
    last_error: ClusterError | None = None


class HandlePoller:
    """Poll a cluster handle at a fixed interval until a target state or deadline."""

    def __init__(
        self,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep

    def poll(
        self,
        client: ClusterClient,
        handle: str,
        targets: Iterable[HandleState],
        timeout: float,
    ) -> PollResult:
        targets = frozenset(targets)
        deadline = self.clock() + timeout
        reached = False
        last_error: ClusterError | None = None

        while True:
            try:
                state = client.query_by_handle(handle)
            except ClusterError as exc:
                last_error = exc
                logger.debug("Polling %s failed: %s", handle, exc)
            else:
                reached = True
                last_error = None
                logger.debug("Polled %s: %s", handle, state.value)
                if state in targets:
                    return PollResult(state, reached=True)

            remaining = deadline - self.clock()
            if remaining <= 0:
                return PollResult(None, reached=reached, last_error=last_error)
            self.sleep(min(self.poll_interval, remaining))
