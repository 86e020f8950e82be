"""Application repository implementations.

InMemoryApplicationRepository keeps records in a dict guarded by a lock;
JsonFileApplicationRepository stores them in a JSON file shared by every
process pointing at the same path.
"""

from __future__ import annotations

import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from filelock import FileLock

from streamops.core.applications import Application, AppState, cluster_name
from streamops.core.errors import ApplicationNotFoundError


class InMemoryApplicationRepository:
    """Thread-safe in-memory store with atomic compare-and-set on state."""

    def __init__(self, apps: Iterable[Application] = ()) -> None:
        self._lock = threading.RLock()
        self._apps: dict[str, Application] = {}
        self._states: dict[str, AppState] = {}
        for app in apps:
            self._apps[app.id] = app
            self._states[app.id] = app.state

    @contextmanager
    def _access(self) -> Iterator[None]:
        """Guard one read or read-modify-write of the records."""
        with self._lock:
            yield

    def get(self, app_id: str) -> Application:
        with self._access():
            try:
                return self._apps[app_id]
            except KeyError:
                raise ApplicationNotFoundError(app_id) from None

    def save(self, app: Application) -> None:
        with self._access():
            self._apps[app.id] = app
            self._states[app.id] = app.state
            self._persist()

    def compare_and_set_state(
        self, app_id: str, expected: AppState, new: AppState
    ) -> bool:
        """
        Move the stored state of ``app_id`` from ``expected`` to ``new``.

        The swap is the linearisation point of a transition: the caller saves
        the full record right after. Returns False when the stored state is
        not ``expected``.
        """
        with self._access():
            if app_id not in self._states:
                raise ApplicationNotFoundError(app_id)
            if self._states[app_id] is not expected:
                return False
            self._states[app_id] = new
            self._persist()
            return True

    def list_by_states(self, states: Iterable[AppState]) -> list[Application]:
        wanted = set(states)
        with self._access():
            return [app for app in self._apps.values() if app.state in wanted]

    def find_by_name(self, name: str, namespace: str) -> Application | None:
        with self._access():
            for app in self._apps.values():
                if app.name == name and app.namespace == namespace:
                    return app
        return None

    def find_by_cluster_name(self, name: str, namespace: str) -> list[Application]:
        with self._access():
            return [
                app
                for app in self._apps.values()
                if app.namespace == namespace and cluster_name(app) == name
            ]

    def list_all(self) -> list[Application]:
        with self._access():
            return sorted(self._apps.values(), key=lambda a: a.created_at)

    def _persist(self) -> None:
        """Hook for durable subclasses; called inside ``_access``."""


class JsonFileApplicationRepository(InMemoryApplicationRepository):
    """
    Repository stored in a JSON file.

    Every access holds an inter-process lock next to the file and re-reads
    it first, so records written by other processes are never overwritten
    and compare-and-set always sees the latest stored state. Swapped states
    are written immediately and kept in a separate ``states`` map until the
    full record is saved.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file_lock = FileLock(str(self.path.with_name(f"{self.path.name}.lock")))
        super().__init__()

    @contextmanager
    def _access(self) -> Iterator[None]:
        with self._lock, self._file_lock:
            self._load()
            yield

    def _load(self) -> None:
        self._apps.clear()
        self._states.clear()
        if not self.path.exists():
            return
        payload = json.loads(self.path.read_text())
        states = payload.get("states") or {}
        for item in payload.get("applications", []):
            app = Application.from_dict(item)
            self._apps[app.id] = app
            self._states[app.id] = AppState(states.get(app.id, app.state.value))

    def _persist(self) -> None:
        payload = {
            "applications": [app.to_dict() for app in self._apps.values()],
            "states": {app_id: state.value for app_id, state in self._states.items()},
        }
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2))
        os.replace(tmp, self.path)
