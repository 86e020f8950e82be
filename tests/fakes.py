"""In-test cluster client and clock."""

from __future__ import annotations

import threading

from streamops.core.cluster import (
    ClusterInstance,
    HandleState,
    StopOutcome,
    SubmissionDescriptor,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeClusterClient:
    """
    Scriptable ClusterClient.

    ``states`` is what query_by_handle reports per handle. ``scripted`` holds
    per-handle queues of states or exceptions consumed before ``states``.
    """

    def __init__(self) -> None:
        self.states: dict[str, HandleState] = {}
        self.scripted: dict[str, list] = {}
        self.instances: list[ClusterInstance] = []
        self.handles = iter(f"h{i}" for i in range(1, 1000))

        self.state_after_start: HandleState | None = HandleState.RUNNING
        self.state_after_stop: HandleState | None = HandleState.STOPPED

        self.submit_error: Exception | None = None
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.force_error: Exception | None = None
        self.name_error: Exception | None = None

        self.submitted: list[SubmissionDescriptor] = []
        self.started: list[str] = []
        self.stop_requests: list[tuple[str, str | None, bool]] = []
        self.forced: list[str] = []

        # Optional hook run inside submit (used to hold an operation in flight).
        self.on_submit = None

    def submit(self, descriptor: SubmissionDescriptor) -> str:
        if self.on_submit:
            self.on_submit()
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(descriptor)
        handle = next(self.handles)
        self.states[handle] = HandleState.PENDING
        return handle

    def start(self, handle: str, descriptor: SubmissionDescriptor) -> None:
        if self.start_error:
            raise self.start_error
        self.started.append(handle)
        if self.state_after_start is not None:
            self.states[handle] = self.state_after_start

    def query_by_handle(self, handle: str) -> HandleState:
        queue = self.scripted.get(handle)
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return self.states.get(handle, HandleState.NOT_FOUND)

    def query_by_name(self, name: str, namespace: str) -> list[ClusterInstance]:
        if self.name_error:
            raise self.name_error
        return [i for i in self.instances if i.name == name]

    def request_stop(
        self,
        handle: str,
        *,
        savepoint_path: str | None = None,
        drain: bool = False,
    ) -> StopOutcome:
        if self.stop_error:
            raise self.stop_error
        self.stop_requests.append((handle, savepoint_path, drain))
        if self.state_after_stop is not None:
            self.states[handle] = self.state_after_stop
        return StopOutcome(request_id="r1", savepoint_path=savepoint_path)

    def force_stop(self, handle: str) -> None:
        if self.force_error:
            raise self.force_error
        self.forced.append(handle)
        self.states[handle] = HandleState.STOPPED


class BlockingSubmit:
    """on_submit hook that parks the submitting thread until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self) -> None:
        self.entered.set()
        self.release.wait(5)
