"""Cluster client capability and per-namespace backend selection.

The core talks to resource managers exclusively through the ClusterClient
protocol defined here. Concrete backends live in ``streamops.core.adapters``
and are chosen per target namespace by the ClusterRegistry, so the
orchestrator never special-cases a resource manager type.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Protocol

from streamops.core.errors import ConfigurationError


class HandleState(str, Enum):
    """
    State of a cluster instance as reported by the resource manager.

    Values:
        PENDING: Accepted by the cluster but not running yet.
        RUNNING: The instance is running.
        STOPPED: The instance terminated without failure (finished or killed).
        FAILED: The instance terminated with a failure.
        NOT_FOUND: The cluster does not know the handle.
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


TERMINAL_HANDLE_STATES = frozenset(
    {HandleState.STOPPED, HandleState.FAILED, HandleState.NOT_FOUND}
)


@dataclass(frozen=True)
class SubmissionDescriptor:
    """
    Concrete submission request built from an application's declared config.

    Attributes:
        app_id: Identifier of the application being submitted.
        name: Name the instance is submitted under on the cluster.
        namespace: Target cluster namespace.
        artifact: Deployable artifact reference.
        parallelism: Requested parallelism.
        memory_mb: Requested memory per container, in megabytes.
        slots: Task slots per worker.
        queue: Target queue, or None for the backend default.
        options: Engine-specific parameters.
        epoch: Deployment epoch this descriptor belongs to.
        backup_path: Where the previous artifact was backed up, if it was.
    """

    app_id: str
    name: str
    namespace: str
    artifact: str
    parallelism: int
    memory_mb: int
    slots: int = 1
    queue: str | None = None
    options: Mapping[str, str] = field(default_factory=dict)
    epoch: int = 1
    backup_path: str | None = None


@dataclass(frozen=True)
class ClusterInstance:
    """An instance found on the cluster by name."""

    handle: str
    name: str
    running: bool


@dataclass(frozen=True)
class StopOutcome:
    """
    Acknowledgement of a stop request.

    Attributes:
        request_id: Backend identifier of the asynchronous stop, if any.
        savepoint_path: Savepoint location the cluster reported or was asked
                        to write, if a savepoint was requested.
    """

    request_id: str | None = None
    savepoint_path: str | None = None


class ClusterClient(Protocol):
    """Interface for querying and submitting work to a resource manager."""

    def submit(self, descriptor: SubmissionDescriptor) -> str:
        """Submit a deployment and return the cluster handle."""
        ...

    def start(self, handle: str, descriptor: SubmissionDescriptor) -> None:
        """Request the cluster to start a deployed instance."""
        ...

    def query_by_handle(self, handle: str) -> HandleState:
        """Return the cluster-side state of an instance."""
        ...

    def query_by_name(self, name: str, namespace: str) -> list[ClusterInstance]:
        """Return all instances submitted under ``name`` in ``namespace``."""
        ...

    def request_stop(
        self,
        handle: str,
        *,
        savepoint_path: str | None = None,
        drain: bool = False,
    ) -> StopOutcome:
        """Request a graceful stop, optionally taking a savepoint first."""
        ...

    def force_stop(self, handle: str) -> None:
        """Terminate an instance immediately."""
        ...


ClusterClientFactory = Callable[[str], ClusterClient]


class ClusterRegistry:
    """
    Resolve the cluster client responsible for a namespace.

    Clients are created lazily through ``factory`` and cached, so a
    namespace that is never used never needs working credentials.
    """

    def __init__(
        self,
        namespaces: Mapping[str, object],
        factory: ClusterClientFactory,
    ) -> None:
        self._namespaces = dict(namespaces)
        self._factory = factory
        self._clients: dict[str, ClusterClient] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_clients(cls, clients: Mapping[str, ClusterClient]) -> ClusterRegistry:
        """Build a registry around already constructed clients."""
        return cls(clients, factory=lambda namespace: clients[namespace])

    @property
    def namespaces(self) -> list[str]:
        return sorted(self._namespaces)

    def knows(self, namespace: str) -> bool:
        return namespace in self._namespaces

    def client_for(self, namespace: str) -> ClusterClient:
        """
        Return the client for ``namespace``.

        Raises:
            ConfigurationError: If the namespace is not configured.
        """
        if namespace not in self._namespaces:
            raise ConfigurationError(
                f"Unknown namespace '{namespace}' "
                f"(configured: {', '.join(self.namespaces) or 'none'})"
            )
        with self._lock:
            client = self._clients.get(namespace)
            if client is None:
                client = self._factory(namespace)
                self._clients[namespace] = client
        return client
