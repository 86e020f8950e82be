"""Core application domain models.

This module defines the Application record managed by the lifecycle
orchestrator, its declared configuration, the lifecycle and existence
enumerations, and the repository interface the core persists through.
It is intentionally free of cluster and CLI concerns so that the same
models can be reused by different frontends and by tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol


class AppState(str, Enum):
    """
    Enumeration of the lifecycle states of an Application.

    Values:
        CREATED: Declared locally, never deployed (or reverted after a
                 failed submission).
        DEPLOYING: Submission to the cluster is in flight.
        DEPLOYED: The cluster accepted the submission and assigned a handle.
        STARTING: A start was requested; awaiting cluster confirmation.
        RUNNING: The cluster confirmed the application is running.
        CANCELLING: A stop was requested; awaiting cluster confirmation.
        CANCELED: The cluster confirmed a graceful stop.
        FAILED: The cluster rejected or reported failure of the application.
        LOST: The cluster no longer knows the handle and no graceful
              shutdown was observed.
    """

    CREATED = "CREATED"
    DEPLOYING = "DEPLOYING"
    DEPLOYED = "DEPLOYED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    CANCELLING = "CANCELLING"
    CANCELED = "CANCELED"
    FAILED = "FAILED"
    LOST = "LOST"


class ExistsState(str, Enum):
    """
    Result of resolving an application name against the cluster.

    Values:
        NOT_EXISTS: No instance with that name is known to the cluster.
        EXISTS_RUNNING: One of our own instances is live on the cluster.
        EXISTS_STOPPED: Only stopped (historical) instances exist.
        NAME_COLLISION_FOREIGN: A live instance with the same name exists
                                that this system did not create.
        UNKNOWN: The cluster could not be queried; nothing can be concluded.
    """

    NOT_EXISTS = "NOT_EXISTS"
    EXISTS_RUNNING = "EXISTS_RUNNING"
    EXISTS_STOPPED = "EXISTS_STOPPED"
    NAME_COLLISION_FOREIGN = "NAME_COLLISION_FOREIGN"
    UNKNOWN = "UNKNOWN"


# States in which the application owns a cluster handle.
HANDLE_STATES = frozenset(
    {AppState.DEPLOYED, AppState.STARTING, AppState.RUNNING, AppState.CANCELLING}
)

# States polled by reconciliation.
ACTIVE_STATES = frozenset(
    {AppState.DEPLOYING, AppState.STARTING, AppState.RUNNING, AppState.CANCELLING}
)

# States from which a (re-)deployment may start.
DEPLOYABLE_STATES = frozenset(
    {AppState.CREATED, AppState.CANCELED, AppState.FAILED, AppState.LOST}
)

CANCELLABLE_STATES = frozenset({AppState.RUNNING, AppState.STARTING})


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AppConfig:
    """
    Declared configuration of an application.

    Attributes:
        artifact: Reference to the deployable artifact (jar path or URI).
        parallelism: Requested job parallelism.
        memory_mb: Requested memory per container, in megabytes.
        slots: Task slots per worker.
        queue: Target cluster queue; None means the namespace default.
        options: Engine-specific parameters passed through verbatim.
    """

    artifact: str | None = None
    parallelism: int | None = None
    memory_mb: int | None = None
    slots: int | None = None
    queue: str | None = None
    options: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact": self.artifact,
            "parallelism": self.parallelism,
            "memory_mb": self.memory_mb,
            "slots": self.slots,
            "queue": self.queue,
            "options": dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AppConfig:
        return cls(
            artifact=data.get("artifact"),
            parallelism=data.get("parallelism"),
            memory_mb=data.get("memory_mb"),
            slots=data.get("slots"),
            queue=data.get("queue"),
            options={str(k): str(v) for k, v in (data.get("options") or {}).items()},
        )


@dataclass(frozen=True)
class Application:
    """
    A streaming application managed through its deploy/run/cancel lifecycle.

    Instances are immutable; transitions produce new values through
    ``with_state``. Construction validates that a cluster handle is present
    exactly when the state owns one, so an invalid record can never be saved.

    Attributes:
        id: Durable identifier assigned at creation.
        name: Human-readable name, unique within ``namespace``.
        namespace: Target cluster namespace.
        config: Declared configuration.
        state: Observed lifecycle state.
        cluster_handle: Resource manager identifier of the current epoch.
        epoch: Number of deployments performed so far.
        previous_handles: Handles of earlier epochs, oldest first.
        deployed_artifact: Artifact reference of the last deployment.
        savepoint: Last savepoint location recorded on cancellation.
        pending_redeploy: Declared config changed since the last deployment.
        created_at: Creation time.
        last_deployed_at: Time of the last successful submission.
        last_state_change_at: Time of the last state transition.
    """

    id: str
    name: str
    namespace: str
    config: AppConfig
    state: AppState = AppState.CREATED
    cluster_handle: str | None = None
    epoch: int = 0
    previous_handles: tuple[str, ...] = ()
    deployed_artifact: str | None = None
    savepoint: str | None = None
    pending_redeploy: bool = False
    created_at: datetime = field(default_factory=utcnow)
    last_deployed_at: datetime | None = None
    last_state_change_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        has_handle = bool(self.cluster_handle)
        if has_handle != (self.state in HANDLE_STATES):
            raise ValueError(
                f"Application {self.id}: cluster handle must be set iff state is one of "
                f"{sorted(s.value for s in HANDLE_STATES)} "
                f"(state={self.state.value}, handle={self.cluster_handle!r})"
            )

    def with_state(self, state: AppState, **changes: Any) -> Application:
        """Return a copy in ``state`` with the transition timestamp refreshed."""
        return replace(self, state=state, last_state_change_at=utcnow(), **changes)

    def owned_handles(self) -> set[str]:
        """Return every handle this application has ever been assigned."""
        handles = set(self.previous_handles)
        if self.cluster_handle:
            handles.add(self.cluster_handle)
        return handles

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "namespace": self.namespace,
            "config": self.config.to_dict(),
            "state": self.state.value,
            "cluster_handle": self.cluster_handle,
            "epoch": self.epoch,
            "previous_handles": list(self.previous_handles),
            "deployed_artifact": self.deployed_artifact,
            "savepoint": self.savepoint,
            "pending_redeploy": self.pending_redeploy,
            "created_at": self.created_at.isoformat(),
            "last_deployed_at": (
                self.last_deployed_at.isoformat() if self.last_deployed_at else None
            ),
            "last_state_change_at": self.last_state_change_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Application:
        last_deployed = data.get("last_deployed_at")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            namespace=str(data["namespace"]),
            config=AppConfig.from_dict(data.get("config") or {}),
            state=AppState(data.get("state", AppState.CREATED.value)),
            cluster_handle=data.get("cluster_handle"),
            epoch=int(data.get("epoch", 0)),
            previous_handles=tuple(data.get("previous_handles") or ()),
            deployed_artifact=data.get("deployed_artifact"),
            savepoint=data.get("savepoint"),
            pending_redeploy=bool(data.get("pending_redeploy", False)),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_deployed_at=(
                datetime.fromisoformat(last_deployed) if last_deployed else None
            ),
            last_state_change_at=datetime.fromisoformat(data["last_state_change_at"]),
        )


def cluster_name(app: Application) -> str:
    """
    Return the name an application is submitted under on the cluster.

    An explicit ``cluster.name`` option wins; otherwise the application
    name is used as-is.
    """
    return app.config.options.get("cluster.name") or app.name


class ApplicationRepository(Protocol):
    """Interface for the persistent store of Application records."""

    def get(self, app_id: str) -> Application:
        """Return the application or raise ApplicationNotFoundError."""
        ...

    def save(self, app: Application) -> None:
        """Insert or replace an application record."""
        ...

    def compare_and_set_state(
        self, app_id: str, expected: AppState, new: AppState
    ) -> bool:
        """Atomically move ``app_id`` from ``expected`` to ``new``."""
        ...

    def list_by_states(self, states: Iterable[AppState]) -> list[Application]:
        """Return applications whose state is one of ``states``."""
        ...

    def find_by_name(self, name: str, namespace: str) -> Application | None:
        """Return the application declared under ``name`` in ``namespace``."""
        ...

    def find_by_cluster_name(self, name: str, namespace: str) -> list[Application]:
        """Return applications submitted under ``name`` in ``namespace``."""
        ...
