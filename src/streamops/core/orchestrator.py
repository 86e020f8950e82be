"""Lifecycle orchestration of streaming applications.

The LifecycleOrchestrator is the state machine driving an application
through deploy -> start -> running -> cancel, persisting every transition
through the application repository and reconciling local state against what
the cluster reports:

    CREATED -> DEPLOYING -> DEPLOYED -> STARTING -> RUNNING -> CANCELLING -> CANCELED
    DEPLOYING/STARTING/RUNNING/CANCELLING -> LOST     (handle vanished)
    any -> FAILED                                     (rejected / failed)
    CANCELED/FAILED/LOST -> DEPLOYING                 (new epoch)

At most one operation per application id runs at a time; a concurrent
second operation fails fast with BusyError.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable

from streamops.core.applications import (
    ACTIVE_STATES,
    DEPLOYABLE_STATES,
    HANDLE_STATES,
    AppConfig,
    Application,
    ApplicationRepository,
    AppState,
    ExistsState,
    cluster_name,
    utcnow,
)
from streamops.core.canceller import SavepointCanceller
from streamops.core.cluster import ClusterRegistry, HandleState
from streamops.core.config import Settings
from streamops.core.errors import (
    ClusterError,
    ClusterRejectedError,
    ClusterUnreachableError,
    ConfigurationError,
    ConflictError,
    InvalidStateError,
    OperationTimeoutError,
    StreamOpsError,
)
from streamops.core.existence import ExistenceResolver
from streamops.core.lifecycle import (
    HandlePoller,
    OperationLocks,
    release_handle,
    transition,
)
from streamops.core.planner import DeploymentPlanner

logger = logging.getLogger(__name__)

_DEPLOY_BLOCKERS = {
    ExistsState.EXISTS_RUNNING: "is already running on the cluster",
    ExistsState.NAME_COLLISION_FOREIGN: "collides with an instance not created by streamops",
    ExistsState.UNKNOWN: "cannot be verified because the cluster is unreachable",
}

# (local state, cluster state) -> reconciled local state
_RECONCILE = {
    (AppState.STARTING, HandleState.RUNNING): AppState.RUNNING,
    (AppState.STARTING, HandleState.STOPPED): AppState.FAILED,
    (AppState.STARTING, HandleState.FAILED): AppState.FAILED,
    (AppState.STARTING, HandleState.NOT_FOUND): AppState.LOST,
    (AppState.RUNNING, HandleState.STOPPED): AppState.CANCELED,
    (AppState.RUNNING, HandleState.FAILED): AppState.FAILED,
    (AppState.RUNNING, HandleState.NOT_FOUND): AppState.LOST,
    (AppState.CANCELLING, HandleState.STOPPED): AppState.CANCELED,
    (AppState.CANCELLING, HandleState.FAILED): AppState.CANCELED,
    (AppState.CANCELLING, HandleState.NOT_FOUND): AppState.CANCELED,
}


@dataclass(frozen=True)
class Transition:
    """A state change applied by reconciliation."""

    app_id: str
    name: str
    previous: AppState
    current: AppState


class LifecycleOrchestrator:
    """Drive applications through their lifecycle and keep them reconciled."""

    def __init__(
        self,
        repository: ApplicationRepository,
        registry: ClusterRegistry,
        planner: DeploymentPlanner,
        *,
        start_timeout: float = 120.0,
        cancel_timeout: float = 60.0,
        poll_interval: float = 5.0,
        stale_deploy_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.planner = planner
        self.start_timeout = start_timeout
        self.stale_deploy_after = (
            start_timeout if stale_deploy_after is None else stale_deploy_after
        )
        self.locks = OperationLocks()
        self.poller = HandlePoller(poll_interval, clock=clock, sleep=sleep)
        self.resolver = ExistenceResolver(registry)
        self.canceller = SavepointCanceller(
            repository, registry, self.poller, cancel_timeout
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: ApplicationRepository,
        registry: ClusterRegistry,
    ) -> LifecycleOrchestrator:
        return cls(
            repository,
            registry,
            DeploymentPlanner(settings.backup_dir),
            start_timeout=settings.start_timeout,
            cancel_timeout=settings.cancel_timeout,
            poll_interval=settings.poll_interval,
        )

    # -- queries -----------------------------------------------------------

    def get(self, app_id: str) -> Application:
        return self.repository.get(app_id)

    def get_state(self, app_id: str) -> AppState:
        return self.repository.get(app_id).state

    def check_exists(self, name: str, namespace: str) -> ExistsState:
        """
        Resolve the cluster name ``name`` in ``namespace``.

        Handles of every application submitted under ``name`` count as ours.
        """
        own: set[str] = set()
        for app in self.repository.find_by_cluster_name(name, namespace):
            own |= app.owned_handles()
        return self.resolver.resolve(name, namespace, own)

    def _ensure_cluster_name_free(self, app: Application) -> None:
        """Raise ConflictError if another application uses ``app``'s cluster name."""
        name = cluster_name(app)
        taken = [
            other
            for other in self.repository.find_by_cluster_name(name, app.namespace)
            if other.id != app.id
        ]
        if taken:
            raise ConflictError(
                f"Cluster name '{name}' is already used by {taken[0].name} "
                f"in {app.namespace}"
            )

    # -- creation and configuration ---------------------------------------

    def create(self, name: str, namespace: str, config: AppConfig) -> str:
        """
        Register a new application in CREATED and return its id.

        Raises:
            ConfigurationError: If the name is empty or the namespace unknown.
            ConflictError: If the name or its cluster name is already used in
                           the namespace.
        """
        name = (name or "").strip()
        if not name:
            raise ConfigurationError("Application name must not be empty")
        if not self.registry.knows(namespace):
            raise ConfigurationError(f"Unknown namespace '{namespace}'")
        if self.repository.find_by_name(name, namespace) is not None:
            raise ConflictError(
                f"An application named '{name}' already exists in {namespace}"
            )

        app = Application(
            id=uuid.uuid4().hex,
            name=name,
            namespace=namespace,
            config=config,
        )
        self._ensure_cluster_name_free(app)
        self.repository.save(app)
        logger.info("Created application %s (%s) in %s", app.id, name, namespace)
        return app.id

    def update_config(self, app_id: str, config: AppConfig) -> Application:
        """
        Replace the declared configuration of an application.

        A live deployment keeps running with its old configuration and is
        flagged ``pending_redeploy`` until the next deploy.

        Raises:
            ConflictError: If the new cluster name is used by another application.
        """
        with self.locks.hold(app_id):
            app = self.repository.get(app_id)
            updated = replace(
                app,
                config=config,
                pending_redeploy=app.pending_redeploy or app.state in HANDLE_STATES,
            )
            self._ensure_cluster_name_free(updated)
            self.repository.save(updated)
            logger.info("Updated configuration of %s (%s)", app.id, app.name)
            return updated

    # -- lifecycle operations ----------------------------------------------

    def deploy(self, app_id: str, backup: bool = False) -> Application:
        """
        Submit a new deployment epoch of an application.

        Returns:
            The application in DEPLOYED with a fresh cluster handle.

        Raises:
            BusyError: If another operation on ``app_id`` is in flight.
            InvalidStateError: If the application cannot be deployed from its state.
            ConflictError: If the name is running, foreign or unverifiable.
            ConfigurationError: If the declared configuration is incomplete.
            ArtifactBackupError: If the requested backup failed.
            ClusterRejectedError: If the cluster rejected the submission (FAILED).
            ClusterUnreachableError: If the submission did not go through (CREATED).
        """
        with self.locks.hold(app_id):
            app = self.repository.get(app_id)
            if app.state not in DEPLOYABLE_STATES:
                raise InvalidStateError(
                    f"Application {app.name} cannot be deployed from {app.state.value}"
                )

            existence = self.resolver.resolve(
                cluster_name(app), app.namespace, app.owned_handles()
            )
            if existence in _DEPLOY_BLOCKERS:
                raise ConflictError(
                    f"Application {app.name} {_DEPLOY_BLOCKERS[existence]} "
                    f"({existence.value})"
                )

            descriptor = self.planner.plan(app, backup=backup)
            client = self.registry.client_for(app.namespace)
            if app.previous_handles and app.state is not AppState.CREATED:
                logger.info(
                    "Redeploying %s from %s as epoch %d; discarding handle %s",
                    app.name,
                    app.state.value,
                    descriptor.epoch,
                    app.previous_handles[-1],
                )

            deploying = transition(
                self.repository, app, AppState.DEPLOYING, epoch=descriptor.epoch
            )
            try:
                handle = client.submit(descriptor)
            except ClusterRejectedError:
                transition(self.repository, deploying, AppState.FAILED)
                raise
            except ClusterError:
                transition(
                    self.repository, deploying, AppState.CREATED, epoch=app.epoch
                )
                raise

            return transition(
                self.repository,
                deploying,
                AppState.DEPLOYED,
                cluster_handle=handle,
                deployed_artifact=descriptor.artifact,
                last_deployed_at=utcnow(),
                pending_redeploy=False,
            )

    def start_up(self, app_id: str, timeout: float | None = None) -> AppState:
        """
        Start a deployed application and wait for the cluster to confirm.

        The application moves to STARTING before the start request is sent.
        If the wait expires, it stays in STARTING; the job may still be
        initialising and reconciliation settles the outcome.

        Returns:
            AppState.RUNNING once confirmed.

        Raises:
            BusyError: If another operation on ``app_id`` is in flight.
            InvalidStateError: If the application is not DEPLOYED.
            ClusterRejectedError: If the cluster rejected or failed the start (FAILED).
            ClusterUnreachableError: If the cluster could not be reached (STARTING).
            OperationTimeoutError: If no confirmation arrived in time (STARTING).
        """
        timeout = self.start_timeout if timeout is None else timeout
        with self.locks.hold(app_id):
            app = self.repository.get(app_id)
            if app.state is not AppState.DEPLOYED:
                raise InvalidStateError(
                    f"Application {app.name} must be DEPLOYED to start "
                    f"(is {app.state.value})"
                )
            descriptor = self.planner.describe(app)
            client = self.registry.client_for(app.namespace)
            starting = transition(self.repository, app, AppState.STARTING)
            handle = starting.cluster_handle

            try:
                client.start(handle, descriptor)
            except ClusterRejectedError:
                transition(
                    self.repository, starting, AppState.FAILED, **release_handle(starting)
                )
                raise

            result = self.poller.poll(
                client,
                handle,
                {HandleState.RUNNING, HandleState.STOPPED, HandleState.FAILED},
                timeout,
            )
            if result.state is HandleState.RUNNING:
                return transition(self.repository, starting, AppState.RUNNING).state
            if result.state is not None:
                transition(
                    self.repository, starting, AppState.FAILED, **release_handle(starting)
                )
                raise ClusterRejectedError(
                    f"Cluster reported {result.state.value} while starting {app.name}"
                )
            if not result.reached:
                raise ClusterUnreachableError(
                    f"Cluster unreachable while starting {app.name}; left in STARTING"
                ) from result.last_error
            raise OperationTimeoutError(
                f"Start of {app.name} not confirmed within {timeout}s; left in STARTING"
            )

    def cancel(
        self,
        app_id: str,
        savepoint_path: str | None = None,
        drain_timeout: float | None = None,
    ) -> Application:
        """Cancel an application; see SavepointCanceller.cancel."""
        with self.locks.hold(app_id):
            app = self.repository.get(app_id)
            return self.canceller.cancel(app, savepoint_path, drain_timeout)

    # -- reconciliation ----------------------------------------------------

    def update_state(self, app_id: str) -> Transition | None:
        """
        Reconcile one application against the cluster on demand.

        Raises:
            BusyError: If another operation on ``app_id`` is in flight.
        """
        with self.locks.hold(app_id):
            return self._reconcile(self.repository.get(app_id))

    def reconcile(self) -> list[Transition]:
        """
        Reconcile every application in an active state.

        Applications with an operation in flight are skipped; errors on one
        application are logged and do not stop the sweep.
        """
        transitions: list[Transition] = []
        for app in self.repository.list_by_states(ACTIVE_STATES):
            if not self.locks.try_acquire(app.id):
                logger.debug("Skipping %s: operation in flight", app.id)
                continue
            try:
                change = self._reconcile(self.repository.get(app.id))
            except StreamOpsError as exc:
                logger.warning("Reconciliation of %s failed: %s", app.name, exc)
                continue
            finally:
                self.locks.release(app.id)
            if change is not None:
                transitions.append(change)
        return transitions

    def _reconcile(self, app: Application) -> Transition | None:
        if app.state not in ACTIVE_STATES:
            return None

        if app.state is AppState.DEPLOYING:
            # No submission can be in flight while we hold the lock.
            age = utcnow() - app.last_state_change_at
            if age < timedelta(seconds=self.stale_deploy_after):
                return None
            logger.warning(
                "Application %s stuck in DEPLOYING without a handle; marking LOST",
                app.name,
            )
            return self._apply(app, AppState.LOST)

        client = self.registry.client_for(app.namespace)
        try:
            observed = client.query_by_handle(app.cluster_handle)
        except ClusterError as exc:
            logger.info("Cannot reconcile %s: %s", app.name, exc)
            return None

        target = _RECONCILE.get((app.state, observed))
        if target is None:
            return None
        if target is AppState.LOST:
            logger.warning(
                "Handle %s of %s vanished from the cluster; marking LOST",
                app.cluster_handle,
                app.name,
            )
        return self._apply(app, target)

    def _apply(self, app: Application, state: AppState) -> Transition:
        changes = {} if state in HANDLE_STATES else release_handle(app)
        transition(self.repository, app, state, **changes)
        return Transition(app.id, app.name, app.state, state)
