"""Savepoint-aware cancellation.

Cancelling moves an application to CANCELLING before anything is sent to
the cluster, asks for a graceful stop (with a savepoint when a target path
is given), waits a bounded time for the cluster to confirm and, when a drain
bound was requested and expires, escalates to a forced stop.

A cancellation is never presumed successful: without cluster confirmation
the application stays in CANCELLING and reconciliation settles it later.
"""

from __future__ import annotations

import logging

from streamops.core.applications import (
    CANCELLABLE_STATES,
    Application,
    ApplicationRepository,
    AppState,
)
from streamops.core.cluster import TERMINAL_HANDLE_STATES, ClusterRegistry
from streamops.core.errors import (
    ClusterRejectedError,
    ClusterUnreachableError,
    InvalidStateError,
    OperationTimeoutError,
)
from streamops.core.lifecycle import HandlePoller, PollResult, release_handle, transition

logger = logging.getLogger(__name__)


class SavepointCanceller:
    """Execute graceful shutdown with optional savepoint and drain."""

    def __init__(
        self,
        repository: ApplicationRepository,
        registry: ClusterRegistry,
        poller: HandlePoller,
        cancel_timeout: float = 60.0,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.poller = poller
        self.cancel_timeout = cancel_timeout

    def cancel(
        self,
        app: Application,
        savepoint_path: str | None = None,
        drain_timeout: float | None = None,
    ) -> Application:
        """
        Cancel ``app``; the caller must hold the application's lock.

        Args:
            app: Application in RUNNING or STARTING, freshly read.
            savepoint_path: Target location for a savepoint-then-stop.
            drain_timeout: Seconds to wait for a draining stop before forcing
                           termination. Without it the stop is immediate and
                           never escalated.

        Returns:
            The application in CANCELED.

        Raises:
            InvalidStateError: If ``app`` is not cancellable.
            ClusterRejectedError: If the cluster refused the stop request; the
                                  previous state is restored.
            ClusterUnreachableError: If the cluster could not be reached; the
                                     application stays in CANCELLING.
            OperationTimeoutError: If the stop was not confirmed in time; the
                                   application stays in CANCELLING.
        """
        if app.state not in CANCELLABLE_STATES:
            raise InvalidStateError(
                f"Application {app.name} cannot be cancelled from {app.state.value}"
            )
        client = self.registry.client_for(app.namespace)
        cancelling = transition(self.repository, app, AppState.CANCELLING)
        handle = cancelling.cluster_handle
        drain = drain_timeout is not None

        try:
            outcome = client.request_stop(
                handle, savepoint_path=savepoint_path, drain=drain
            )
        except ClusterRejectedError:
            logger.warning(
                "Cluster refused to stop %s; restoring %s", app.name, app.state.value
            )
            transition(self.repository, cancelling, app.state)
            raise
        except ClusterUnreachableError:
            logger.warning(
                "Cluster unreachable while stopping %s; left in CANCELLING", app.name
            )
            raise

        bound = drain_timeout if drain else self.cancel_timeout
        result = self.poller.poll(client, handle, TERMINAL_HANDLE_STATES, bound)
        graceful = result.state is not None

        if not graceful and drain:
            logger.warning(
                "Application %s did not drain within %ss; forcing termination",
                app.name,
                drain_timeout,
            )
            try:
                client.force_stop(handle)
            except ClusterUnreachableError:
                logger.warning(
                    "Cluster unreachable while forcing %s; left in CANCELLING",
                    app.name,
                )
                raise
            forced = self.poller.poll(
                client, handle, TERMINAL_HANDLE_STATES, self.cancel_timeout
            )
            result = PollResult(
                forced.state,
                reached=result.reached or forced.reached,
                last_error=forced.last_error,
            )

        if result.state is None:
            if not result.reached:
                raise ClusterUnreachableError(
                    f"Cluster never confirmed the stop of {app.name}; "
                    "left in CANCELLING"
                ) from result.last_error
            raise OperationTimeoutError(
                f"Stop of {app.name} not confirmed in time; left in CANCELLING"
            )

        savepoint = app.savepoint
        if savepoint_path and graceful:
            savepoint = outcome.savepoint_path or savepoint_path
        return transition(
            self.repository,
            cancelling,
            AppState.CANCELED,
            savepoint=savepoint,
            **release_handle(cancelling),
        )
