import pytest

from streamops.core.applications import AppState
from streamops.core.cluster import HandleState
from streamops.core.errors import (
    ClusterRejectedError,
    ClusterUnreachableError,
    InvalidStateError,
    OperationTimeoutError,
)


def _running(orchestrator, config) -> str:
    app_id = orchestrator.create("job1", "ns1", config)
    orchestrator.deploy(app_id)
    orchestrator.start_up(app_id)
    return app_id


def test_cancel_without_savepoint_keeps_previous_savepoint(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)

    cancelled = orchestrator.cancel(app_id)

    assert cancelled.state is AppState.CANCELED
    assert cancelled.savepoint is None
    assert cluster.stop_requests == [("h1", None, False)]
    assert cluster.forced == []


def test_cancel_unreachable_stays_cancelling_until_reconciled(
    orchestrator, cluster, config
):
    app_id = _running(orchestrator, config)
    cluster.stop_error = ClusterUnreachableError("rm down")

    with pytest.raises(ClusterUnreachableError):
        orchestrator.cancel(app_id, savepoint_path="/sp/1")

    app = orchestrator.get(app_id)
    assert app.state is AppState.CANCELLING
    assert app.cluster_handle == "h1"

    cluster.states["h1"] = HandleState.STOPPED
    orchestrator.reconcile()

    app = orchestrator.get(app_id)
    assert app.state is AppState.CANCELED
    assert app.cluster_handle is None


def test_cancel_rejected_restores_previous_state(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.stop_error = ClusterRejectedError("savepoint directory not writable")

    with pytest.raises(ClusterRejectedError):
        orchestrator.cancel(app_id, savepoint_path="/sp/1")

    app = orchestrator.get(app_id)
    assert app.state is AppState.RUNNING
    assert app.cluster_handle == "h1"


def test_drain_timeout_escalates_to_forced_stop(orchestrator, cluster, clock, config):
    app_id = _running(orchestrator, config)
    cluster.state_after_stop = None

    cancelled = orchestrator.cancel(app_id, savepoint_path="/sp/1", drain_timeout=10)

    assert cluster.forced == ["h1"]
    assert clock.now == 10
    assert cancelled.state is AppState.CANCELED
    # A forced stop gives no savepoint guarantee.
    assert cancelled.savepoint is None


def test_unconfirmed_stop_times_out_in_cancelling(orchestrator, cluster, clock, config):
    app_id = _running(orchestrator, config)
    cluster.state_after_stop = None

    with pytest.raises(OperationTimeoutError):
        orchestrator.cancel(app_id)

    assert clock.now == 20
    assert cluster.forced == []
    assert orchestrator.get_state(app_id) is AppState.CANCELLING


def test_forced_stop_unreachable_stays_cancelling(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.state_after_stop = None
    cluster.force_error = ClusterUnreachableError("rm down")

    with pytest.raises(ClusterUnreachableError):
        orchestrator.cancel(app_id, drain_timeout=5)

    assert orchestrator.get_state(app_id) is AppState.CANCELLING


def test_cancel_starting_application(orchestrator, cluster, config):
    cluster.state_after_start = None
    app_id = orchestrator.create("job1", "ns1", config)
    orchestrator.deploy(app_id)
    with pytest.raises(OperationTimeoutError):
        orchestrator.start_up(app_id)

    assert orchestrator.cancel(app_id).state is AppState.CANCELED


def test_cancel_requires_running_or_starting(orchestrator, config):
    app_id = orchestrator.create("job1", "ns1", config)
    orchestrator.deploy(app_id)

    with pytest.raises(InvalidStateError):
        orchestrator.cancel(app_id)

    assert orchestrator.get_state(app_id) is AppState.DEPLOYED
