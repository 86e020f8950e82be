import pytest

from streamops.core.applications import AppState
from streamops.core.cluster import HandleState
from streamops.core.errors import ClusterUnreachableError
from streamops.core.reconciler import ReconciliationLoop


def _running(orchestrator, config, name="job1") -> str:
    app_id = orchestrator.create(name, "ns1", config)
    orchestrator.deploy(app_id)
    orchestrator.start_up(app_id)
    return app_id


def test_reconcile_is_idempotent(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.states["h1"] = HandleState.STOPPED

    first = orchestrator.reconcile()
    second = orchestrator.reconcile()

    assert [(t.app_id, t.previous, t.current) for t in first] == [
        (app_id, AppState.RUNNING, AppState.CANCELED)
    ]
    assert second == []


def test_running_and_running_is_unchanged(orchestrator, config):
    app_id = _running(orchestrator, config)

    assert orchestrator.reconcile() == []
    assert orchestrator.get_state(app_id) is AppState.RUNNING


def test_vanished_handle_is_lost_and_redeployable(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    del cluster.states["h1"]

    orchestrator.reconcile()

    app = orchestrator.get(app_id)
    assert app.state is AppState.LOST
    assert app.cluster_handle is None
    assert app.previous_handles == ("h1",)

    redeployed = orchestrator.deploy(app_id)
    assert redeployed.cluster_handle == "h2"
    assert redeployed.epoch == 2


def test_failed_run_is_marked_failed(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.states["h1"] = HandleState.FAILED

    orchestrator.reconcile()

    assert orchestrator.get_state(app_id) is AppState.FAILED


def test_unreachable_cluster_changes_nothing(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.scripted["h1"] = [ClusterUnreachableError("rm down")]

    assert orchestrator.reconcile() == []
    assert orchestrator.get_state(app_id) is AppState.RUNNING


def test_reconcile_skips_applications_with_operation_in_flight(
    orchestrator, cluster, config
):
    busy = _running(orchestrator, config, "job1")
    idle = _running(orchestrator, config, "job2")
    cluster.states["h1"] = HandleState.STOPPED
    cluster.states["h2"] = HandleState.STOPPED
    orchestrator.locks.try_acquire(busy)

    transitions = orchestrator.reconcile()

    assert [t.app_id for t in transitions] == [idle]
    assert orchestrator.get_state(busy) is AppState.RUNNING


def test_update_state_reconciles_one_application(orchestrator, cluster, config):
    app_id = _running(orchestrator, config)
    cluster.states["h1"] = HandleState.STOPPED

    change = orchestrator.update_state(app_id)

    assert change.current is AppState.CANCELED
    assert orchestrator.update_state(app_id) is None


def test_loop_sweep_reports_transitions(orchestrator, cluster, config):
    _running(orchestrator, config)
    cluster.states["h1"] = HandleState.STOPPED
    seen = []

    loop = ReconciliationLoop(orchestrator, interval=1, on_transitions=seen.extend)
    loop.sweep()
    loop.sweep()

    assert [t.current for t in seen] == [AppState.CANCELED]


def test_loop_start_and_stop(orchestrator):
    loop = ReconciliationLoop(orchestrator, interval=0.01)

    loop.start()
    assert loop.running
    loop.stop(timeout=1)

    assert not loop.running


def test_loop_rejects_non_positive_interval(orchestrator):
    with pytest.raises(ValueError, match="interval"):
        ReconciliationLoop(orchestrator, interval=0)
