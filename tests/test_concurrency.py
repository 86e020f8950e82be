import threading

import pytest

from streamops.core.applications import AppState
from streamops.core.errors import BusyError

from fakes import BlockingSubmit


def test_cancel_during_deploy_fails_busy(orchestrator, cluster, config):
    app_id = orchestrator.create("job1", "ns1", config)
    gate = BlockingSubmit()
    cluster.on_submit = gate
    results = {}

    def _deploy():
        results["deployed"] = orchestrator.deploy(app_id)

    worker = threading.Thread(target=_deploy)
    worker.start()
    assert gate.entered.wait(5)

    try:
        with pytest.raises(BusyError):
            orchestrator.cancel(app_id)
        assert orchestrator.reconcile() == []
        assert orchestrator.get_state(app_id) is AppState.DEPLOYING
    finally:
        gate.release.set()
        worker.join(5)

    assert results["deployed"].state is AppState.DEPLOYED
    assert not orchestrator.locks.is_held(app_id)


def test_operations_on_different_applications_do_not_block(orchestrator, cluster, config):
    first = orchestrator.create("job1", "ns1", config)
    second = orchestrator.create("job2", "ns1", config)
    orchestrator.locks.try_acquire(first)

    assert orchestrator.deploy(second).state is AppState.DEPLOYED
