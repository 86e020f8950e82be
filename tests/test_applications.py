import pytest

from streamops.core.applications import (
    AppConfig,
    Application,
    AppState,
    cluster_name,
)


def _app(**kwargs) -> Application:
    defaults = dict(id="a1", name="job1", namespace="ns1", config=AppConfig())
    defaults.update(kwargs)
    return Application(**defaults)


@pytest.mark.parametrize("state", [AppState.DEPLOYED, AppState.RUNNING, AppState.CANCELLING])
def test_handle_required_in_handle_states(state):
    with pytest.raises(ValueError, match="cluster handle"):
        _app(state=state)


@pytest.mark.parametrize("state", [AppState.CREATED, AppState.CANCELED, AppState.LOST])
def test_handle_forbidden_outside_handle_states(state):
    with pytest.raises(ValueError, match="cluster handle"):
        _app(state=state, cluster_handle="h1")


def test_with_state_validates_and_refreshes_timestamp():
    app = _app(state=AppState.DEPLOYED, cluster_handle="h1")

    running = app.with_state(AppState.RUNNING)

    assert running.state is AppState.RUNNING
    assert running.last_state_change_at >= app.last_state_change_at
    with pytest.raises(ValueError):
        running.with_state(AppState.CANCELED)


def test_owned_handles_include_history():
    app = _app(state=AppState.RUNNING, cluster_handle="h2", previous_handles=("h1",))

    assert app.owned_handles() == {"h1", "h2"}


def test_dict_form_survives_reload():
    app = _app(
        config=AppConfig(artifact="/jars/job1.jar", parallelism=2, options={"k": "v"}),
        state=AppState.CANCELED,
        epoch=3,
        previous_handles=("h1", "h2"),
        savepoint="/sp/1",
    )

    assert Application.from_dict(app.to_dict()) == app


def test_cluster_name_prefers_explicit_option():
    assert cluster_name(_app()) == "job1"
    assert cluster_name(_app(config=AppConfig(options={"cluster.name": "x"}))) == "x"
