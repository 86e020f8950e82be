from types import SimpleNamespace

import pytest
from databricks.sdk.errors import NotFound, PermissionDenied
from databricks.sdk.service import jobs

from streamops.core.adapters.databricksjobs import (
    NAMESPACE_TAG,
    DatabricksClusterClient,
    _sanitize_host,
)
from streamops.core.cluster import HandleState, SubmissionDescriptor
from streamops.core.errors import ClusterRejectedError, ConfigurationError


def _run(lifecycle=None, result=None, run_id=1):
    return SimpleNamespace(
        run_id=run_id,
        state=SimpleNamespace(life_cycle_state=lifecycle, result_state=result),
    )


class _JobsStub:
    def __init__(self, active=(), completed=(), error=None, listed=()):
        self.listed = list(listed)
        self.active = list(active)
        self.completed = list(completed)
        self.error = error
        self.created = []
        self.cancelled = []

    def list_runs(self, job_id, active_only=False, completed_only=False, limit=None):
        if self.error:
            raise self.error
        return iter(self.active if active_only else self.completed)

    def list(self, name=None):
        return iter(j for j in self.listed if j.settings.name == name)

    def create(self, **kwargs):
        self.created.append(kwargs)
        return SimpleNamespace(job_id=42)

    def cancel_all_runs(self, job_id):
        self.cancelled.append(job_id)

    def cancel_run(self, run_id):
        self.cancelled.append(run_id)


class _DeniedJobs(_JobsStub):
    def create(self, **kwargs):
        raise PermissionDenied("not allowed to create jobs")


def _client(jobs_stub):
    return DatabricksClusterClient(
        SimpleNamespace(jobs=jobs_stub),
        spark_version="15.4.x-scala2.12",
        node_type_id="i3.xlarge",
    )


def test_sanitize_host_strips_query_and_slash():
    assert _sanitize_host("https://x.cloud.databricks.com/?o=123") == "https://x.cloud.databricks.com"
    assert _sanitize_host(None) is None


def test_from_config_requires_cluster_spec():
    with pytest.raises(ConfigurationError, match="node_type_id"):
        DatabricksClusterClient.from_config({"spark_version": "15.4"}, timeout=10)


@pytest.mark.parametrize(
    "stub, expected",
    [
        (_JobsStub(active=[_run(jobs.RunLifeCycleState.RUNNING)]), HandleState.RUNNING),
        (_JobsStub(active=[_run(jobs.RunLifeCycleState.QUEUED)]), HandleState.PENDING),
        (_JobsStub(active=[_run(jobs.RunLifeCycleState.BLOCKED)]), HandleState.PENDING),
        (_JobsStub(completed=[_run(result=jobs.RunResultState.SUCCESS)]), HandleState.STOPPED),
        (_JobsStub(completed=[_run(result=jobs.RunResultState.CANCELED)]), HandleState.STOPPED),
        (_JobsStub(completed=[_run(result=jobs.RunResultState.FAILED)]), HandleState.FAILED),
        (_JobsStub(), HandleState.STOPPED),
        (_JobsStub(error=NotFound("no such job")), HandleState.NOT_FOUND),
    ],
)
def test_query_by_handle_maps_runs(stub, expected):
    assert _client(stub).query_by_handle("42") is expected


def test_permission_errors_are_rejections():
    with pytest.raises(ClusterRejectedError):
        _client(_JobsStub()).request_stop("42", savepoint_path="/sp/1")

    stub = _DeniedJobs()
    descriptor = SubmissionDescriptor(
        app_id="a1",
        name="job1",
        namespace="analytics",
        artifact="dbfs:/jars/job1.jar",
        parallelism=2,
        memory_mb=4096,
        options={"main_class": "com.example.Job"},
    )
    with pytest.raises(ClusterRejectedError):
        _client(stub).submit(descriptor)


def test_submit_creates_tagged_jar_job():
    stub = _JobsStub()
    descriptor = SubmissionDescriptor(
        app_id="a1",
        name="job1",
        namespace="analytics",
        artifact="dbfs:/jars/job1.jar",
        parallelism=2,
        memory_mb=4096,
        options={"main_class": "com.example.Job", "args": "--env prod"},
    )

    assert _client(stub).submit(descriptor) == "42"

    created = stub.created[0]
    task = created["tasks"][0]
    assert created["name"] == "job1"
    assert created["tags"] == {NAMESPACE_TAG: "analytics"}
    assert task.spark_jar_task.main_class_name == "com.example.Job"
    assert task.spark_jar_task.parameters == ["--env", "prod"]
    assert task.new_cluster.num_workers == 2


def _job(job_id, name, tags=None):
    return SimpleNamespace(job_id=job_id, settings=SimpleNamespace(name=name, tags=tags))


def test_query_by_name_is_scoped_to_namespace():
    stub = _JobsStub(
        listed=[
            _job(1, "job1", {NAMESPACE_TAG: "analytics"}),
            _job(2, "job1", {NAMESPACE_TAG: "reporting"}),
            _job(3, "job1"),
            _job(4, "job2", {NAMESPACE_TAG: "analytics"}),
        ],
        active=[_run(jobs.RunLifeCycleState.RUNNING)],
    )

    found = _client(stub).query_by_name("job1", "analytics")

    assert [(i.handle, i.running) for i in found] == [("1", True), ("3", True)]


def test_force_stop_cancels_active_runs():
    stub = _JobsStub(active=[_run(jobs.RunLifeCycleState.RUNNING, run_id=7)])

    _client(stub).force_stop("42")

    assert stub.cancelled == [7]
