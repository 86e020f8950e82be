"""Cluster client for streaming jobs on a Databricks workspace.

A deployment is a Databricks job wrapping a single Spark JAR task; the job
id is the cluster handle. ``start`` triggers a run of that job, and the
state of the handle is derived from the job's active and latest runs.
Databricks jobs have no savepoints, so savepoint-then-stop is rejected.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from databricks.sdk import WorkspaceClient
from databricks.sdk.core import Config
from databricks.sdk.errors import (
    BadRequest,
    DatabricksError,
    InvalidParameterValue,
    NotFound,
    PermissionDenied,
)
from databricks.sdk.service import compute, jobs

from streamops.core.cluster import (
    ClusterInstance,
    HandleState,
    StopOutcome,
    SubmissionDescriptor,
)
from streamops.core.errors import (
    ClusterRejectedError,
    ClusterUnreachableError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

NAMESPACE_TAG = "streamops-namespace"

_PENDING_LIFECYCLE = {
    jobs.RunLifeCycleState.PENDING,
    jobs.RunLifeCycleState.QUEUED,
    jobs.RunLifeCycleState.BLOCKED,
    jobs.RunLifeCycleState.WAITING_FOR_RETRY,
}


def _sanitize_host(host: str | None) -> str | None:
    """Strip query strings (e.g. '?o=123') and trailing slashes from a host URL."""
    if not host:
        return host
    return host.split("?", 1)[0].rstrip("/")


def workspace_client(
    profile: str | None = None, *, timeout: float | None = None
) -> WorkspaceClient:
    """
    Create a WorkspaceClient for ``profile`` (or the default auth chain).

    Raises:
        ConfigurationError: If Databricks authentication cannot be resolved.
    """
    try:
        kwargs: dict[str, Any] = {}
        if profile:
            kwargs["profile"] = profile
        if timeout:
            kwargs["http_timeout_seconds"] = int(timeout)
        cfg = Config(**kwargs)
    except ValueError as exc:
        login = re.search(r"databricks auth login ([^\s]+)", str(exc))
        hint = " (re-authenticate with 'databricks auth login')" if login else ""
        raise ConfigurationError(
            f"Databricks authentication failed for profile {profile or 'default'}"
            f"{hint}: {exc}"
        ) from exc
    cfg.host = _sanitize_host(cfg.host)
    return WorkspaceClient(config=cfg)


@contextmanager
def _cluster_errors(action: str) -> Iterator[None]:
    """Translate SDK errors into cluster errors."""
    try:
        yield
    except (PermissionDenied, BadRequest, NotFound) as exc:
        raise ClusterRejectedError(f"Databricks rejected {action}: {exc}") from exc
    except (DatabricksError, OSError) as exc:
        raise ClusterUnreachableError(f"Databricks {action} failed: {exc}") from exc


class DatabricksClusterClient:
    """Adapter around Databricks SDK Jobs APIs."""

    def __init__(
        self,
        client: WorkspaceClient,
        *,
        spark_version: str,
        node_type_id: str,
    ) -> None:
        self.client = client
        self.spark_version = spark_version
        self.node_type_id = node_type_id

    @classmethod
    def from_config(
        cls, options: Mapping[str, Any], *, timeout: float
    ) -> DatabricksClusterClient:
        missing = [k for k in ("spark_version", "node_type_id") if not options.get(k)]
        if missing:
            raise ConfigurationError(
                f"Databricks namespaces require: {', '.join(missing)}"
            )
        return cls(
            workspace_client(options.get("profile"), timeout=timeout),
            spark_version=str(options["spark_version"]),
            node_type_id=str(options["node_type_id"]),
        )

    def submit(self, descriptor: SubmissionDescriptor) -> str:
        """Create a Databricks job for ``descriptor`` and return its id."""
        options = dict(descriptor.options)
        main_class = options.pop("main_class", None)
        if not main_class:
            raise ClusterRejectedError(
                f"{descriptor.name}: Databricks JAR tasks require a 'main_class' option"
            )
        parameters = options.pop("args", "").split()
        task = jobs.Task(
            task_key="main",
            spark_jar_task=jobs.SparkJarTask(
                main_class_name=main_class, parameters=parameters
            ),
            libraries=[compute.Library(jar=descriptor.artifact)],
            new_cluster=compute.ClusterSpec(
                spark_version=self.spark_version,
                node_type_id=self.node_type_id,
                num_workers=descriptor.parallelism,
                spark_conf={
                    "spark.executor.memory": f"{descriptor.memory_mb}m",
                    "spark.executor.cores": str(descriptor.slots),
                    **options,
                },
            ),
        )
        with _cluster_errors(f"creating job {descriptor.name}"):
            created = self.client.jobs.create(
                name=descriptor.name,
                tasks=[task],
                tags={NAMESPACE_TAG: descriptor.namespace},
                max_concurrent_runs=1,
            )
        logger.info("Created Databricks job %s for %s", created.job_id, descriptor.name)
        return str(created.job_id)

    def start(self, handle: str, descriptor: SubmissionDescriptor) -> None:
        with _cluster_errors(f"starting job {handle}"):
            run = self.client.jobs.run_now(job_id=int(handle))
        logger.info("Started run %s of job %s", run.run_id, handle)

    def query_by_handle(self, handle: str) -> HandleState:
        job_id = int(handle)
        with _cluster_errors(f"querying job {handle}"):
            try:
                active = list(self.client.jobs.list_runs(job_id=job_id, active_only=True))
                latest = (
                    []
                    if active
                    else list(
                        self.client.jobs.list_runs(
                            job_id=job_id, completed_only=True, limit=1
                        )
                    )
                )
            except (NotFound, InvalidParameterValue):
                return HandleState.NOT_FOUND

        if active:
            lifecycle = active[0].state.life_cycle_state if active[0].state else None
            if lifecycle in _PENDING_LIFECYCLE:
                return HandleState.PENDING
            return HandleState.RUNNING
        if not latest or not latest[0].state:
            return HandleState.STOPPED
        if latest[0].state.result_state in {
            jobs.RunResultState.FAILED,
            jobs.RunResultState.TIMEDOUT,
        }:
            return HandleState.FAILED
        return HandleState.STOPPED

    def query_by_name(self, name: str, namespace: str) -> list[ClusterInstance]:
        """
        Return jobs named ``name`` that may belong to ``namespace``.

        Jobs tagged for another namespace are skipped; untagged jobs were not
        created by streamops and are reported so they can be detected as
        collisions.
        """
        with _cluster_errors(f"listing jobs named {name}"):
            found = [
                j
                for j in self.client.jobs.list(name=name)
                if j.settings
                and (j.settings.tags or {}).get(NAMESPACE_TAG, namespace) == namespace
            ]
            return [
                ClusterInstance(
                    handle=str(j.job_id),
                    name=j.settings.name,
                    running=any(
                        True
                        for _ in self.client.jobs.list_runs(
                            job_id=j.job_id, active_only=True
                        )
                    ),
                )
                for j in found
            ]

    def request_stop(
        self,
        handle: str,
        *,
        savepoint_path: str | None = None,
        drain: bool = False,
    ) -> StopOutcome:
        if savepoint_path:
            raise ClusterRejectedError("Databricks jobs do not support savepoints")
        with _cluster_errors(f"cancelling runs of job {handle}"):
            self.client.jobs.cancel_all_runs(job_id=int(handle))
        return StopOutcome()

    def force_stop(self, handle: str) -> None:
        with _cluster_errors(f"cancelling runs of job {handle}"):
            for run in self.client.jobs.list_runs(job_id=int(handle), active_only=True):
                self.client.jobs.cancel_run(run_id=run.run_id)
