"""Cluster client for Flink applications on a YARN ResourceManager.

Uses the ResourceManager REST API for submission, status and termination,
and the Flink REST API (reached through the ResourceManager web proxy) for
graceful stops and savepoints. Deployment is the YARN two-step submission:
``submit`` reserves an application id, ``start`` submits the application
context under that id.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

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

APPLICATION_TYPE = "Apache Flink"

_LIVE_STATES = {"NEW", "NEW_SAVING", "SUBMITTED", "ACCEPTED", "RUNNING"}

NAMESPACE_TAG_PREFIX = "namespace:"

_ENTRYPOINT = "org.apache.flink.yarn.entrypoint.YarnApplicationClusterEntryPoint"


class YarnClusterClient:
    """Adapter around the YARN ResourceManager and Flink REST APIs."""

    def __init__(
        self,
        resource_manager: str,
        *,
        queue: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = resource_manager.rstrip("/")
        self.queue = queue
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )

    @classmethod
    def from_config(
        cls, options: Mapping[str, Any], *, timeout: float
    ) -> YarnClusterClient:
        rm = options.get("resource_manager")
        if not rm:
            raise ConfigurationError("YARN namespaces require 'resource_manager'")
        return cls(str(rm), queue=options.get("queue"), timeout=timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Issue a request and map transport and HTTP failures to cluster errors.

        404 responses are returned to the caller, which decides what
        "not found" means.
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ClusterUnreachableError(f"{method} {url} failed: {exc}") from exc
        if response.status_code == 404:
            return response
        if response.status_code >= 500:
            raise ClusterUnreachableError(
                f"{method} {url} returned {response.status_code}"
            )
        if response.status_code >= 400:
            raise ClusterRejectedError(
                f"{method} {url} rejected ({response.status_code}): {response.text}"
            )
        return response

    def submit(self, descriptor: SubmissionDescriptor) -> str:
        """Reserve a YARN application id for ``descriptor``."""
        response = self._request("POST", "/ws/v1/cluster/apps/new-application")
        app_id = response.json().get("application-id")
        if not app_id:
            raise ClusterRejectedError(f"No application-id in response: {response.text}")
        logger.info("Reserved YARN application %s for %s", app_id, descriptor.name)
        return app_id

    def start(self, handle: str, descriptor: SubmissionDescriptor) -> None:
        """Submit the application context reserved under ``handle``."""
        self._request(
            "POST",
            "/ws/v1/cluster/apps",
            json=self.submission_context(handle, descriptor),
        )

    def submission_context(
        self, handle: str, descriptor: SubmissionDescriptor
    ) -> dict[str, Any]:
        """Build the ResourceManager submission context for ``descriptor``."""
        dynamic = {
            "parallelism.default": str(descriptor.parallelism),
            "taskmanager.numberOfTaskSlots": str(descriptor.slots),
            "jobmanager.memory.process.size": f"{descriptor.memory_mb}m",
            **descriptor.options,
        }
        flags = " ".join(f"-D{key}={value}" for key, value in sorted(dynamic.items()))
        command = (
            f"$JAVA_HOME/bin/java -Xmx{descriptor.memory_mb}m {_ENTRYPOINT} {flags} "
            "1><LOG_DIR>/jobmanager.out 2><LOG_DIR>/jobmanager.err"
        )
        return {
            "application-id": handle,
            "application-name": descriptor.name,
            "application-type": APPLICATION_TYPE,
            "queue": descriptor.queue or self.queue or "default",
            "max-app-attempts": 1,
            "application-tags": {
                "tag": [
                    "streamops",
                    f"app:{descriptor.app_id}",
                    f"{NAMESPACE_TAG_PREFIX}{descriptor.namespace}",
                ]
            },
            "am-container-spec": {
                "local-resources": {
                    "entry": [
                        {
                            "key": "job.jar",
                            "value": {
                                "resource": descriptor.artifact,
                                "type": "FILE",
                                "visibility": "APPLICATION",
                            },
                        }
                    ]
                },
                "commands": {"command": command},
            },
            "resource": {"memory": descriptor.memory_mb, "vCores": descriptor.slots},
        }

    def query_by_handle(self, handle: str) -> HandleState:
        response = self._request("GET", f"/ws/v1/cluster/apps/{handle}")
        if response.status_code == 404:
            return HandleState.NOT_FOUND
        app = response.json().get("app") or {}
        return _handle_state(app.get("state"), app.get("finalStatus"))

    def query_by_name(self, name: str, namespace: str) -> list[ClusterInstance]:
        """
        Return applications named ``name`` that may belong to ``namespace``.

        Applications tagged for another namespace are skipped. Untagged
        applications were not submitted by streamops; they count only when
        they run in this client's queue.
        """
        response = self._request(
            "GET",
            "/ws/v1/cluster/apps",
            params={"applicationTypes": APPLICATION_TYPE},
        )
        if response.status_code == 404:
            return []
        apps = (response.json().get("apps") or {}).get("app") or []
        return [
            ClusterInstance(
                handle=app["id"],
                name=app["name"],
                running=app.get("state") in _LIVE_STATES,
            )
            for app in apps
            if app.get("name") == name and self._in_namespace(app, namespace)
        ]

    def _in_namespace(self, app: Mapping[str, Any], namespace: str) -> bool:
        # YARN lower-cases application tags.
        tags = [t.strip() for t in (app.get("applicationTags") or "").split(",")]
        owners = [
            t[len(NAMESPACE_TAG_PREFIX) :]
            for t in tags
            if t.startswith(NAMESPACE_TAG_PREFIX)
        ]
        if owners:
            return namespace.lower() in owners
        queue = app.get("queue") or ""
        own_queue = self.queue or "default"
        return queue == own_queue or queue.endswith(f".{own_queue}")

    def _flink_job_id(self, handle: str) -> str:
        response = self._request("GET", f"/proxy/{handle}/jobs")
        if response.status_code == 404:
            raise ClusterRejectedError(f"No Flink REST endpoint behind {handle}")
        jobs = response.json().get("jobs") or []
        live = [j for j in jobs if j.get("status") not in {"FINISHED", "CANCELED", "FAILED"}]
        if not live:
            raise ClusterRejectedError(f"No running Flink job in {handle}")
        return live[0]["id"]

    def request_stop(
        self,
        handle: str,
        *,
        savepoint_path: str | None = None,
        drain: bool = False,
    ) -> StopOutcome:
        """
        Stop the Flink job behind ``handle``.

        With a savepoint path this is Flink's stop-with-savepoint (optionally
        draining); otherwise the job is cancelled.
        """
        job_id = self._flink_job_id(handle)
        if savepoint_path:
            response = self._request(
                "POST",
                f"/proxy/{handle}/jobs/{job_id}/stop",
                json={"targetDirectory": savepoint_path, "drain": drain},
            )
            request_id = response.json().get("request-id")
            logger.info(
                "Requested stop-with-savepoint of %s to %s (trigger %s)",
                handle,
                savepoint_path,
                request_id,
            )
            return StopOutcome(request_id=request_id, savepoint_path=savepoint_path)

        self._request("PATCH", f"/proxy/{handle}/jobs/{job_id}", params={"mode": "cancel"})
        return StopOutcome()

    def force_stop(self, handle: str) -> None:
        """Kill the YARN application outright."""
        response = self._request(
            "PUT", f"/ws/v1/cluster/apps/{handle}/state", json={"state": "KILLED"}
        )
        if response.status_code == 404:
            logger.info("YARN application %s already gone", handle)


def _handle_state(state: str | None, final_status: str | None) -> HandleState:
    """Map YARN application state/finalStatus to a HandleState."""
    if state == "RUNNING":
        return HandleState.RUNNING
    if state in _LIVE_STATES:
        return HandleState.PENDING
    if state == "FAILED" or final_status == "FAILED":
        return HandleState.FAILED
    if state in {"FINISHED", "KILLED"}:
        return HandleState.STOPPED
    return HandleState.PENDING
