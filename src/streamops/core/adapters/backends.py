"""Construction of cluster clients from namespace configuration."""

from __future__ import annotations

from typing import Callable

from streamops.core.adapters.databricksjobs import DatabricksClusterClient
from streamops.core.adapters.yarn import YarnClusterClient
from streamops.core.cluster import ClusterClient, ClusterRegistry
from streamops.core.config import NamespaceConfig, Settings, load_namespaces

_BUILDERS: dict[str, Callable[..., ClusterClient]] = {
    "yarn": YarnClusterClient.from_config,
    "databricks": DatabricksClusterClient.from_config,
}


def cluster_client(namespace: NamespaceConfig, settings: Settings) -> ClusterClient:
    """Build the client for ``namespace`` according to its backend."""
    build = _BUILDERS[namespace.backend]
    return build(namespace.options, timeout=settings.request_timeout)


def build_registry(
    settings: Settings,
    namespaces: dict[str, NamespaceConfig] | None = None,
) -> ClusterRegistry:
    """
    Build a registry over the configured namespaces.

    Raises:
        ConfigurationError: If the namespace file is invalid.
    """
    if namespaces is None:
        namespaces = load_namespaces(settings.config_path)
    return ClusterRegistry(
        namespaces,
        factory=lambda name: cluster_client(namespaces[name], settings),
    )
