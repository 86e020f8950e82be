"""Existence resolution of application names against the cluster.

The resolver answers "does this name already have a presence on the
cluster, and is that presence ours?". A cluster that cannot be queried
yields UNKNOWN instead of NOT_EXISTS: a false negative could lead to a
duplicate submission.
"""

from __future__ import annotations

import logging
from typing import Iterable

from streamops.core.applications import ExistsState
from streamops.core.cluster import ClusterRegistry
from streamops.core.errors import ClusterError

logger = logging.getLogger(__name__)


class ExistenceResolver:
    """Classify the cluster-side presence of a name within a namespace."""

    def __init__(self, registry: ClusterRegistry) -> None:
        self.registry = registry

    def resolve(
        self,
        name: str,
        namespace: str,
        own_handles: Iterable[str] = (),
    ) -> ExistsState:
        """
        Resolve ``name`` in ``namespace``.

        Instances whose handle is not in ``own_handles`` are foreign. A live
        foreign instance is a collision that callers must not adopt or
        overwrite; stopped instances of any origin are historical.

        Args:
            name: Name the application is submitted under.
            namespace: Target cluster namespace.
            own_handles: Handles this system recorded for the application.

        Returns:
            The existence classification.

        Raises:
            ConfigurationError: If the namespace is not configured.
        """
        client = self.registry.client_for(namespace)
        try:
            instances = client.query_by_name(name, namespace)
        except ClusterError as exc:
            logger.warning(
                "Existence of %s in %s is unknown: %s", name, namespace, exc
            )
            return ExistsState.UNKNOWN

        if not instances:
            return ExistsState.NOT_EXISTS

        owned = set(own_handles)
        running = [i for i in instances if i.running]
        if any(i.handle not in owned for i in running):
            return ExistsState.NAME_COLLISION_FOREIGN
        if running:
            return ExistsState.EXISTS_RUNNING
        return ExistsState.EXISTS_STOPPED
