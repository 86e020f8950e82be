"""Application context management for the CLI."""

from dataclasses import dataclass

from streamops.cli.common.exits import die
from streamops.core.adapters.backends import build_registry
from streamops.core.adapters.repository import JsonFileApplicationRepository
from streamops.core.cluster import ClusterRegistry
from streamops.core.config import Settings
from streamops.core.errors import ConfigurationError
from streamops.core.orchestrator import LifecycleOrchestrator


@dataclass
class AppsContext:
    """Context holding settings, the application store and the orchestrator."""

    settings: Settings
    repository: JsonFileApplicationRepository
    registry: ClusterRegistry
    orchestrator: LifecycleOrchestrator


def build_apps_context(settings: Settings | None = None) -> AppsContext:
    """Build the context from environment settings and the namespace file.

    Args:
        settings: Settings to use; defaults to ``Settings.from_env()``.

    Returns:
        AppsContext: Context with the file-backed store and orchestrator.
    """
    settings = settings or Settings.from_env()
    try:
        registry = build_registry(settings)
    except ConfigurationError as exc:
        die(str(exc), code=1)
    repository = JsonFileApplicationRepository(settings.store_path)
    orchestrator = LifecycleOrchestrator.from_settings(settings, repository, registry)
    return AppsContext(
        settings=settings,
        repository=repository,
        registry=registry,
        orchestrator=orchestrator,
    )
