"""Deployment planning.

Turns a persisted application's declared configuration into a concrete
SubmissionDescriptor. Planning never touches the cluster; the only side
effect is the optional backup of the previously deployed artifact, which
must succeed before the orchestrator submits anything.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from streamops.core.applications import Application, cluster_name
from streamops.core.cluster import SubmissionDescriptor
from streamops.core.errors import ArtifactBackupError, ConfigurationError

logger = logging.getLogger(__name__)


class DeploymentPlanner:
    """Build submission descriptors and back up previous artifacts."""

    def __init__(self, backup_dir: Path) -> None:
        self.backup_dir = Path(backup_dir)

    def plan(self, app: Application, *, backup: bool = False) -> SubmissionDescriptor:
        """
        Build the descriptor for the next deployment epoch of ``app``.

        Args:
            app: Application to deploy.
            backup: Copy the previously deployed artifact to a versioned
                    backup location first.

        Returns:
            The descriptor the orchestrator submits.

        Raises:
            ConfigurationError: If the artifact or resource requests are missing.
            ArtifactBackupError: If the backup copy fails.
        """
        self.validate(app)
        backup_path = None
        if backup and app.deployed_artifact:
            backup_path = str(self.backup_artifact(app))
        return self.describe(app, epoch=app.epoch + 1, backup_path=backup_path)

    def describe(
        self,
        app: Application,
        *,
        epoch: int | None = None,
        backup_path: str | None = None,
    ) -> SubmissionDescriptor:
        """Build a descriptor for ``app`` without any side effects."""
        self.validate(app)
        cfg = app.config
        return SubmissionDescriptor(
            app_id=app.id,
            name=cluster_name(app),
            namespace=app.namespace,
            artifact=cfg.artifact,
            parallelism=cfg.parallelism,
            memory_mb=cfg.memory_mb,
            slots=cfg.slots or 1,
            queue=cfg.queue,
            options=dict(cfg.options),
            epoch=app.epoch if epoch is None else epoch,
            backup_path=backup_path,
        )

    @staticmethod
    def validate(app: Application) -> None:
        cfg = app.config
        missing = []
        if not cfg.artifact:
            missing.append("artifact")
        if not cfg.parallelism or cfg.parallelism < 1:
            missing.append("parallelism")
        if not cfg.memory_mb or cfg.memory_mb < 1:
            missing.append("memory_mb")
        if cfg.slots is not None and cfg.slots < 1:
            missing.append("slots")
        if missing:
            raise ConfigurationError(
                f"Application {app.name} has incomplete configuration: "
                f"{', '.join(missing)}"
            )

    def backup_artifact(self, app: Application) -> Path:
        """
        Copy the previously deployed artifact to ``<backup_dir>/<id>/epoch-<n>/``.

        Raises:
            ArtifactBackupError: If the source is missing or the copy fails.
        """
        source = Path(app.deployed_artifact)
        target_dir = self.backup_dir / app.id / f"epoch-{app.epoch}"
        target = target_dir / source.name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        except OSError as exc:
            raise ArtifactBackupError(
                f"Could not back up {source} for {app.name}: {exc}"
            ) from exc
        logger.info("Backed up %s to %s", source, target)
        return target
