"""Runtime settings and namespace configuration.

Scalar settings come from ``STREAMOPS_*`` environment variables with
sensible defaults; malformed values fall back to the default. Namespaces
(which cluster backend serves which target namespace) are declared in a
YAML file:

    namespaces:
      ns1:
        backend: yarn
        resource_manager: http://rm.example.com:8088
        queue: streaming
      analytics:
        backend: databricks
        profile: prod
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from streamops.core.errors import ConfigurationError

BACKENDS = frozenset({"yarn", "databricks"})

_CONFIG_ENV = "STREAMOPS_CONFIG"
_DATA_DIR_ENV = "STREAMOPS_DATA_DIR"


def _env_float(name: str, default: float) -> float:
    """Return a positive float from the environment, or ``default``."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _xdg_dir(env: str, fallback: str) -> Path:
    xdg = os.getenv(env)
    base = Path(xdg) if xdg else Path.home() / fallback
    return base / "streamops"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide settings.

    Attributes:
        config_path: Namespace configuration file.
        data_dir: Root for the application store and artifact backups.
        request_timeout: Timeout of a single cluster request, in seconds.
        start_timeout: Bounded wait for start confirmation, in seconds.
        cancel_timeout: Bounded wait for stop confirmation, in seconds.
        poll_interval: Delay between cluster polls during waits, in seconds.
        reconcile_interval: Delay between reconciliation sweeps, in seconds.
        log_level: Logging level name.
    """

    config_path: Path
    data_dir: Path
    request_timeout: float = 10.0
    start_timeout: float = 120.0
    cancel_timeout: float = 60.0
    poll_interval: float = 5.0
    reconcile_interval: float = 15.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        config_path = os.getenv(_CONFIG_ENV)
        data_dir = os.getenv(_DATA_DIR_ENV)
        return cls(
            config_path=(
                Path(config_path)
                if config_path
                else _xdg_dir("XDG_CONFIG_HOME", ".config") / "namespaces.yaml"
            ),
            data_dir=(
                Path(data_dir)
                if data_dir
                else _xdg_dir("XDG_DATA_HOME", ".local/share")
            ),
            request_timeout=_env_float("STREAMOPS_REQUEST_TIMEOUT", 10.0),
            start_timeout=_env_float("STREAMOPS_START_TIMEOUT", 120.0),
            cancel_timeout=_env_float("STREAMOPS_CANCEL_TIMEOUT", 60.0),
            poll_interval=_env_float("STREAMOPS_POLL_INTERVAL", 5.0),
            reconcile_interval=_env_float("STREAMOPS_RECONCILE_INTERVAL", 15.0),
            log_level=os.getenv("STREAMOPS_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def store_path(self) -> Path:
        return self.data_dir / "applications.json"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / "backups"


@dataclass(frozen=True)
class NamespaceConfig:
    """Cluster backend declaration of one target namespace."""

    name: str
    backend: str
    options: Mapping[str, Any] = field(default_factory=dict)


def parse_namespaces(data: Any) -> dict[str, NamespaceConfig]:
    """
    Validate a parsed namespace document.

    Raises:
        ConfigurationError: If the document does not declare valid namespaces.
    """
    if not isinstance(data, Mapping) or not isinstance(
        data.get("namespaces"), Mapping
    ):
        raise ConfigurationError("Namespace config must contain a 'namespaces' mapping")

    namespaces: dict[str, NamespaceConfig] = {}
    for name, raw in data["namespaces"].items():
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Namespace '{name}' must be a mapping")
        backend = str(raw.get("backend", "")).strip().lower()
        if backend not in BACKENDS:
            raise ConfigurationError(
                f"Namespace '{name}' has unsupported backend '{backend}' "
                f"(expected one of: {', '.join(sorted(BACKENDS))})"
            )
        options = {k: v for k, v in raw.items() if k != "backend"}
        namespaces[str(name)] = NamespaceConfig(str(name), backend, options)
    return namespaces


def load_namespaces(path: Path) -> dict[str, NamespaceConfig]:
    """
    Load namespace declarations from a YAML file.

    A missing file yields no namespaces.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read namespace config {path}: {exc}") from exc
    if data is None:
        return {}
    return parse_namespaces(data)
