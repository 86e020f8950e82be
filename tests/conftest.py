from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from streamops.core.adapters.repository import InMemoryApplicationRepository  # noqa: E402
from streamops.core.applications import AppConfig  # noqa: E402
from streamops.core.cluster import ClusterRegistry  # noqa: E402
from streamops.core.orchestrator import LifecycleOrchestrator  # noqa: E402
from streamops.core.planner import DeploymentPlanner  # noqa: E402

from fakes import FakeClock, FakeClusterClient  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cluster():
    return FakeClusterClient()


@pytest.fixture
def repo():
    return InMemoryApplicationRepository()


@pytest.fixture
def orchestrator(repo, cluster, clock, tmp_path):
    return LifecycleOrchestrator(
        repo,
        ClusterRegistry.from_clients({"ns1": cluster}),
        DeploymentPlanner(tmp_path / "backups"),
        start_timeout=30,
        cancel_timeout=20,
        poll_interval=5,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def config(tmp_path):
    artifact = tmp_path / "job1.jar"
    artifact.write_bytes(b"jar")
    return AppConfig(artifact=str(artifact), parallelism=2, memory_mb=1024)
