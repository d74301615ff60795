"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

import yaml

from qontrol import logs
from qontrol.config import Config, Profile
from qontrol.data.models import (
    CapacityStatus,
    ClusterStatus,
    ClusterType,
    FileStats,
    NodeNetworkInfo,
    NodeStatus,
)

TB = 1_099_511_627_776


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_dirs(temp_data_dir, monkeypatch):
    """Keep every test away from the real config and cache directories."""
    monkeypatch.setenv("QONTROL_CONFIG_DIR", str(temp_data_dir / "config"))
    monkeypatch.setenv("QONTROL_CACHE_DIR", str(temp_data_dir / "cache"))
    monkeypatch.delenv("QONTROL_PROFILE", raising=False)
    logs.set_verbosity(logs.WARNING)


@pytest.fixture
def profile_store(temp_data_dir):
    """A saved profile store with three clusters, A as default."""
    path = temp_data_dir / "config" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(
            {
                "default_profile": "A",
                "profiles": {
                    "A": {"host": "a.example.com", "token": "access-v1:aaaaaaaaaaaaaaaa"},
                    "B": {"host": "b.example.com", "port": 8443, "token": "access-v1:bbbbbbbbbbbbbbbb"},
                    "C": {"host": "10.0.0.3", "token": "tok-c", "insecure": True},
                },
            },
            sort_keys=False,
        )
    )
    return Config.load(str(path))


@pytest.fixture
def profile_a():
    return Profile(name="A", host="a.example.com", token="tok-a")


def make_cluster_status(
    profile="A",
    name=None,
    nodes=5,
    online=None,
    used_tb=594,
    total_tb=605,
    cluster_type=None,
    latency_ms=12,
):
    """A reachable, healthy ClusterStatus with round capacity numbers."""
    online = nodes if online is None else online
    total = total_tb * TB
    used = used_tb * TB
    return ClusterStatus(
        profile_name=profile,
        cluster_name=name or f"{profile.lower()}-cluster",
        cluster_uuid=f"uuid-{profile.lower()}",
        version="7.2.3.2",
        cluster_type=cluster_type or ClusterType.on_prem(["Q0626"]),
        latency_ms=latency_ms,
        nodes=NodeStatus(
            total=nodes,
            online=online,
            per_node=[NodeNetworkInfo(node_id=i, connections=i) for i in range(1, nodes + 1)],
        ),
        capacity=CapacityStatus(
            total_bytes=total,
            used_bytes=used,
            free_bytes=total - used,
            used_pct=used / total * 100.0,
        ),
        files=FileStats(total_files=1000, total_directories=10, total_snapshots=2, snapshot_bytes=TB),
    )


@pytest.fixture
def cluster_factory():
    return make_cluster_status


@pytest.fixture
def sample_nodes():
    """Cluster-nodes response for a 3-node on-prem cluster, node 3 offline."""
    return [
        {"id": 1, "node_name": "qumulo-1", "node_status": "online", "model_number": "Q0626"},
        {"id": 2, "node_name": "qumulo-2", "node_status": "online", "model_number": "Q0626"},
        {"id": 3, "node_name": "qumulo-3", "node_status": "offline", "model_number": "Q0626"},
    ]


@pytest.fixture
def sample_chassis():
    """Chassis response with one failed PSU on node 2."""
    return [
        {
            "id": 1,
            "psu_statuses": [
                {"name": "PSU1", "location": "left", "state": "GOOD"},
                {"name": "PSU2", "location": "right", "state": "GOOD"},
            ],
        },
        {
            "id": 2,
            "psu_statuses": [
                {"name": "PSU1", "location": "left", "state": "GOOD"},
                {"name": "PSU2", "location": "right", "state": "FAILED"},
            ],
        },
    ]


@pytest.fixture
def growing_history():
    """Thirty daily capacity samples growing by 1 TB/day up to 594 TB."""
    return [
        {"capacity_used": str((594 - 29 + day) * TB), "total_usable": str(605 * TB)}
        for day in range(30)
    ]
