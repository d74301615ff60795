"""Tests for status data models."""

from qontrol.data.models import (
    Aggregates,
    Alert,
    AlertCategory,
    AlertSeverity,
    CachedClusterData,
    CapacityProjection,
    ClusterKind,
    ClusterStatus,
    ClusterType,
    HealthLevel,
    NodeStatus,
    ProjectionConfidence,
    UnhealthyDisk,
    UnhealthyPsu,
)


class TestClusterType:
    def test_display_labels(self):
        assert str(ClusterType(ClusterKind.CNQ_AWS)) == "CNQ-AWS"
        assert str(ClusterType(ClusterKind.ANQ_AZURE)) == "ANQ-Azure"
        assert str(ClusterType.on_prem()) == "On-Prem"
        assert str(ClusterType.on_prem(["C192T", "Q0626"])) == "On-Prem (C192T, Q0626)"

    def test_is_cloud(self):
        assert ClusterType(ClusterKind.CNQ_AWS).is_cloud
        assert ClusterType(ClusterKind.ANQ_AZURE).is_cloud
        assert not ClusterType.on_prem(["Q0626"]).is_cloud

    def test_round_trip(self):
        original = ClusterType.on_prem(["Q0626"])
        assert ClusterType.from_dict(original.to_dict()) == original


class TestAlertSeverity:
    def test_rank_order(self):
        ranks = [s.rank for s in (AlertSeverity.CRITICAL, AlertSeverity.WARNING, AlertSeverity.INFO)]
        assert ranks == sorted(ranks)
        assert AlertSeverity.CRITICAL.rank < AlertSeverity.INFO.rank

    def test_alert_to_dict_uses_lowercase_values(self):
        alert = Alert(AlertSeverity.WARNING, "b-cluster", "unreachable", AlertCategory.CONNECTIVITY)
        assert alert.to_dict() == {
            "severity": "warning",
            "cluster": "b-cluster",
            "message": "unreachable",
            "category": "connectivity",
        }


class TestNodeStatus:
    def test_offline_never_negative(self):
        assert NodeStatus(total=3, online=5).offline == 0
        assert NodeStatus(total=6, online=5).offline == 1


class TestAggregates:
    def test_derived_counts(self):
        agg = Aggregates(cluster_count=3, reachable_count=2, total_nodes=8, online_nodes=7)
        assert agg.unreachable_count == 1
        assert agg.offline_nodes == 1


class TestClusterStatusSerialization:
    def test_round_trip_with_nested_details(self, cluster_factory):
        status = cluster_factory("A", nodes=6, online=5)
        status.nodes.offline_ids = [4]
        status.nodes.per_node[0].connection_breakdown = {"NFS": 3, "SMB": 1}
        status.capacity.projection = CapacityProjection(
            growth_rate_bytes_per_day=1.5e12, days_until_full=11, confidence=ProjectionConfidence.HIGH
        )
        status.health.level = HealthLevel.DEGRADED
        status.health.issues = ["1 disk(s) unhealthy"]
        status.health.disks_unhealthy = 1
        status.health.unhealthy_disk_details = [UnhealthyDisk(2, "7", "SSD", "missing")]
        status.health.psus_unhealthy = 1
        status.health.unhealthy_psu_details = [UnhealthyPsu(3, "right", "PSU2", "FAILED")]
        status.timing = {"version": 12, "nodes": 30}

        restored = ClusterStatus.from_dict(status.to_dict())
        assert restored == status

    def test_to_dict_is_json_ready(self, cluster_factory):
        data = cluster_factory("A").to_dict()
        assert data["cluster_type"] == {"kind": "on-prem", "models": ["Q0626"]}
        assert data["health"]["level"] == "healthy"
        assert data["capacity"]["projection"] is None

    def test_cached_entry_round_trip(self, cluster_factory):
        entry = CachedClusterData(profile="A", data=cluster_factory("A"), cached_at="2026-01-02T03:04:05Z")
        assert CachedClusterData.from_dict(entry.to_dict()) == entry
