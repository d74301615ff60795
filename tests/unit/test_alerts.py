"""Tests for the alert engine."""

from qontrol.data.models import (
    Alert,
    AlertCategory,
    AlertSeverity,
    CapacityProjection,
    ClusterKind,
    ClusterType,
    ProjectionConfidence,
    UnhealthyDisk,
    UnhealthyPsu,
)
from qontrol.insights.alerts import cluster_alerts, generate_alerts
from qontrol.insights.capacity import TB, compute_projection


class TestClusterAlerts:
    def test_healthy_cluster_has_no_alerts(self, cluster_factory):
        assert cluster_alerts(cluster_factory("A")) == []

    def test_offline_nodes_by_id(self, cluster_factory):
        status = cluster_factory("A", nodes=6, online=4)
        status.nodes.offline_ids = [2, 4]

        alerts = cluster_alerts(status)
        assert [a.message for a in alerts] == ["node 2: OFFLINE", "node 4: OFFLINE"]
        assert all(a.severity == AlertSeverity.CRITICAL for a in alerts)
        assert all(a.cluster == "a-cluster" for a in alerts)

    def test_offline_nodes_without_ids(self, cluster_factory):
        alerts = cluster_alerts(cluster_factory("A", nodes=6, online=5))
        assert len(alerts) == 1
        assert alerts[0].message == "1 node(s) offline"
        assert alerts[0].category == AlertCategory.NODE_OFFLINE

    def test_data_at_risk(self, cluster_factory):
        status = cluster_factory("A")
        status.health.data_at_risk = True

        alerts = cluster_alerts(status)
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].category == AlertCategory.DATA_AT_RISK

    def test_disks_with_details(self, cluster_factory):
        status = cluster_factory("A")
        status.health.disks_unhealthy = 2
        status.health.unhealthy_disk_details = [
            UnhealthyDisk(1, "3", "HDD", "missing"),
            UnhealthyDisk(2, "7", "SSD", "dead"),
        ]

        alerts = cluster_alerts(status)
        assert len(alerts) == 1
        assert alerts[0].message == "2 disk(s) unhealthy (node 1, bay 3, HDD; node 2, bay 7, SSD)"
        assert alerts[0].severity == AlertSeverity.WARNING

    def test_disks_count_only(self, cluster_factory):
        status = cluster_factory("A")
        status.health.disks_unhealthy = 3

        assert cluster_alerts(status)[0].message == "3 disk(s) unhealthy"

    def test_one_alert_per_unhealthy_psu(self, cluster_factory):
        status = cluster_factory("A")
        status.health.psus_unhealthy = 2
        status.health.unhealthy_psu_details = [
            UnhealthyPsu(1, "left", "PSU1", "FAILED"),
            UnhealthyPsu(3, "right", "PSU2", "NO_POWER"),
        ]

        alerts = cluster_alerts(status)
        assert [a.message for a in alerts] == ["PSU issue (node 1, left)", "PSU issue (node 3, right)"]
        assert {a.category for a in alerts} == {AlertCategory.PSU_UNHEALTHY}

    def test_protection_degraded(self, cluster_factory):
        status = cluster_factory("A")
        status.health.remaining_node_failures = 0
        status.health.remaining_drive_failures = 0

        alerts = cluster_alerts(status)
        assert [a.message for a in alerts] == [
            "fault tolerance degraded (0 node failures remaining)",
            "fault tolerance degraded (0 drive failures remaining)",
        ]

    def test_unknown_protection_is_not_degraded(self, cluster_factory):
        status = cluster_factory("A")
        status.health.remaining_node_failures = None
        status.health.remaining_drive_failures = 1
        assert cluster_alerts(status) == []

    def test_projection_beyond_threshold_is_quiet(self, cluster_factory):
        status = cluster_factory("A")
        status.capacity.projection = CapacityProjection(TB, 200, ProjectionConfidence.HIGH)
        assert cluster_alerts(status) == []

    def test_cloud_projection_message(self, cluster_factory):
        status = cluster_factory("A", cluster_type=ClusterType(ClusterKind.CNQ_AWS))
        status.capacity.projection = CapacityProjection(TB, 3, ProjectionConfidence.LOW)

        alerts = cluster_alerts(status)
        assert alerts[0].category == AlertCategory.CAPACITY_PROJECTION
        assert "consider increasing capacity clamp" in alerts[0].message


class TestGenerateAlerts:
    def test_node_offline_and_projection_sorted_by_severity(self, cluster_factory, growing_history):
        status = cluster_factory("A", nodes=6, online=5)
        status.nodes.offline_ids = [4]
        status.capacity.projection = compute_projection(growing_history, 594 * TB, 605 * TB)

        alerts = generate_alerts([status])
        assert len(alerts) == 2
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].message == "node 4: OFFLINE"
        assert alerts[1].severity == AlertSeverity.WARNING
        assert alerts[1].category == AlertCategory.CAPACITY_PROJECTION
        assert "days" in alerts[1].message

    def test_sort_is_stable_within_severity(self, cluster_factory):
        a = cluster_factory("A")
        a.health.disks_unhealthy = 1
        b = cluster_factory("B")
        b.health.disks_unhealthy = 1
        seed = [Alert(AlertSeverity.WARNING, "C", "unreachable", AlertCategory.CONNECTIVITY)]

        alerts = generate_alerts([a, b], seed_alerts=seed)
        assert [al.cluster for al in alerts] == ["C", "a-cluster", "b-cluster"]

    def test_critical_first_regardless_of_cluster_order(self, cluster_factory):
        a = cluster_factory("A")
        a.health.psus_unhealthy = 1
        b = cluster_factory("B")
        b.health.data_at_risk = True

        alerts = generate_alerts([a, b])
        assert [al.severity for al in alerts] == [AlertSeverity.CRITICAL, AlertSeverity.WARNING]

    def test_deterministic(self, cluster_factory):
        status = cluster_factory("A", nodes=4, online=2)
        status.nodes.offline_ids = [3, 4]
        assert generate_alerts([status]) == generate_alerts([status])
