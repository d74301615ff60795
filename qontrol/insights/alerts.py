"""Alert engine.

Derives a severity-sorted alert list from collected cluster records. The
engine is a pure function of its inputs: alerts are never stored and are
regenerated on every run.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..data.models import Alert, AlertCategory, AlertSeverity, ClusterStatus
from .capacity import format_warning, should_warn


def generate_alerts(clusters: Iterable[ClusterStatus], seed_alerts: Optional[List[Alert]] = None) -> List[Alert]:
    """Build the alert list for a fleet.

    Args:
        clusters: Collected (or cached) cluster records, in display order
        seed_alerts: Connectivity alerts produced by the fleet collector

    Returns:
        Alerts stably sorted by severity, so clusters keep their collection
        order within each severity.
    """
    alerts: List[Alert] = list(seed_alerts or [])
    for cluster in clusters:
        alerts.extend(cluster_alerts(cluster))
    alerts.sort(key=lambda a: a.severity.rank)
    return alerts


def cluster_alerts(cluster: ClusterStatus) -> List[Alert]:
    """All alerts for one cluster, unsorted."""
    alerts: List[Alert] = []
    _check_node_offline(cluster, alerts)
    _check_data_at_risk(cluster, alerts)
    _check_disk_health(cluster, alerts)
    _check_psu_health(cluster, alerts)
    _check_protection_degraded(cluster, alerts)
    _check_capacity_projection(cluster, alerts)
    return alerts


def _alert(cluster: ClusterStatus, severity: AlertSeverity, category: AlertCategory, message: str) -> Alert:
    return Alert(severity=severity, cluster=cluster.cluster_name, message=message, category=category)


def _check_node_offline(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    nodes = cluster.nodes
    if nodes.online >= nodes.total:
        return
    if nodes.offline_ids:
        for node_id in nodes.offline_ids:
            alerts.append(_alert(cluster, AlertSeverity.CRITICAL, AlertCategory.NODE_OFFLINE, f"node {node_id}: OFFLINE"))
    else:
        alerts.append(
            _alert(cluster, AlertSeverity.CRITICAL, AlertCategory.NODE_OFFLINE, f"{nodes.offline} node(s) offline")
        )


def _check_data_at_risk(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    if cluster.health.data_at_risk:
        alerts.append(
            _alert(cluster, AlertSeverity.CRITICAL, AlertCategory.DATA_AT_RISK, "DATA AT RISK - restriper active")
        )


def _check_disk_health(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    health = cluster.health
    if health.disks_unhealthy == 0:
        return
    if health.unhealthy_disk_details:
        details = "; ".join(
            f"node {d.node_id}, bay {d.bay}, {d.disk_type}" for d in health.unhealthy_disk_details
        )
        message = f"{len(health.unhealthy_disk_details)} disk(s) unhealthy ({details})"
    else:
        message = f"{health.disks_unhealthy} disk(s) unhealthy"
    alerts.append(_alert(cluster, AlertSeverity.WARNING, AlertCategory.DISK_UNHEALTHY, message))


def _check_psu_health(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    health = cluster.health
    if health.psus_unhealthy == 0:
        return
    if health.unhealthy_psu_details:
        for psu in health.unhealthy_psu_details:
            alerts.append(
                _alert(
                    cluster,
                    AlertSeverity.WARNING,
                    AlertCategory.PSU_UNHEALTHY,
                    f"PSU issue (node {psu.node_id}, {psu.location})",
                )
            )
    else:
        alerts.append(
            _alert(
                cluster, AlertSeverity.WARNING, AlertCategory.PSU_UNHEALTHY, f"{health.psus_unhealthy} PSU(s) unhealthy"
            )
        )


def _check_protection_degraded(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    health = cluster.health
    if health.remaining_node_failures == 0:
        alerts.append(
            _alert(
                cluster,
                AlertSeverity.WARNING,
                AlertCategory.PROTECTION_DEGRADED,
                "fault tolerance degraded (0 node failures remaining)",
            )
        )
    if health.remaining_drive_failures == 0:
        alerts.append(
            _alert(
                cluster,
                AlertSeverity.WARNING,
                AlertCategory.PROTECTION_DEGRADED,
                "fault tolerance degraded (0 drive failures remaining)",
            )
        )


def _check_capacity_projection(cluster: ClusterStatus, alerts: List[Alert]) -> None:
    projection = cluster.capacity.projection
    if projection is not None and should_warn(projection, cluster.cluster_type):
        alerts.append(
            _alert(
                cluster,
                AlertSeverity.WARNING,
                AlertCategory.CAPACITY_PROJECTION,
                format_warning(projection, cluster.cluster_type),
            )
        )
