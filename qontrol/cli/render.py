"""Text and JSON output for the status, cdf and timing views."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import networkx as nx

from ..data.cdf import (
    CdfEdge,
    CdfNode,
    PortalEdge,
    ProfiledCluster,
    ReplicationEdge,
    ReplicationJobStatus,
    UnknownCluster,
)
from ..data.models import (
    Alert,
    AlertCategory,
    AlertSeverity,
    ClusterKind,
    ClusterStatus,
    EnvironmentStatus,
    NodeNetworkInfo,
)
from ..data.persistence import utc_now_rfc3339
from ..graph.builder import edges_in_order, nodes_in_order
from ..insights import capacity

HEADER_WIDTH = 80
CAPACITY_BAR_WIDTH = 20
NIC_BAR_WIDTH = 10
CONNECTION_BAR_WIDTH = 8

KB = 1024.0
MB = KB * 1024
GB = MB * 1024
TB = GB * 1024
PB = TB * 1024

SEVERITY_ICONS = {
    AlertSeverity.CRITICAL: "✗",
    AlertSeverity.WARNING: "⚠",
    AlertSeverity.INFO: "ℹ",
}

CACHED_FROM_MARKER = "cached data from "


# =============================================================================
# Formatting helpers
# =============================================================================


def format_bytes(num_bytes: int) -> str:
    """Binary units, highest unit with a value >= 1."""
    b = float(num_bytes)
    if b >= PB:
        return f"{b / PB:.2f} PB"
    if b >= TB:
        return f"{b / TB:.1f} TB"
    if b >= GB:
        return f"{b / GB:.1f} GB"
    if b >= MB:
        return f"{b / MB:.1f} MB"
    if b >= KB:
        return f"{b / KB:.1f} KB"
    return f"{num_bytes} B"


def format_number(n: int) -> str:
    return f"{n:,}"


def format_throughput(bytes_per_sec: float) -> str:
    if bytes_per_sec >= GB:
        return f"{bytes_per_sec / GB:.1f} GB/s"
    if bytes_per_sec >= MB:
        return f"{bytes_per_sec / MB:.1f} MB/s"
    if bytes_per_sec >= KB:
        return f"{bytes_per_sec / KB:.1f} KB/s"
    return f"{bytes_per_sec:.0f} B/s"


def format_duration_ms(ms: int) -> str:
    return f"{ms:,}ms"


def parse_rfc3339(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_duration_ago(when: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = int((now - when).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds >= 86400:
        return f"{seconds // 86400}d ago"
    if seconds >= 3600:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 60}m ago"


def progress_bar(pct: float, width: int = CAPACITY_BAR_WIDTH) -> str:
    clamped = min(max(pct, 0.0), 100.0)
    filled = int(round(clamped / 100.0 * width))
    return "█" * filled + "░" * (width - filled)


def connection_bar(count: int, max_count: int) -> str:
    if max_count <= 0 or count <= 0:
        return ""
    filled = math.ceil(count / max_count * CONNECTION_BAR_WIDTH)
    return "█" * max(filled, 1)


def nic_bar(utilization_pct: float) -> str:
    clamped = min(max(utilization_pct, 0.0), 100.0)
    filled = int(round(clamped / 100.0 * NIC_BAR_WIDTH))
    return "▸" * filled + "░" * (NIC_BAR_WIDTH - filled)


def format_link_speed(gbps: float) -> str:
    if gbps >= 1.0 and gbps == math.floor(gbps):
        return f"{gbps:.0f}"
    return f"{gbps:.1f}"


def format_latency_range(clusters: List[ClusterStatus]) -> str:
    latencies = [c.latency_ms for c in clusters if c.reachable]
    if not latencies:
        return ""
    low, high = min(latencies), max(latencies)
    return f"{low}ms" if low == high else f"{low}-{high}ms"


def _section_title(title: str) -> str:
    head = f"═══ {title} "
    return head + "═" * max(0, HEADER_WIDTH - len(head))


# =============================================================================
# Status view
# =============================================================================


def _overview_lines(status: EnvironmentStatus) -> List[str]:
    agg = status.aggregates
    lines = [_section_title("Environment Overview")]

    if agg.unreachable_count > 0:
        clusters = f"  Clusters: {agg.cluster_count} ({agg.reachable_count} healthy, {agg.unreachable_count} unreachable)"
    else:
        clusters = f"  Clusters: {agg.cluster_count} (all healthy)"
    latency = format_latency_range(status.clusters)
    if latency:
        clusters += " " * max(4, 40 - len(clusters)) + f"Latency: {latency}"
    lines.append(clusters)

    if agg.offline_nodes > 0:
        lines.append(f"  Nodes:    {agg.total_nodes} total ({agg.online_nodes} online, {agg.offline_nodes} offline)")
    else:
        lines.append(f"  Nodes:    {agg.total_nodes} total ({agg.online_nodes} online)")

    lines.append(
        f"  Capacity: {format_bytes(agg.capacity.used_bytes)} / {format_bytes(agg.capacity.total_bytes)}"
        f" ({agg.capacity.used_pct:.1f}%)"
    )
    lines.append(
        f"  Files:    {format_number(agg.files.total_files)}"
        f"    Dirs: {format_number(agg.files.total_directories)}"
        f"    Snapshots: {format_number(agg.files.total_snapshots)} ({format_bytes(agg.files.snapshot_bytes)})"
    )
    return lines


def _alert_lines(alerts: List[Alert]) -> List[str]:
    lines = [_section_title("Alerts")]
    if not alerts:
        lines.append("  No issues detected.")
    for alert in alerts:
        lines.append(f"  {SEVERITY_ICONS[alert.severity]} {alert.cluster}: {alert.message}")
    return lines


def _type_label(cluster: ClusterStatus) -> str:
    kind = cluster.cluster_type.kind
    if kind == ClusterKind.CNQ_AWS:
        return "CNQ · AWS"
    if kind == ClusterKind.ANQ_AZURE:
        return "ANQ · Azure"
    if cluster.cluster_type.models:
        return "on-prem · " + ", ".join(cluster.cluster_type.models)
    return "on-prem"


def _cluster_header(cluster: ClusterStatus) -> str:
    right = f"{_type_label(cluster)} · {cluster.version}"
    if cluster.reachable:
        right += f" · {cluster.latency_ms}ms"
    if cluster.profile_name != cluster.cluster_name:
        label = f"  {cluster.profile_name} ({cluster.cluster_name})"
    else:
        label = f"  {cluster.cluster_name}"
    gap = max(2, HEADER_WIDTH - len(label) - len(right))
    return label + " " * gap + right


def find_last_seen(cluster: ClusterStatus, alerts: List[Alert]) -> Optional[Tuple[str, str]]:
    """(timestamp, relative age) from the cluster's cached-data connectivity alert."""
    for alert in alerts:
        if alert.category != AlertCategory.CONNECTIVITY:
            continue
        if alert.cluster not in (cluster.cluster_name, cluster.profile_name):
            continue
        pos = alert.message.find(CACHED_FROM_MARKER)
        if pos < 0:
            continue
        when = parse_rfc3339(alert.message[pos + len(CACHED_FROM_MARKER):])
        if when is not None:
            return when.strftime("%Y-%m-%d %H:%M"), format_duration_ago(when)
    return None


def _files_line(cluster: ClusterStatus) -> str:
    f = cluster.files
    return (
        f"  Files:    {format_number(f.total_files)}"
        f"    Dirs: {format_number(f.total_directories)}"
        f"    Snapshots: {format_number(f.total_snapshots)}"
    )


def format_nic_column(node: NodeNetworkInfo, cluster: ClusterStatus) -> str:
    if node.nic_throughput_bps is None:
        return "—"
    gbps = node.nic_throughput_bps / 1e9
    if cluster.cluster_type.is_cloud:
        return f"{gbps:>4.1f} Gbps"
    if node.nic_link_speed_bps is None:
        return f"{gbps:.1f} Gbps"
    link = format_link_speed(node.nic_link_speed_bps / 1e9)
    utilization = node.nic_utilization_pct or 0.0
    pct = "<1%" if 0.0 < utilization < 1.0 else f"{utilization:.0f}%"
    return f"{gbps:>4.1f} / {link} Gbps {nic_bar(utilization)}  {pct}"


def _network_lines(cluster: ClusterStatus) -> List[str]:
    details = cluster.nodes.per_node
    max_conns = max([n.connections for n in details] + [1])
    lines = ["", "  Connections            NIC Throughput"]
    for node in details:
        label = f"node{node.node_id}:"
        if node.node_id in cluster.nodes.offline_ids:
            lines.append(f"  {label:<8}—  OFFLINE")
            continue
        bar = connection_bar(node.connections, max_conns)
        left = f"  {label:<8}{node.connections:>3}" + (f"  {bar}" if bar else "")
        lines.append(f"{left:<25}node{node.node_id}: {format_nic_column(node, cluster)}")
    return lines


def _cluster_lines(cluster: ClusterStatus, alerts: List[Alert]) -> List[str]:
    lines = ["", _cluster_header(cluster), "  " + "─" * (HEADER_WIDTH - 2)]
    cap = cluster.capacity
    used = f"{format_bytes(cap.used_bytes)} / {format_bytes(cap.total_bytes)} ({cap.used_pct:.1f}%)"

    if not cluster.reachable:
        last_seen = find_last_seen(cluster, alerts)
        if last_seen:
            lines.append(f"  ✗ UNREACHABLE - last seen {last_seen[0]} ({last_seen[1]})")
        else:
            lines.append("  ✗ UNREACHABLE")
        lines.append(f"  Capacity: {used}")
        lines.append(_files_line(cluster))
        lines.append("  (stale data from last successful poll)")
        return lines

    nodes = cluster.nodes
    if nodes.offline_ids:
        offline = ", ".join(f"node {i}" for i in nodes.offline_ids)
        lines.append(f"  Nodes:    {nodes.online}/{nodes.total} online ({offline}: OFFLINE)")
    else:
        lines.append(f"  Nodes:    {nodes.online}/{nodes.total} online")

    lines.append(f"  Capacity: {used} {progress_bar(cap.used_pct)}  snaps: {format_bytes(cap.snapshot_bytes)}")
    lines.append(_files_line(cluster))

    act = cluster.activity
    if act.is_idle:
        lines.append("  Activity: idle")
    else:
        lines.append(
            f"  Activity: R: {act.read_iops:.0f} IOPS / {format_throughput(act.read_throughput_bps)}"
            f"    W: {act.write_iops:.0f} IOPS / {format_throughput(act.write_throughput_bps)}"
        )

    projection = cap.projection
    if projection is not None and capacity.should_warn(projection, cluster.cluster_type):
        lines.append(f"  ⚠ {capacity.format_warning(projection, cluster.cluster_type)}")

    if nodes.per_node:
        lines.extend(_network_lines(cluster))
    return lines


def render_status(status: EnvironmentStatus) -> str:
    """Full terminal view for ``qontrol status``."""
    lines = _overview_lines(status)
    lines.extend(_alert_lines(status.alerts))
    for cluster in status.clusters:
        lines.extend(_cluster_lines(cluster, status.alerts))
    return "\n".join(lines) + "\n"


def _cluster_to_json(c: ClusterStatus) -> Dict[str, Any]:
    projection = c.capacity.projection
    return {
        "profile": c.profile_name,
        "cluster_name": c.cluster_name,
        "cluster_uuid": c.cluster_uuid,
        "version": c.version,
        "cluster_type": c.cluster_type.kind.value,
        "hardware_skus": list(c.cluster_type.models),
        "reachable": c.reachable,
        "stale": c.stale,
        "latency_ms": c.latency_ms,
        "nodes": {
            "total": c.nodes.total,
            "online": c.nodes.online,
            "offline": c.nodes.offline,
            "details": [
                {
                    "node_id": n.node_id,
                    "connections": n.connections,
                    "connection_breakdown": dict(n.connection_breakdown),
                    "nic_throughput_bps": n.nic_throughput_bps,
                    "nic_link_speed_bps": n.nic_link_speed_bps,
                    "nic_utilization_pct": n.nic_utilization_pct,
                }
                for n in c.nodes.per_node
            ],
        },
        "capacity": {
            "total_bytes": c.capacity.total_bytes,
            "used_bytes": c.capacity.used_bytes,
            "free_bytes": c.capacity.free_bytes,
            "snapshot_bytes": c.capacity.snapshot_bytes,
            "used_pct": c.capacity.used_pct,
            "projection": (
                {
                    "growth_rate_bytes_per_day": projection.growth_rate_bytes_per_day,
                    "days_to_full": projection.days_until_full,
                    "confidence": projection.confidence.value,
                }
                if projection
                else None
            ),
        },
        "activity": {
            "read_iops": c.activity.read_iops,
            "write_iops": c.activity.write_iops,
            "read_throughput_bps": c.activity.read_throughput_bps,
            "write_throughput_bps": c.activity.write_throughput_bps,
        },
        "files": {
            "total_files": c.files.total_files,
            "total_directories": c.files.total_directories,
            "total_snapshots": c.files.total_snapshots,
        },
        "health": {
            "level": c.health.level.value,
            "issues": list(c.health.issues),
            "disks_unhealthy": c.health.disks_unhealthy,
            "psus_unhealthy": c.health.psus_unhealthy,
            "data_at_risk": c.health.data_at_risk,
            "remaining_node_failures": c.health.remaining_node_failures,
            "remaining_drive_failures": c.health.remaining_drive_failures,
            "protection_type": c.health.protection_type,
        },
    }


def status_to_json(status: EnvironmentStatus, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Stable JSON document for ``status --json``. Optional fields are null, never omitted."""
    agg = status.aggregates
    return {
        "timestamp": timestamp or utc_now_rfc3339(),
        "aggregates": {
            "cluster_count": agg.cluster_count,
            "healthy_count": agg.reachable_count,
            "unreachable_count": agg.unreachable_count,
            "total_nodes": agg.total_nodes,
            "online_nodes": agg.online_nodes,
            "offline_nodes": agg.offline_nodes,
            "total_capacity_bytes": agg.capacity.total_bytes,
            "used_capacity_bytes": agg.capacity.used_bytes,
            "free_capacity_bytes": agg.capacity.free_bytes,
            "snapshot_bytes": agg.capacity.snapshot_bytes,
            "total_files": agg.files.total_files,
            "total_directories": agg.files.total_directories,
            "total_snapshots": agg.files.total_snapshots,
            "latency_min_ms": agg.latency_min_ms,
            "latency_max_ms": agg.latency_max_ms,
        },
        "alerts": [a.to_dict() for a in status.alerts],
        "clusters": [_cluster_to_json(c) for c in status.clusters],
    }


# =============================================================================
# Timing report
# =============================================================================


def render_timing_report(clusters: List[ClusterStatus]) -> str:
    """Per-step durations (slowest first) and per-cluster wall clock totals."""
    calls = [
        (c.profile_name, step, ms)
        for c in clusters
        for step, ms in c.timing.items()
        if step != "total"
    ]
    if not calls:
        return ""
    calls.sort(key=lambda e: e[2], reverse=True)
    cw = max(len(e[0]) for e in calls)
    aw = max(len(e[1]) for e in calls)

    lines = ["", "API Call Timing (sorted slowest first):"]
    for cluster, step, ms in calls:
        lines.append(f"  {cluster:<{cw}}  {step:<{aw}}  {format_duration_ms(ms):>10}")

    totals = sorted(
        ((c.profile_name, c.timing["total"]) for c in clusters if "total" in c.timing),
        key=lambda e: e[1],
        reverse=True,
    )
    if totals:
        nw = max(len(name) for name, _ in totals)
        lines.extend(["", "Cluster totals (wall clock):"])
        for i, (name, ms) in enumerate(totals):
            suffix = "  (slowest)" if i == 0 and len(totals) > 1 else ""
            lines.append(f"  {name:<{nw}}  {format_duration_ms(ms):>10}{suffix}")
    return "\n".join(lines) + "\n"


# =============================================================================
# Data fabric table
# =============================================================================


def node_label(node: CdfNode) -> str:
    if isinstance(node, ProfiledCluster):
        return node.name
    if isinstance(node, UnknownCluster):
        return f"{node.address} (unknown)" if node.address else "unknown"
    return f"s3://{node.bucket}"


def truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 1] + "…"


def _strip_prefix(value: str, prefix: str) -> str:
    return value[len(prefix):] if value.startswith(prefix) else value


def shorten_mode(mode: str) -> str:
    return {"snapshot_policy_with_continuous": "snap+cont", "snapshot_policy": "snapshot"}.get(mode, mode)


def format_replication_status(state: Optional[str], job_state: Optional[str]) -> str:
    if job_state is not None:
        return _strip_prefix(job_state, "REPLICATION_").lower().replace("_", " ")
    if state is not None:
        return state.lower()
    return "?"


def format_recovery_lag(recovery_point: Optional[str], now: Optional[datetime] = None) -> str:
    if recovery_point is None:
        return "-"
    when = parse_rfc3339(recovery_point)
    if when is None:
        return recovery_point
    seconds = int(((now or datetime.now(timezone.utc)) - when).total_seconds())
    if seconds < 0:
        return "0s"
    if seconds >= 86400:
        return f"{seconds // 86400}d ago"
    if seconds >= 3600:
        return f"{seconds // 3600}h ago"
    if seconds >= 60:
        return f"{seconds // 60}m ago"
    return f"{seconds}s ago"


def format_job_throughput(job: Optional[ReplicationJobStatus]) -> str:
    if job is None or job.throughput_current is None:
        return "-"
    try:
        return format_throughput(float(job.throughput_current))
    except ValueError:
        return job.throughput_current


def edge_columns(edge: CdfEdge) -> Tuple[str, str, str, str, str]:
    """(type, mode, status, lag, throughput) for one table row."""
    if isinstance(edge, PortalEdge):
        mode = _strip_prefix(edge.portal_type, "PORTAL_").lower().replace("_", "-")
        return "portal", mode, edge.status.lower(), "-", "-"
    if isinstance(edge, ReplicationEdge):
        mode = shorten_mode(_strip_prefix(edge.mode, "REPLICATION_").lower() if edge.mode else "?")
        status = "disabled" if not edge.enabled else format_replication_status(edge.state, edge.job_state)
        return "repl", mode, status, format_recovery_lag(edge.recovery_point), format_job_throughput(edge.replication_job_status)
    direction = {"COPY_TO_OBJECT": "copy-to", "COPY_FROM_OBJECT": "copy-from"}.get(edge.direction or "?", edge.direction or "?")
    status = _strip_prefix((edge.state or "?").lower(), "replication_").replace("_", " ")
    return "S3", direction, status, "-", "-"


def render_cdf_table(graph: nx.MultiDiGraph) -> str:
    """Grouped adjacency table: one heading per node with its outgoing edges."""
    if graph.number_of_nodes() == 0:
        return "(no CDF relationships found)\n"

    lines = [
        _section_title("Data Fabric Status"),
        f"  {graph.number_of_nodes()} clusters, {graph.number_of_edges()} relationships",
        "",
    ]
    outgoing: Dict[int, List[Tuple[int, CdfEdge]]] = {}
    for u, v, edge in edges_in_order(graph):
        outgoing.setdefault(u, []).append((v, edge))

    nodes = sorted(nodes_in_order(graph), key=lambda item: node_label(item[1]))
    for idx, node in nodes:
        edges = outgoing.get(idx, [])
        if not edges and graph.in_degree(idx) > 0:
            continue

        label, address = node_label(node), node.address
        lines.append(label if not address or address in label else f"{label} ({address})")
        if not edges:
            lines.append("  (no outgoing relationships)")
        else:
            lines.append(f"  {'TARGET':<24} {'TYPE':<8} {'MODE':<14} {'STATUS':<14} {'LAG':<14} THROUGHPUT")
            for target, edge in edges:
                kind, mode, status, lag, throughput = edge_columns(edge)
                target_name = truncate(node_label(graph.nodes[target]["node"]), 24)
                marker = "  ✗" if edge.is_problem() else ""
                lines.append(f"  {target_name:<24} {kind:<8} {mode:<14} {status:<14} {lag:<14} {throughput}{marker}")
        lines.append("")
    return "\n".join(lines) + "\n"
