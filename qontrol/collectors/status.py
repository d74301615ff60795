"""Per-cluster status probe.

One probe is a fixed sequence of API calls against a single cluster:

1. settings, version and nodes are required; any failure makes the cluster
   Unreachable.
2. capacity, activity, file counts, network, capacity history and health
   signals are best effort; a failed call is logged and leaves zeros or None.
3. if the profile has no cluster UUID yet, /v1/node/state is read and the
   UUID handed to the caller for saving.

Response parsing lives in small module-level functions so it can be tested
against canned payloads without a client.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import requests

from ..client import QumuloClient
from ..config import Profile
from ..data.detection import detect_cluster_type
from ..data.models import (
    ActivityStatus,
    CapacityProjection,
    CapacityStatus,
    ClusterStatus,
    ClusterType,
    FileStats,
    HealthLevel,
    HealthStatus,
    NodeNetworkInfo,
    NodeStatus,
    PsuEntry,
    UnhealthyDisk,
    UnhealthyPsu,
    Unreachable,
)
from ..errors import QontrolError
from ..insights.capacity import compute_projection, parse_byte_value
from ..logs import DEBUG, WARNING, log
from .base import BaseCollector

CAPACITY_ISSUE_PCT = 90.0
CAPACITY_HISTORY_DAYS = 30
NIC_SAMPLE_INTERVAL = 1.0  # seconds between the two network-status reads

CONNECTION_TYPE_PREFIX = "CONNECTION_TYPE_"
PRIMARY_NIC_NAME = "bond0"
PRIMARY_NIC_USES = ("FRONTEND_AND_BACKEND", "FRONTEND")

READ_IOPS_TYPES = ("file-iops-read", "metadata-iops-read")
WRITE_IOPS_TYPES = ("file-iops-write", "metadata-iops-write")
READ_THROUGHPUT_TYPE = "file-throughput-read"
WRITE_THROUGHPUT_TYPE = "file-throughput-write"

# Errors a best-effort step may hit; anything else is a bug and propagates.
SOFT_ERRORS = (QontrolError, requests.RequestException)

ProbeResult = Union[ClusterStatus, Unreachable]
NicStats = Dict[int, Tuple[Optional[int], Optional[int], Optional[float], Optional[int]]]


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def _byte_value(value: Any) -> int:
    parsed = parse_byte_value(value)
    return parsed if parsed is not None else 0


# =============================================================================
# Response parsers
# =============================================================================


def parse_nodes(nodes: List[Dict[str, Any]]) -> Tuple[int, int, List[int]]:
    """Return (total, online, offline_ids) from the cluster-nodes array."""
    total = len(nodes)
    online = 0
    offline_ids = []
    for node in nodes:
        status = node.get("node_status") if isinstance(node, dict) else None
        if isinstance(status, str) and status.lower() == "online":
            online += 1
            continue
        node_id = _as_int(node.get("id")) if isinstance(node, dict) else None
        if node_id is not None:
            offline_ids.append(node_id)
    return total, online, offline_ids


def parse_capacity(fs: Any) -> CapacityStatus:
    if not isinstance(fs, dict):
        return CapacityStatus()
    total = _byte_value(fs.get("total_size_bytes"))
    free = _byte_value(fs.get("free_size_bytes"))
    snapshot = _byte_value(fs.get("snapshot_size_bytes"))
    used = max(0, total - free)
    pct = used / total * 100.0 if total > 0 else 0.0
    return CapacityStatus(
        total_bytes=total,
        used_bytes=used,
        free_bytes=free,
        snapshot_bytes=snapshot,
        used_pct=pct,
    )


def sum_activity_rates(resp: Any, activity_type: str) -> float:
    """Sum ``rate`` over entries whose ``type`` matches ``activity_type``."""
    entries = resp.get("entries") if isinstance(resp, dict) else None
    if not isinstance(entries, list):
        return 0.0
    return sum(
        _as_float(e.get("rate"))
        for e in entries
        if isinstance(e, dict) and e.get("type") == activity_type
    )


def parse_recursive_aggregates(agg: Any) -> Tuple[int, int]:
    """Return (files, directories) summed over every page of the response."""
    files = dirs = 0
    pages = agg if isinstance(agg, list) else [agg]
    for page in pages:
        entries = page.get("files") if isinstance(page, dict) else None
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, dict):
                files += _byte_value(entry.get("num_files"))
                dirs += _byte_value(entry.get("num_directories"))
    return files, dirs


def normalize_connection_type(raw: str) -> str:
    return raw[len(CONNECTION_TYPE_PREFIX):] if raw.startswith(CONNECTION_TYPE_PREFIX) else raw


def parse_connections(data: Any) -> Dict[int, Tuple[int, Dict[str, int]]]:
    """Map node id to (connection count, per-protocol breakdown)."""
    result: Dict[int, Tuple[int, Dict[str, int]]] = {}
    if not isinstance(data, list):
        return result
    for node in data:
        if not isinstance(node, dict):
            continue
        node_id = _as_int(node.get("id"))
        if node_id is None:
            continue
        conns = node.get("connections")
        if not isinstance(conns, list):
            result[node_id] = (0, {})
            continue
        breakdown: Dict[str, int] = {}
        for conn in conns:
            conn_type = conn.get("type") if isinstance(conn, dict) else None
            if isinstance(conn_type, str):
                protocol = normalize_connection_type(conn_type)
                breakdown[protocol] = breakdown.get(protocol, 0) + 1
        result[node_id] = (len(conns), breakdown)
    return result


def extract_nic_stats(node: Any) -> Tuple[Optional[int], int]:
    """Return (link_speed_bps, bytes_sent + bytes_received) for the primary NIC.

    The primary NIC is the first device named bond0 or used for frontend
    traffic. Speed is reported in Mbps as a string.
    """
    devices = node.get("devices") if isinstance(node, dict) else None
    if not isinstance(devices, list):
        return None, 0

    device = None
    for d in devices:
        if not isinstance(d, dict):
            continue
        details = d.get("network_details") or {}
        use_for = details.get("use_for") if isinstance(details, dict) else None
        if d.get("name") == PRIMARY_NIC_NAME or use_for in PRIMARY_NIC_USES:
            device = d
            break
    if device is None:
        return None, 0

    total_bytes = _byte_value(device.get("bytes_sent")) + _byte_value(device.get("bytes_received"))

    link_speed = None
    speed = device.get("speed")
    if isinstance(speed, str) and speed.isdigit():
        link_speed = int(speed) * 1_000_000
    return link_speed, total_bytes


def _nic_nodes(data: Any) -> Dict[int, Any]:
    nodes: Dict[int, Any] = {}
    if isinstance(data, list):
        for node in data:
            node_id = _as_int(node.get("node_id")) if isinstance(node, dict) else None
            if node_id is not None:
                nodes[node_id] = node
    return nodes


def parse_nic_single(data: Any, is_cloud: bool, with_bytes: bool = False) -> NicStats:
    """Link speed (and optionally raw byte counters) from one network-status read."""
    result: NicStats = {}
    for node_id, node in _nic_nodes(data).items():
        link_speed, total_bytes = extract_nic_stats(node)
        result[node_id] = (
            None,
            None if is_cloud else link_speed,
            None,
            total_bytes if with_bytes else None,
        )
    return result


def parse_nic_delta(data1: Any, data2: Any, is_cloud: bool, elapsed: float = NIC_SAMPLE_INTERVAL) -> NicStats:
    """Throughput from two network-status reads ``elapsed`` seconds apart."""
    result: NicStats = {}
    second = _nic_nodes(data2)
    for node_id, node1 in _nic_nodes(data1).items():
        link_speed, bytes1 = extract_nic_stats(node1)
        if is_cloud:
            link_speed = None

        throughput = None
        if node_id in second:
            _, bytes2 = extract_nic_stats(second[node_id])
            throughput = int(max(0, bytes2 - bytes1) * 8 / elapsed)

        utilization = None
        if throughput is not None and link_speed:
            utilization = throughput / link_speed * 100.0

        result[node_id] = (throughput, link_speed, utilization, None)
    return result


def merge_node_network(connections: Dict[int, Tuple[int, Dict[str, int]]], nic: NicStats) -> List[NodeNetworkInfo]:
    """One entry per node id seen by either source, sorted by id."""
    details = []
    for node_id in sorted(set(connections) | set(nic)):
        count, breakdown = connections.get(node_id, (0, {}))
        throughput, link_speed, utilization, raw_bytes = nic.get(node_id, (None, None, None, None))
        details.append(
            NodeNetworkInfo(
                node_id=node_id,
                connections=count,
                connection_breakdown=breakdown,
                nic_throughput_bps=throughput,
                nic_link_speed_bps=link_speed,
                nic_utilization_pct=utilization,
                nic_bytes_total=raw_bytes,
            )
        )
    return details


def parse_disk_health(slots: Any) -> List[UnhealthyDisk]:
    unhealthy = []
    for slot in slots if isinstance(slots, list) else []:
        if not isinstance(slot, dict):
            continue
        state = slot.get("state") if isinstance(slot.get("state"), str) else "unknown"
        if state.lower() != "healthy":
            unhealthy.append(
                UnhealthyDisk(
                    node_id=_as_int(slot.get("node_id")) or 0,
                    bay=str(slot.get("drive_bay") or ""),
                    disk_type=str(slot.get("disk_type") or "unknown"),
                    state=state,
                )
            )
    return unhealthy


def parse_all_psus(chassis: Any) -> Tuple[int, List[PsuEntry]]:
    """Every PSU, healthy or not, from a chassis payload. Returns (node_count, psus).

    Cloud chassis report empty lists. A state that is missing or not a
    string is reported as "unknown", which counts as unhealthy.
    """
    if not isinstance(chassis, list):
        return 0, []
    psus = []
    for node in chassis:
        if not isinstance(node, dict):
            continue
        node_id = _as_int(node.get("id")) or 0
        statuses = node.get("psu_statuses")
        for psu in statuses if isinstance(statuses, list) else []:
            if not isinstance(psu, dict):
                continue
            state = psu.get("state")
            psus.append(
                PsuEntry(
                    node_id=node_id,
                    psu_name=str(psu.get("name") or "unknown"),
                    location=str(psu.get("location") or "unknown"),
                    state=state if isinstance(state, str) and state else "unknown",
                )
            )
    return len(chassis), psus


def parse_psu_health(chassis: Any) -> List[UnhealthyPsu]:
    """PSUs whose state is not GOOD."""
    _, psus = parse_all_psus(chassis)
    return [
        UnhealthyPsu(node_id=p.node_id, location=p.location, name=p.psu_name, state=p.state)
        for p in psus
        if not p.healthy
    ]


def parse_protection_status(prot: Any) -> Tuple[Optional[int], Optional[int], Optional[str]]:
    """Return (remaining_node_failures, remaining_drive_failures, protection type)."""
    if not isinstance(prot, dict):
        return None, None, None
    prot_type = prot.get("protection_system_type")
    return (
        _as_int(prot.get("remaining_node_failures")),
        _as_int(prot.get("remaining_drive_failures")),
        prot_type if isinstance(prot_type, str) else None,
    )


def parse_restriper_status(restriper: Any) -> bool:
    """True when the restriper flags data at risk.

    Older releases omit ``in_progress``; a risk flag alone is then trusted.
    """
    if not isinstance(restriper, dict):
        return False
    return restriper.get("data_at_risk") is True and restriper.get("in_progress", True) is not False


def build_health(
    nodes: NodeStatus,
    capacity: CapacityStatus,
    disks: List[UnhealthyDisk],
    psus: List[UnhealthyPsu],
    data_at_risk: bool,
    remaining_node_failures: Optional[int],
    remaining_drive_failures: Optional[int],
    protection_type: Optional[str],
) -> HealthStatus:
    issues = []
    if nodes.online < nodes.total:
        issues.append(f"{nodes.total - nodes.online} of {nodes.total} nodes offline")
    if capacity.used_pct >= CAPACITY_ISSUE_PCT:
        issues.append(f"capacity at {capacity.used_pct:.0f}%")
    for d in disks:
        issues.append(f"disk unhealthy: node {d.node_id}, bay {d.bay}, {d.disk_type}")
    for p in psus:
        issues.append(f"PSU issue: node {p.node_id}, {p.location} ({p.state})")
    if data_at_risk:
        issues.append("DATA AT RISK - restriper active")
    if remaining_node_failures == 0:
        issues.append("fault tolerance degraded (0 node failures remaining)")
    if remaining_drive_failures == 0:
        issues.append("fault tolerance degraded (0 drive failures remaining)")

    if data_at_risk or (nodes.online == 0 and nodes.total > 0):
        level = HealthLevel.CRITICAL
    elif issues:
        level = HealthLevel.DEGRADED
    else:
        level = HealthLevel.HEALTHY

    return HealthStatus(
        level=level,
        issues=issues,
        disks_unhealthy=len(disks),
        psus_unhealthy=len(psus),
        data_at_risk=data_at_risk,
        remaining_node_failures=remaining_node_failures,
        remaining_drive_failures=remaining_drive_failures,
        protection_type=protection_type,
        unhealthy_disk_details=disks,
        unhealthy_psu_details=psus,
    )


# =============================================================================
# Collector
# =============================================================================


class StatusCollector(BaseCollector):
    """Probes clusters for the fleet status view.

    Args:
        timeout: Per-request timeout in seconds
        use_cache: Allow the API response cache for slow-changing endpoints
        watch_mode: Take one NIC sample and keep raw counters instead of
            sleeping for a second sample
        on_cluster_uuid: Called as ``fn(profile_name, uuid)`` when a missing
            UUID was discovered; may be called from worker threads
        client_factory: Builds a client for a profile (tests inject fakes)
        sleep: Used between the two NIC samples
    """

    def __init__(
        self,
        timeout: int = 30,
        use_cache: bool = True,
        watch_mode: bool = False,
        on_cluster_uuid: Optional[Callable[[str, str], None]] = None,
        client_factory: Optional[Callable[[Profile], QumuloClient]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = timeout
        self.use_cache = use_cache
        self.watch_mode = watch_mode
        self.on_cluster_uuid = on_cluster_uuid
        self.client_factory = client_factory or self._default_client
        self.sleep = sleep

    @property
    def name(self) -> str:
        return "status"

    @property
    def display_name(self) -> str:
        return "Cluster Status"

    def _default_client(self, profile: Profile) -> QumuloClient:
        return QumuloClient.from_profile(profile, timeout=self.timeout, use_cache=self.use_cache)

    def worker_failed(self, profile: Profile, error: BaseException) -> Unreachable:
        return Unreachable(profile.name, "thread panicked")

    def collect_cluster(self, profile: Profile) -> ProbeResult:
        try:
            client = self.client_factory(profile)
        except (QontrolError, ValueError, OSError) as e:
            return Unreachable(profile.name, f"failed to create client: {e}")
        try:
            return _Probe(self, profile, client).run()
        finally:
            client.close()


class _Probe:
    """State for one probe run; keeps per-step timings."""

    def __init__(self, collector: StatusCollector, profile: Profile, client: QumuloClient):
        self.collector = collector
        self.profile = profile
        self.client = client
        self.timing: Dict[str, int] = {}

    def _log(self, msg: str, level: int = WARNING) -> None:
        log(f"[status] {self.profile.name}: {msg}", level)

    def _timed(self, step: str, fn: Callable[[], Any]) -> Any:
        start = time.monotonic()
        try:
            return fn()
        finally:
            self.timing[step] = int((time.monotonic() - start) * 1000)

    def _soft(self, step: str, fn: Callable[[], Any], default: Any) -> Any:
        """Run a best-effort step; log and return ``default`` on failure."""
        try:
            return self._timed(step, fn)
        except SOFT_ERRORS as e:
            self._log(f"{step} failed: {e}")
            return default

    def run(self) -> ProbeResult:
        started = time.monotonic()
        client = self.client

        try:
            self._log("fetching cluster settings", DEBUG)
            settings = self._timed("get_cluster_settings", client.get_cluster_settings)

            self._log("fetching version", DEBUG)
            start = time.monotonic()
            version = self._timed("get_version", client.get_version)
            latency_ms = int((time.monotonic() - start) * 1000)

            self._log("fetching nodes", DEBUG)
            nodes_data = self._timed("get_cluster_nodes", client.get_cluster_nodes)
        except SOFT_ERRORS as e:
            return Unreachable(self.profile.name, str(e))

        if not isinstance(settings, dict):
            return Unreachable(self.profile.name, "unexpected cluster settings response")
        if not isinstance(version, dict):
            version = {}
        if not isinstance(nodes_data, list):
            return Unreachable(self.profile.name, "unexpected cluster nodes response")

        total, online, offline_ids = parse_nodes(nodes_data)
        cluster_type = detect_cluster_type(nodes_data)

        capacity = self._soft("get_file_system", lambda: parse_capacity(client.get_file_system()), CapacityStatus())
        activity = self._fetch_activity()
        files = self._fetch_file_stats()
        per_node = self._fetch_node_network(cluster_type)
        activity.connections = sum(n.connections for n in per_node)
        capacity.projection = self._fetch_projection(capacity)

        disks = self._soft("get_cluster_slots", lambda: parse_disk_health(client.get_cluster_slots()), [])
        psus = self._soft("get_cluster_chassis", lambda: parse_psu_health(client.get_cluster_chassis()), [])
        remaining_node, remaining_drive, prot_type = self._soft(
            "get_protection_status",
            lambda: parse_protection_status(client.get_protection_status()),
            (None, None, None),
        )
        data_at_risk = self._soft(
            "get_restriper_status",
            lambda: parse_restriper_status(client.get_restriper_status()),
            False,
        )

        nodes = NodeStatus(total=total, online=online, offline_ids=offline_ids, per_node=per_node)
        health = build_health(nodes, capacity, disks, psus, data_at_risk, remaining_node, remaining_drive, prot_type)

        cluster_uuid = settings.get("cluster_uuid") if isinstance(settings.get("cluster_uuid"), str) else ""
        backfilled = self._backfill_uuid()
        self.timing["total"] = int((time.monotonic() - started) * 1000)

        return ClusterStatus(
            profile_name=self.profile.name,
            cluster_name=settings.get("cluster_name") or "unknown",
            cluster_uuid=cluster_uuid or backfilled or self.profile.cluster_uuid or "",
            version=version.get("revision_id") or "unknown",
            cluster_type=cluster_type,
            reachable=True,
            stale=False,
            latency_ms=latency_ms,
            nodes=nodes,
            capacity=capacity,
            activity=activity,
            files=files,
            health=health,
            timing=self.timing,
        )

    def _fetch_activity(self) -> ActivityStatus:
        def rate(activity_type: str) -> float:
            return self._soft(
                f"get_activity({activity_type})",
                lambda: sum_activity_rates(self.client.get_activity_by_type(activity_type), activity_type),
                0.0,
            )

        read_iops = sum(rate(t) for t in READ_IOPS_TYPES)
        write_iops = sum(rate(t) for t in WRITE_IOPS_TYPES)
        read_tp = rate(READ_THROUGHPUT_TYPE)
        write_tp = rate(WRITE_THROUGHPUT_TYPE)
        return ActivityStatus(
            read_iops=read_iops,
            write_iops=write_iops,
            read_throughput_bps=read_tp,
            write_throughput_bps=write_tp,
            is_idle=read_iops == 0 and write_iops == 0 and read_tp == 0 and write_tp == 0,
        )

    def _fetch_file_stats(self) -> FileStats:
        client = self.client
        stats = FileStats()
        stats.total_files, stats.total_directories = self._soft(
            "get_file_recursive_aggregates",
            lambda: parse_recursive_aggregates(client.get_file_recursive_aggregates("/")),
            (0, 0),
        )

        def snapshot_count() -> int:
            snaps = client.get_snapshots()
            entries = snaps.get("entries") if isinstance(snaps, dict) else None
            return len(entries) if isinstance(entries, list) else 0

        def snapshot_bytes() -> int:
            cap = client.get_snapshots_total_capacity()
            return _byte_value(cap.get("bytes")) if isinstance(cap, dict) else 0

        stats.total_snapshots = self._soft("get_snapshots", snapshot_count, 0)
        stats.snapshot_bytes = self._soft("get_snapshots_total_capacity", snapshot_bytes, 0)
        return stats

    def _fetch_node_network(self, cluster_type: ClusterType) -> List[NodeNetworkInfo]:
        connections = self._soft(
            "get_network_connections",
            lambda: parse_connections(self.client.get_network_connections()),
            {},
        )
        nic = self._fetch_nic_stats(cluster_type.is_cloud)
        return merge_node_network(connections, nic)

    def _fetch_nic_stats(self, is_cloud: bool) -> NicStats:
        first = self._soft("get_network_status", self.client.get_network_status, None)
        if first is None:
            return {}

        if self.collector.watch_mode:
            return parse_nic_single(first, is_cloud, with_bytes=True)

        self.collector.sleep(NIC_SAMPLE_INTERVAL)

        second = self._soft("get_network_status(2nd)", self.client.get_network_status, None)
        if second is None:
            return parse_nic_single(first, is_cloud)
        return parse_nic_delta(first, second, is_cloud)

    def _fetch_projection(self, capacity: CapacityStatus) -> Optional[CapacityProjection]:
        if capacity.total_bytes == 0:
            return None
        begin = datetime.now(timezone.utc) - timedelta(days=CAPACITY_HISTORY_DAYS)
        history = self._soft(
            "get_capacity_history",
            lambda: self.client.get_capacity_history(int(begin.timestamp())),
            None,
        )
        if history is None:
            return None
        return compute_projection(history, capacity.used_bytes, capacity.total_bytes)

    def _backfill_uuid(self) -> Optional[str]:
        if self.profile.cluster_uuid:
            return None
        state = self._soft("get_node_state", self.client.get_node_state, None)
        cluster_id = state.get("cluster_id") if isinstance(state, dict) else None
        if not isinstance(cluster_id, str) or not cluster_id:
            return None
        self._log(f"discovered cluster UUID {cluster_id}", DEBUG)
        callback = self.collector.on_cluster_uuid
        if callback is not None:
            callback(self.profile.name, cluster_id)
        return cluster_id
