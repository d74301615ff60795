"""Data models for fleet status collection.

This module defines the per-cluster status record and everything derived from
it, following these conventions:

1. EXPLICIT UNITS
   - Storage: bytes (integers)
   - Rates: operations/second and bits or bytes/second (floats)
   - Time: milliseconds for latency, days for projections

2. NORMALIZED ENUM VALUES
   - Enum values are the lowercase strings used in JSON output
   - Upstream enum-shaped strings are kept as opaque text

3. OPTIONAL MEANS UNKNOWN
   - None is "not reported"; zero is a real measurement

Every model round-trips through ``to_dict``/``from_dict`` so the status cache
can store a record and hand back an equal one.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================


class ClusterKind(str, Enum):
    """Deployment platform of a cluster."""

    ON_PREM = "on-prem"
    CNQ_AWS = "cnq-aws"  # Cloud Native Qumulo on AWS
    ANQ_AZURE = "anq-azure"  # Azure Native Qumulo


class AlertSeverity(str, Enum):
    """Severity of an alert. Sort order follows ``rank``."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.INFO: 2,
}


class AlertCategory(str, Enum):
    """Closed set of alert categories."""

    CONNECTIVITY = "connectivity"
    NODE_OFFLINE = "node_offline"
    DATA_AT_RISK = "data_at_risk"
    DISK_UNHEALTHY = "disk_unhealthy"
    PSU_UNHEALTHY = "psu_unhealthy"
    PROTECTION_DEGRADED = "protection_degraded"
    CAPACITY_PROJECTION = "capacity_projection"


class ProjectionConfidence(str, Enum):
    HIGH = "high"
    LOW = "low"


class HealthLevel(str, Enum):
    """Rolled-up health of a single cluster."""

    HEALTHY = "healthy"  # No issues found
    DEGRADED = "degraded"  # At least one issue
    CRITICAL = "critical"  # Data at risk or every node offline


# =============================================================================
# Cluster identity
# =============================================================================


@dataclass(frozen=True)
class ClusterType:
    """Platform classification plus the hardware models seen on-prem."""

    kind: ClusterKind
    models: Tuple[str, ...] = ()  # sorted, unique; empty for cloud

    @classmethod
    def on_prem(cls, models: Optional[List[str]] = None) -> "ClusterType":
        return cls(ClusterKind.ON_PREM, tuple(models or ()))

    @property
    def is_cloud(self) -> bool:
        return self.kind != ClusterKind.ON_PREM

    def __str__(self) -> str:
        if self.kind == ClusterKind.CNQ_AWS:
            return "CNQ-AWS"
        if self.kind == ClusterKind.ANQ_AZURE:
            return "ANQ-Azure"
        if self.models:
            return f"On-Prem ({', '.join(self.models)})"
        return "On-Prem"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "models": list(self.models)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterType":
        return cls(ClusterKind(data.get("kind", ClusterKind.ON_PREM.value)), tuple(data.get("models") or ()))


# =============================================================================
# Per-cluster sections
# =============================================================================


@dataclass
class NodeNetworkInfo:
    """Connections and NIC figures for one node."""

    node_id: int
    connections: int = 0
    connection_breakdown: Dict[str, int] = field(default_factory=dict)  # protocol -> count
    nic_throughput_bps: Optional[int] = None  # Unit: bits/second
    nic_link_speed_bps: Optional[int] = None  # Unit: bits/second; None on cloud
    nic_utilization_pct: Optional[float] = None  # Unit: percent (0-100)
    nic_bytes_total: Optional[int] = None  # raw sent+received counter (watch mode)


@dataclass
class NodeStatus:
    total: int = 0
    online: int = 0
    offline_ids: List[int] = field(default_factory=list)
    per_node: List[NodeNetworkInfo] = field(default_factory=list)

    @property
    def offline(self) -> int:
        return max(0, self.total - self.online)


@dataclass
class CapacityProjection:
    """Linear-regression forecast of when a cluster fills up."""

    growth_rate_bytes_per_day: float  # Unit: bytes/day, always > 0
    days_until_full: Optional[int]  # Unit: days
    confidence: ProjectionConfidence


@dataclass
class CapacityStatus:
    total_bytes: int = 0
    used_bytes: int = 0
    free_bytes: int = 0
    snapshot_bytes: int = 0
    used_pct: float = 0.0  # Unit: percent (0-100)
    projection: Optional[CapacityProjection] = None


@dataclass
class ActivityStatus:
    read_iops: float = 0.0
    write_iops: float = 0.0
    read_throughput_bps: float = 0.0  # Unit: bytes/second
    write_throughput_bps: float = 0.0  # Unit: bytes/second
    connections: int = 0
    is_idle: bool = True


@dataclass
class FileStats:
    total_files: int = 0
    total_directories: int = 0
    total_snapshots: int = 0
    snapshot_bytes: int = 0  # from the snapshot capacity endpoint


@dataclass
class UnhealthyDisk:
    node_id: int
    bay: str
    disk_type: str
    state: str


@dataclass
class UnhealthyPsu:
    node_id: int
    location: str
    name: str
    state: str


HEALTHY_PSU_STATE = "GOOD"


@dataclass
class PsuEntry:
    """One power supply as reported by the chassis endpoint, healthy or not."""

    node_id: int
    psu_name: str
    location: str
    state: str

    @property
    def healthy(self) -> bool:
        return self.state.upper() == HEALTHY_PSU_STATE


@dataclass
class HealthStatus:
    level: HealthLevel = HealthLevel.HEALTHY
    issues: List[str] = field(default_factory=list)
    disks_unhealthy: int = 0
    psus_unhealthy: int = 0
    data_at_risk: bool = False
    remaining_node_failures: Optional[int] = None
    remaining_drive_failures: Optional[int] = None
    protection_type: Optional[str] = None
    unhealthy_disk_details: List[UnhealthyDisk] = field(default_factory=list)
    unhealthy_psu_details: List[UnhealthyPsu] = field(default_factory=list)


# =============================================================================
# Cluster status and fleet results
# =============================================================================


@dataclass
class ClusterStatus:
    """Everything collected from one cluster in one probe."""

    profile_name: str
    cluster_name: str
    cluster_uuid: str
    version: str
    cluster_type: ClusterType = field(default_factory=ClusterType.on_prem)
    reachable: bool = True
    stale: bool = False  # served from the status cache
    latency_ms: int = 0
    nodes: NodeStatus = field(default_factory=NodeStatus)
    capacity: CapacityStatus = field(default_factory=CapacityStatus)
    activity: ActivityStatus = field(default_factory=ActivityStatus)
    files: FileStats = field(default_factory=FileStats)
    health: HealthStatus = field(default_factory=HealthStatus)
    timing: Dict[str, int] = field(default_factory=dict)  # step -> milliseconds

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cluster_type"] = self.cluster_type.to_dict()
        return _plain(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterStatus":
        """Rebuild a record written by ``to_dict``.

        Raises:
            KeyError, TypeError, ValueError: If the data is not a status record.
        """
        nodes = data.get("nodes") or {}
        capacity = dict(data.get("capacity") or {})
        health = dict(data.get("health") or {})

        projection = capacity.pop("projection", None)
        health_level = health.pop("level", HealthLevel.HEALTHY.value)
        disks = health.pop("unhealthy_disk_details", None) or []
        psus = health.pop("unhealthy_psu_details", None) or []

        return cls(
            profile_name=data["profile_name"],
            cluster_name=data["cluster_name"],
            cluster_uuid=data.get("cluster_uuid", ""),
            version=data.get("version", ""),
            cluster_type=ClusterType.from_dict(data.get("cluster_type") or {}),
            reachable=data.get("reachable", True),
            stale=data.get("stale", False),
            latency_ms=data.get("latency_ms", 0),
            nodes=NodeStatus(
                total=nodes.get("total", 0),
                online=nodes.get("online", 0),
                offline_ids=list(nodes.get("offline_ids") or []),
                per_node=[NodeNetworkInfo(**n) for n in nodes.get("per_node") or []],
            ),
            capacity=CapacityStatus(
                projection=(
                    CapacityProjection(
                        growth_rate_bytes_per_day=projection["growth_rate_bytes_per_day"],
                        days_until_full=projection.get("days_until_full"),
                        confidence=ProjectionConfidence(projection["confidence"]),
                    )
                    if projection
                    else None
                ),
                **capacity,
            ),
            activity=ActivityStatus(**(data.get("activity") or {})),
            files=FileStats(**(data.get("files") or {})),
            health=HealthStatus(
                level=HealthLevel(health_level),
                unhealthy_disk_details=[UnhealthyDisk(**d) for d in disks],
                unhealthy_psu_details=[UnhealthyPsu(**p) for p in psus],
                **health,
            ),
            timing=dict(data.get("timing") or {}),
        )


@dataclass
class Unreachable:
    """A probe that could not produce a ClusterStatus."""

    profile_name: str
    error: str


@dataclass
class Alert:
    severity: AlertSeverity
    cluster: str  # cluster name (profile name for connectivity alerts)
    message: str
    category: AlertCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "cluster": self.cluster,
            "message": self.message,
            "category": self.category.value,
        }


@dataclass
class Aggregates:
    """Fleet-wide rollup. Capacity and file counts are plain sums."""

    cluster_count: int = 0
    reachable_count: int = 0
    total_nodes: int = 0
    online_nodes: int = 0
    capacity: CapacityStatus = field(default_factory=CapacityStatus)
    files: FileStats = field(default_factory=FileStats)
    latency_min_ms: Optional[int] = None  # reachable clusters only
    latency_max_ms: Optional[int] = None

    @property
    def unreachable_count(self) -> int:
        return self.cluster_count - self.reachable_count

    @property
    def offline_nodes(self) -> int:
        return max(0, self.total_nodes - self.online_nodes)


@dataclass
class EnvironmentStatus:
    aggregates: Aggregates
    alerts: List[Alert] = field(default_factory=list)
    clusters: List[ClusterStatus] = field(default_factory=list)


@dataclass
class CachedClusterData:
    """One entry of the status cache envelope."""

    profile: str
    data: ClusterStatus
    cached_at: str  # RFC 3339

    def to_dict(self) -> Dict[str, Any]:
        return {"profile": self.profile, "data": self.data.to_dict(), "cached_at": self.cached_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedClusterData":
        return cls(
            profile=data["profile"],
            data=ClusterStatus.from_dict(data["data"]),
            cached_at=data["cached_at"],
        )


def _plain(value: Any) -> Any:
    """Replace enum members with their values so the result is JSON-ready."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
