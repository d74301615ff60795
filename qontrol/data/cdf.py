"""Data fabric (CDF) models.

Two groups of types live here:

1. API RECORDS
   - Decoded from the seven portal / replication endpoints
   - ``from_dict`` raises ValueError when a required field is missing or has
     the wrong type; optional fields default to None or empty lists

2. GRAPH NODES AND EDGES
   - Nodes: a profiled cluster, an unknown peer cluster, or an object bucket
   - Edges: a portal, a file replication, or an object replication
   - Enum-shaped upstream values stay opaque strings
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


def _require(data: Dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if isinstance(value, bool) and kind is not bool:
        raise ValueError(f"field '{key}' has the wrong type")
    if not isinstance(value, kind):
        raise ValueError(f"missing or invalid field '{key}'")
    return value


def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string")
    return value


def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field '{key}' must be an integer")
    return value


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"field '{key}' must be a list of strings")
    return list(value)


def _records(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValueError(f"field '{key}' must be a list of objects")
    return value


def _mapping(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


# =============================================================================
# API records
# =============================================================================


@dataclass
class HostAddress:
    address: str
    port: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "HostAddress":
        data = _mapping(data)
        return cls(address=_require(data, "address", str), port=_opt_int(data, "port"))


@dataclass
class PortalHub:
    """This cluster is the hub of a portal."""

    id: int
    portal_type: str  # e.g. PORTAL_READ_WRITE
    state: str  # e.g. ACCEPTED
    status: str  # e.g. ACTIVE
    spoke_hosts: List[HostAddress] = field(default_factory=list)
    spoke_cluster_uuid: Optional[str] = None
    spoke_cluster_name: Optional[str] = None
    pending_roots: List[str] = field(default_factory=list)
    authorized_roots: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "PortalHub":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", int),
            portal_type=_require(data, "type", str),
            state=_require(data, "state", str),
            status=_require(data, "status", str),
            spoke_hosts=[HostAddress.from_dict(h) for h in _records(data, "spoke_hosts")],
            spoke_cluster_uuid=_opt_str(data, "spoke_cluster_uuid"),
            spoke_cluster_name=_opt_str(data, "spoke_cluster_name"),
            pending_roots=_str_list(data, "pending_roots"),
            authorized_roots=_str_list(data, "authorized_roots"),
        )


@dataclass
class SpokeRoot:
    local_root: str
    remote_root: str
    authorized: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "SpokeRoot":
        data = _mapping(data)
        return cls(
            local_root=_require(data, "local_root", str),
            remote_root=_require(data, "remote_root", str),
            authorized=bool(data.get("authorized", False)),
        )


@dataclass
class PortalSpoke:
    """This cluster is the spoke of a portal."""

    id: int
    portal_type: str
    state: str
    status: str
    hub_hosts: List[HostAddress] = field(default_factory=list)
    hub_id: Optional[int] = None
    hub_cluster_uuid: Optional[str] = None
    roots: List[SpokeRoot] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "PortalSpoke":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", int),
            portal_type=_require(data, "type", str),
            state=_require(data, "state", str),
            status=_require(data, "status", str),
            hub_hosts=[HostAddress.from_dict(h) for h in _records(data, "hub_hosts")],
            hub_id=_opt_int(data, "hub_id"),
            hub_cluster_uuid=_opt_str(data, "hub_cluster_uuid"),
            roots=[SpokeRoot.from_dict(r) for r in _records(data, "roots")],
        )


@dataclass
class ReplicationSource:
    id: str
    target_address: Optional[str] = None
    target_port: Optional[int] = None
    source_root_id: Optional[str] = None
    replication_enabled: bool = False
    replication_mode: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ReplicationSource":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", str),
            target_address=_opt_str(data, "target_address"),
            target_port=_opt_int(data, "target_port"),
            source_root_id=_opt_str(data, "source_root_id"),
            replication_enabled=bool(data.get("replication_enabled", False)),
            replication_mode=_opt_str(data, "replication_mode"),
        )


@dataclass
class ReplicationJobStatus:
    """Progress of the running replication job. All values are decimal strings."""

    percent_complete: Optional[str] = None
    estimated_seconds_remaining: Optional[str] = None
    bytes_transferred: Optional[str] = None
    bytes_remaining: Optional[str] = None
    bytes_total: Optional[str] = None
    files_transferred: Optional[str] = None
    files_remaining: Optional[str] = None
    files_total: Optional[str] = None
    throughput_overall: Optional[str] = None  # Unit: bytes/second
    throughput_current: Optional[str] = None  # Unit: bytes/second

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ReplicationJobStatus"]:
        if data is None:
            return None
        data = _mapping(data)
        return cls(**{name: _opt_str(data, name) for name in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass
class ReplicationSourceStatus:
    """Outbound replication as seen by the source cluster."""

    id: str
    state: Optional[str] = None
    source_cluster_name: Optional[str] = None
    source_cluster_uuid: Optional[str] = None
    source_root_path: Optional[str] = None
    target_cluster_name: Optional[str] = None
    target_cluster_uuid: Optional[str] = None
    target_root_path: Optional[str] = None
    target_address: Optional[str] = None
    replication_mode: Optional[str] = None
    replication_enabled: bool = False
    job_state: Optional[str] = None
    recovery_point: Optional[str] = None
    error_from_last_job: Optional[str] = None
    replication_job_status: Optional[ReplicationJobStatus] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ReplicationSourceStatus":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", str),
            state=_opt_str(data, "state"),
            source_cluster_name=_opt_str(data, "source_cluster_name"),
            source_cluster_uuid=_opt_str(data, "source_cluster_uuid"),
            source_root_path=_opt_str(data, "source_root_path"),
            target_cluster_name=_opt_str(data, "target_cluster_name"),
            target_cluster_uuid=_opt_str(data, "target_cluster_uuid"),
            target_root_path=_opt_str(data, "target_root_path"),
            target_address=_opt_str(data, "target_address"),
            replication_mode=_opt_str(data, "replication_mode"),
            replication_enabled=bool(data.get("replication_enabled", False)),
            job_state=_opt_str(data, "job_state"),
            recovery_point=_opt_str(data, "recovery_point"),
            error_from_last_job=_opt_str(data, "error_from_last_job"),
            replication_job_status=ReplicationJobStatus.from_dict(data.get("replication_job_status")),
        )


@dataclass
class ReplicationTargetStatus:
    """Inbound replication as seen by the target cluster. Carries no mode."""

    id: str
    state: Optional[str] = None
    source_cluster_name: Optional[str] = None
    source_cluster_uuid: Optional[str] = None
    source_root_path: Optional[str] = None
    source_address: Optional[str] = None
    source_port: Optional[int] = None
    target_cluster_name: Optional[str] = None
    target_cluster_uuid: Optional[str] = None
    target_root_path: Optional[str] = None
    replication_enabled: bool = False
    job_state: Optional[str] = None
    recovery_point: Optional[str] = None
    error_from_last_job: Optional[str] = None
    replication_job_status: Optional[ReplicationJobStatus] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ReplicationTargetStatus":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", str),
            state=_opt_str(data, "state"),
            source_cluster_name=_opt_str(data, "source_cluster_name"),
            source_cluster_uuid=_opt_str(data, "source_cluster_uuid"),
            source_root_path=_opt_str(data, "source_root_path"),
            source_address=_opt_str(data, "source_address"),
            source_port=_opt_int(data, "source_port"),
            target_cluster_name=_opt_str(data, "target_cluster_name"),
            target_cluster_uuid=_opt_str(data, "target_cluster_uuid"),
            target_root_path=_opt_str(data, "target_root_path"),
            replication_enabled=bool(data.get("replication_enabled", False)),
            job_state=_opt_str(data, "job_state"),
            recovery_point=_opt_str(data, "recovery_point"),
            error_from_last_job=_opt_str(data, "error_from_last_job"),
            replication_job_status=ReplicationJobStatus.from_dict(data.get("replication_job_status")),
        )


@dataclass
class ObjectRelationship:
    id: str
    direction: Optional[str] = None  # COPY_TO_OBJECT or COPY_FROM_OBJECT
    local_directory_id: Optional[str] = None
    object_store_address: Optional[str] = None
    port: Optional[int] = None
    bucket: Optional[str] = None
    object_folder: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ObjectRelationship":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", str),
            direction=_opt_str(data, "direction"),
            local_directory_id=_opt_str(data, "local_directory_id"),
            object_store_address=_opt_str(data, "object_store_address"),
            port=_opt_int(data, "port"),
            bucket=_opt_str(data, "bucket"),
            object_folder=_opt_str(data, "object_folder"),
            region=_opt_str(data, "region"),
        )


@dataclass
class ObjectRelationshipStatus:
    id: str
    direction: Optional[str] = None
    state: Optional[str] = None
    object_store_address: Optional[str] = None
    bucket: Optional[str] = None
    region: Optional[str] = None
    object_folder: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ObjectRelationshipStatus":
        data = _mapping(data)
        return cls(
            id=_require(data, "id", str),
            direction=_opt_str(data, "direction"),
            state=_opt_str(data, "state"),
            object_store_address=_opt_str(data, "object_store_address"),
            bucket=_opt_str(data, "bucket"),
            region=_opt_str(data, "region"),
            object_folder=_opt_str(data, "object_folder"),
        )


@dataclass
class ClusterCdfData:
    """Identity plus the seven relationship lists for one profiled cluster."""

    profile: str
    cluster_name: str
    cluster_uuid: str
    address: str
    portal_hubs: List[PortalHub] = field(default_factory=list)
    portal_spokes: List[PortalSpoke] = field(default_factory=list)
    replication_sources: List[ReplicationSource] = field(default_factory=list)
    replication_source_statuses: List[ReplicationSourceStatus] = field(default_factory=list)
    replication_target_statuses: List[ReplicationTargetStatus] = field(default_factory=list)
    object_relationships: List[ObjectRelationship] = field(default_factory=list)
    object_relationship_statuses: List[ObjectRelationshipStatus] = field(default_factory=list)


@dataclass
class ClusterCdfError:
    profile: str
    error: str


# =============================================================================
# Graph nodes
# =============================================================================


@dataclass(frozen=True)
class ProfiledCluster:
    name: str
    uuid: str  # may be empty when the profile has no UUID yet
    address: str


@dataclass(frozen=True)
class UnknownCluster:
    """A peer referenced by a relationship but not configured locally."""

    address: str
    uuid: Optional[str] = None


@dataclass(frozen=True)
class ObjectBucket:
    address: str
    bucket: str
    region: Optional[str] = None


CdfNode = Union[ProfiledCluster, UnknownCluster, ObjectBucket]


# =============================================================================
# Graph edges
# =============================================================================

HEALTHY_PORTAL_STATE = "ACCEPTED"
HEALTHY_PORTAL_STATUS = "ACTIVE"
HEALTHY_REPLICATION_STATE = "ESTABLISHED"
HEALTHY_OBJECT_STATE = "ACTIVE"


@dataclass
class PortalEdge:
    """Always directed hub -> spoke. A None id means the peer was not seen."""

    hub_id: Optional[int]
    spoke_id: Optional[int]
    portal_type: str
    state: str
    status: str

    def is_problem(self) -> bool:
        return self.state != HEALTHY_PORTAL_STATE or self.status != HEALTHY_PORTAL_STATUS


@dataclass
class ReplicationEdge:
    source_path: Optional[str] = None
    target_path: Optional[str] = None
    mode: Optional[str] = None  # only known when the source side reported first
    enabled: bool = False
    state: Optional[str] = None
    job_state: Optional[str] = None
    recovery_point: Optional[str] = None  # RFC 3339
    error_from_last_job: Optional[str] = None
    replication_job_status: Optional[ReplicationJobStatus] = None

    def is_problem(self) -> bool:
        return (
            not self.enabled
            or self.error_from_last_job is not None
            or self.state != HEALTHY_REPLICATION_STATE
        )


@dataclass
class ObjectReplicationEdge:
    direction: Optional[str] = None
    bucket: Optional[str] = None
    folder: Optional[str] = None
    state: Optional[str] = None

    def is_problem(self) -> bool:
        return self.state != HEALTHY_OBJECT_STATE


CdfEdge = Union[PortalEdge, ReplicationEdge, ObjectReplicationEdge]
