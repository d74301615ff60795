"""Data layer - status models, CDF records, cluster detection and caches."""

from .persistence import StatusCache, ApiCache, get_cache_dir
from .models import (
    ClusterKind,
    ClusterType,
    ClusterStatus,
    Unreachable,
    Alert,
    AlertSeverity,
    AlertCategory,
    Aggregates,
    EnvironmentStatus,
)
from .detection import detect_cluster_type

__all__ = [
    "StatusCache",
    "ApiCache",
    "get_cache_dir",
    "ClusterKind",
    "ClusterType",
    "ClusterStatus",
    "Unreachable",
    "Alert",
    "AlertSeverity",
    "AlertCategory",
    "Aggregates",
    "EnvironmentStatus",
    "detect_cluster_type",
]
