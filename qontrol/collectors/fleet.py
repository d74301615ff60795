"""Fleet status: probe every profile in parallel and merge with the cache."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from ..config import Config, Profile
from ..data.models import (
    Aggregates,
    Alert,
    AlertCategory,
    AlertSeverity,
    CapacityStatus,
    ClusterStatus,
    EnvironmentStatus,
    FileStats,
    Unreachable,
)
from ..data.persistence import StatusCache
from ..insights.alerts import generate_alerts
from ..logs import INFO, WARNING, log
from .status import StatusCollector


def build_aggregates(clusters: List[ClusterStatus]) -> Aggregates:
    """Roll up cluster records. Latency range covers reachable clusters only."""
    capacity = CapacityStatus()
    files = FileStats()
    for c in clusters:
        capacity.total_bytes += c.capacity.total_bytes
        capacity.used_bytes += c.capacity.used_bytes
        capacity.free_bytes += c.capacity.free_bytes
        capacity.snapshot_bytes += c.capacity.snapshot_bytes
        files.total_files += c.files.total_files
        files.total_directories += c.files.total_directories
        files.total_snapshots += c.files.total_snapshots
        files.snapshot_bytes += c.files.snapshot_bytes
    if capacity.total_bytes > 0:
        capacity.used_pct = capacity.used_bytes / capacity.total_bytes * 100.0

    latencies = [c.latency_ms for c in clusters if c.reachable]
    return Aggregates(
        cluster_count=len(clusters),
        reachable_count=sum(1 for c in clusters if c.reachable),
        total_nodes=sum(c.nodes.total for c in clusters),
        online_nodes=sum(c.nodes.online for c in clusters),
        capacity=capacity,
        files=files,
        latency_min_ms=min(latencies) if latencies else None,
        latency_max_ms=max(latencies) if latencies else None,
    )


def build_cached_status(profiles: List[Profile], cache: StatusCache) -> Optional[EnvironmentStatus]:
    """An EnvironmentStatus made only of cached records, all marked stale.

    Returns None when nothing is cached for any of ``profiles``.
    """
    entries = cache.read_all(p.name for p in profiles)
    if not entries:
        return None
    clusters = []
    for entry in entries:
        entry.data.stale = True
        entry.data.reachable = False
        clusters.append(entry.data)
    return EnvironmentStatus(
        aggregates=build_aggregates(clusters),
        alerts=generate_alerts(clusters),
        clusters=clusters,
    )


class FleetCollector:
    """Collects an EnvironmentStatus for a working set of profiles.

    Args:
        config: Profile store; receives backfilled cluster UUIDs
        timeout: Per-request timeout in seconds
        no_cache: Skip both the status cache and the API response cache
        watch_mode: Single NIC sample per cluster (see StatusCollector)
        cache: Status cache (defaults to the user cache directory)
        collector_factory: Builds the per-cluster collector (tests inject fakes)
    """

    def __init__(
        self,
        config: Config,
        timeout: int = 30,
        no_cache: bool = False,
        watch_mode: bool = False,
        cache: Optional[StatusCache] = None,
        collector_factory: Optional[Callable[..., StatusCollector]] = None,
    ):
        self.config = config
        self.timeout = timeout
        self.no_cache = no_cache
        self.watch_mode = watch_mode
        self.cache = cache or StatusCache()
        self.collector_factory = collector_factory or StatusCollector
        self._uuid_lock = threading.Lock()
        self._config_dirty = False

    def _record_cluster_uuid(self, profile_name: str, uuid: str) -> None:
        with self._uuid_lock:
            if self.config.set_cluster_uuid(profile_name, uuid):
                self._config_dirty = True

    def _save_config(self) -> None:
        if not self._config_dirty:
            return
        try:
            self.config.save()
        except OSError as e:
            log(f"[fleet] Failed to save backfilled cluster UUIDs: {e}", WARNING)
        self._config_dirty = False

    def collect(self, profile_filters: Optional[List[str]] = None) -> EnvironmentStatus:
        """Probe the working set and build the fleet view.

        Raises:
            ConfigError: If no profiles match ``profile_filters``.
        """
        profiles = self.config.select_profiles(profile_filters)

        collector = self.collector_factory(
            timeout=self.timeout,
            use_cache=not self.no_cache,
            watch_mode=self.watch_mode,
            on_cluster_uuid=self._record_cluster_uuid,
        )
        results = collector.collect_each(profiles)
        self._save_config()

        clusters: List[ClusterStatus] = []
        connectivity: List[Alert] = []
        for profile, result in zip(profiles, results):
            if isinstance(result, Unreachable):
                self._handle_unreachable(profile, result, clusters, connectivity)
                continue
            if not self.no_cache:
                self.cache.write(result.profile_name, result)
            result.stale = False
            clusters.append(result)

        return EnvironmentStatus(
            aggregates=build_aggregates(clusters),
            alerts=generate_alerts(clusters, connectivity),
            clusters=clusters,
        )

    def _handle_unreachable(
        self,
        profile: Profile,
        result: Unreachable,
        clusters: List[ClusterStatus],
        connectivity: List[Alert],
    ) -> None:
        log(f"[fleet] {profile.name} unreachable: {result.error}", WARNING)

        if self.no_cache:
            connectivity.append(
                Alert(AlertSeverity.CRITICAL, profile.name, f"unreachable: {result.error}", AlertCategory.CONNECTIVITY)
            )
            return

        cached = self.cache.read(profile.name)
        if cached is None:
            connectivity.append(
                Alert(
                    AlertSeverity.CRITICAL,
                    profile.name,
                    f"unreachable and no cache: {result.error}",
                    AlertCategory.CONNECTIVITY,
                )
            )
            return

        log(f"[fleet] {profile.name}: using cached data from {cached.cached_at}", INFO)
        data = cached.data
        data.stale = True
        data.reachable = False
        clusters.append(data)
        connectivity.append(
            Alert(
                AlertSeverity.WARNING,
                profile.name,
                f"unreachable, using cached data from {cached.cached_at}",
                AlertCategory.CONNECTIVITY,
            )
        )
