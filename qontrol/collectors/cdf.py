"""Data fabric collector: portal and replication relationships per cluster."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

import networkx as nx

from ..client import QumuloClient
from ..config import Config, Profile
from ..data.cdf import (
    ClusterCdfData,
    ClusterCdfError,
    ObjectRelationship,
    ObjectRelationshipStatus,
    PortalHub,
    PortalSpoke,
    ReplicationSource,
    ReplicationSourceStatus,
    ReplicationTargetStatus,
)
from ..errors import QontrolError
from ..graph.builder import build_cdf_graph
from ..logs import WARNING, log
from .base import BaseCollector
from .status import SOFT_ERRORS

CdfResult = Union[ClusterCdfData, ClusterCdfError]


@dataclass
class CdfCollectionResult:
    graph: nx.MultiDiGraph
    errors: List[ClusterCdfError] = field(default_factory=list)


def decode_list(payload: Any, record_type: type, paginated: bool) -> List[Any]:
    """Decode a relationship list.

    Paginated endpoints wrap records as ``{"entries": [...]}``; the rest return
    a bare array.

    Raises:
        ValueError: If the payload or any record has the wrong shape.
    """
    if paginated:
        if not isinstance(payload, dict):
            raise ValueError("expected an object with 'entries'")
        payload = payload.get("entries") or []
    if not isinstance(payload, list):
        raise ValueError("expected a list")
    return [record_type.from_dict(item) for item in payload]


class CdfCollector(BaseCollector):
    """Collects relationship data from every profile and builds the graph.

    Args:
        timeout: Per-request timeout in seconds
        client_factory: Builds a client for a profile (tests inject fakes)
    """

    # (attribute, client method, record type, paginated)
    ENDPOINTS = [
        ("portal_hubs", "get_portal_hubs", PortalHub, True),
        ("portal_spokes", "get_portal_spokes", PortalSpoke, True),
        ("replication_sources", "get_replication_sources", ReplicationSource, False),
        ("replication_source_statuses", "get_replication_source_statuses", ReplicationSourceStatus, False),
        ("replication_target_statuses", "get_replication_target_statuses", ReplicationTargetStatus, False),
        ("object_relationships", "get_object_relationships", ObjectRelationship, False),
        ("object_relationship_statuses", "get_object_relationship_statuses", ObjectRelationshipStatus, False),
    ]

    def __init__(self, timeout: int = 30, client_factory: Optional[Callable[[Profile], QumuloClient]] = None):
        self.timeout = timeout
        self.client_factory = client_factory or self._default_client

    @property
    def name(self) -> str:
        return "cdf"

    @property
    def display_name(self) -> str:
        return "Data Fabric"

    def _default_client(self, profile: Profile) -> QumuloClient:
        # Relationship state changes too often to serve from the response cache.
        return QumuloClient.from_profile(profile, timeout=self.timeout, use_cache=False)

    def worker_failed(self, profile: Profile, error: BaseException) -> ClusterCdfError:
        return ClusterCdfError(profile.name, "thread panicked")

    def collect_cluster(self, profile: Profile) -> CdfResult:
        try:
            client = self.client_factory(profile)
        except (QontrolError, ValueError, OSError) as e:
            return ClusterCdfError(profile.name, f"failed to create client: {e}")

        try:
            cluster_name = profile.name
            try:
                settings = client.get_cluster_settings()
                if isinstance(settings, dict) and isinstance(settings.get("cluster_name"), str):
                    cluster_name = settings["cluster_name"]
            except SOFT_ERRORS as e:
                log(f"[cdf] {profile.name}: cluster settings failed, using profile name: {e}", WARNING)

            data = ClusterCdfData(
                profile=profile.name,
                cluster_name=cluster_name,
                cluster_uuid=profile.cluster_uuid or "",
                address=profile.host,
            )
            for attr, method, record_type, paginated in self.ENDPOINTS:
                setattr(data, attr, self._fetch(profile, client, method, record_type, paginated))
            return data
        finally:
            client.close()

    def _fetch(self, profile: Profile, client: QumuloClient, method: str, record_type: type, paginated: bool) -> List[Any]:
        label = method[len("get_"):].replace("_", " ")
        try:
            payload = getattr(client, method)()
        except SOFT_ERRORS as e:
            log(f"[cdf] {profile.name}: failed to fetch {label}: {e}", WARNING)
            return []
        try:
            return decode_list(payload, record_type, paginated)
        except ValueError as e:
            log(f"[cdf] {profile.name}: failed to parse {label}: {e}", WARNING)
            return []

    def collect_all(
        self,
        config: Config,
        profile_filters: Optional[List[str]] = None,
        cluster_filter: Optional[str] = None,
    ) -> CdfCollectionResult:
        """Collect from the working set and build the deduplicated graph.

        Raises:
            ConfigError: If no profiles match ``profile_filters``.
        """
        profiles = config.select_profiles(profile_filters)
        clusters: List[ClusterCdfData] = []
        errors: List[ClusterCdfError] = []
        for result in self.collect_each(profiles):
            if isinstance(result, ClusterCdfError):
                log(f"[cdf] {result.profile}: collection failed: {result.error}", WARNING)
                errors.append(result)
            else:
                clusters.append(result)
        return CdfCollectionResult(graph=build_cdf_graph(clusters, cluster_filter), errors=errors)
