"""Build the data fabric graph from per-cluster relationship lists.

The graph is a ``networkx.MultiDiGraph`` keyed by integer node ids:

- node attribute ``node``: a ProfiledCluster, UnknownCluster or ObjectBucket
- edge attribute ``edge``: a PortalEdge, ReplicationEdge or ObjectReplicationEdge
- edge attribute ``seq``: insertion order, used for stable output

Each link between two profiled clusters is normally reported by both ends, so
portal and replication edges are deduplicated on a direction-independent key.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Set, Tuple

import networkx as nx

from ..data.cdf import (
    CdfEdge,
    CdfNode,
    ClusterCdfData,
    ObjectBucket,
    ObjectReplicationEdge,
    PortalEdge,
    PortalHub,
    PortalSpoke,
    ProfiledCluster,
    ReplicationEdge,
    UnknownCluster,
)
from ..logs import DEBUG, log

COPY_FROM_OBJECT = "COPY_FROM_OBJECT"
COPY_TO_OBJECT = "COPY_TO_OBJECT"

PortalKey = Tuple[int, int, int]
ReplicationKey = Tuple[int, int, str, str]


def portal_key(a: int, b: int, portal_id: int) -> PortalKey:
    low, high = (a, b) if a <= b else (b, a)
    return (low, high, portal_id)


def replication_key(source_path: Optional[str], target_path: Optional[str], source: int, target: int) -> ReplicationKey:
    """Key that is the same whichever end reported the replication."""
    sp, tp = source_path or "", target_path or ""
    if source <= target:
        return (source, target, sp, tp)
    return (target, source, tp, sp)


def find_matching_spoke(clusters: List[ClusterCdfData], hub_cluster: ClusterCdfData) -> Optional[int]:
    """Id of a spoke on another profiled cluster that points at ``hub_cluster``."""
    for cluster in clusters:
        if cluster.profile == hub_cluster.profile:
            continue
        for spoke in cluster.portal_spokes:
            if hub_cluster.cluster_uuid and spoke.hub_cluster_uuid == hub_cluster.cluster_uuid:
                return spoke.id
            if any(h.address == hub_cluster.address for h in spoke.hub_hosts):
                return spoke.id
    return None


def find_matching_hub(clusters: List[ClusterCdfData], spoke_cluster: ClusterCdfData) -> Optional[int]:
    """Id of a hub on another profiled cluster that points at ``spoke_cluster``."""
    for cluster in clusters:
        if cluster.profile == spoke_cluster.profile:
            continue
        for hub in cluster.portal_hubs:
            if spoke_cluster.cluster_uuid and hub.spoke_cluster_uuid == spoke_cluster.cluster_uuid:
                return hub.id
            if any(h.address == spoke_cluster.address for h in hub.spoke_hosts):
                return hub.id
    return None


class CdfGraphBuilder:
    """Accumulates nodes and edges for one ``build_cdf_graph`` call."""

    def __init__(self, clusters: List[ClusterCdfData]):
        self.clusters = clusters
        self.graph = nx.MultiDiGraph()
        self.address_to_node: Dict[str, int] = {}
        self.uuid_to_node: Dict[str, int] = {}
        self.bucket_to_node: Dict[Tuple[str, str], int] = {}
        self.profile_to_node: Dict[str, int] = {}
        self.portal_seen: Set[PortalKey] = set()
        self.replication_seen: Set[ReplicationKey] = set()
        self._seq = 0

    def add_node(self, node: CdfNode) -> int:
        idx = self.graph.number_of_nodes()
        self.graph.add_node(idx, node=node)
        return idx

    def add_edge(self, source: int, target: int, edge: CdfEdge) -> None:
        self.graph.add_edge(source, target, edge=edge, seq=self._seq)
        self._seq += 1

    def resolve_or_create(self, address: Optional[str], uuid: Optional[str]) -> Optional[int]:
        """Resolve a cluster reference by address, then uuid.

        Synthesizes an UnknownCluster when neither lookup hits and at least
        one identifier is present. Returns None for a reference with neither.
        """
        if address is not None and address in self.address_to_node:
            return self.address_to_node[address]
        if uuid and uuid in self.uuid_to_node:
            return self.uuid_to_node[uuid]
        if address is None and uuid is None:
            return None

        node = UnknownCluster(address=address or "", uuid=uuid or None)
        idx = self.add_node(node)
        if node.address:
            self.address_to_node[node.address] = idx
        if node.uuid:
            self.uuid_to_node[node.uuid] = idx
        log(f"[cdf] Synthesized unknown cluster addr={node.address} uuid={node.uuid}", DEBUG)
        return idx

    def bucket_node(self, address: str, bucket: str, region: Optional[str]) -> int:
        key = (address, bucket)
        if key not in self.bucket_to_node:
            self.bucket_to_node[key] = self.add_node(ObjectBucket(address=address, bucket=bucket, region=region))
        return self.bucket_to_node[key]

    def add_profiled_clusters(self) -> None:
        for cluster in self.clusters:
            idx = self.add_node(
                ProfiledCluster(name=cluster.cluster_name, uuid=cluster.cluster_uuid, address=cluster.address)
            )
            self.address_to_node[cluster.address] = idx
            if cluster.cluster_uuid:
                self.uuid_to_node[cluster.cluster_uuid] = idx
            self.profile_to_node[cluster.profile] = idx

    def add_hub(self, cluster: ClusterCdfData, this: int, hub: PortalHub) -> None:
        spoke_address = hub.spoke_hosts[0].address if hub.spoke_hosts else None
        spoke_node = self.resolve_or_create(spoke_address, hub.spoke_cluster_uuid)
        if spoke_node is None:
            return
        key = portal_key(this, spoke_node, hub.id)
        if key in self.portal_seen:
            return
        spoke_id = find_matching_spoke(self.clusters, cluster)
        self.add_edge(
            this,
            spoke_node,
            PortalEdge(
                hub_id=hub.id,
                spoke_id=spoke_id,
                portal_type=hub.portal_type,
                state=hub.state,
                status=hub.status,
            ),
        )
        self.portal_seen.add(key)
        if spoke_id is not None:
            self.portal_seen.add(portal_key(spoke_node, this, spoke_id))

    def add_spoke(self, cluster: ClusterCdfData, this: int, spoke: PortalSpoke) -> None:
        hub_address = spoke.hub_hosts[0].address if spoke.hub_hosts else None
        hub_node = self.resolve_or_create(hub_address, spoke.hub_cluster_uuid)
        if hub_node is None:
            return
        key = portal_key(this, hub_node, spoke.id)
        if key in self.portal_seen:
            return
        hub_id = find_matching_hub(self.clusters, cluster)
        self.add_edge(
            hub_node,
            this,
            PortalEdge(
                hub_id=hub_id,
                spoke_id=spoke.id,
                portal_type=spoke.portal_type,
                state=spoke.state,
                status=spoke.status,
            ),
        )
        self.portal_seen.add(key)
        if hub_id is not None:
            self.portal_seen.add(portal_key(hub_node, this, hub_id))

    def add_replication(self, source: int, target: int, edge: ReplicationEdge) -> None:
        key = replication_key(edge.source_path, edge.target_path, source, target)
        if key in self.replication_seen:
            return
        self.add_edge(source, target, edge)
        self.replication_seen.add(key)

    def add_cluster_edges(self, cluster: ClusterCdfData) -> None:
        this = self.profile_to_node[cluster.profile]

        for hub in cluster.portal_hubs:
            self.add_hub(cluster, this, hub)
        for spoke in cluster.portal_spokes:
            self.add_spoke(cluster, this, spoke)

        for status in cluster.replication_source_statuses:
            target = self.resolve_or_create(status.target_address, status.target_cluster_uuid)
            if target is None:
                continue
            self.add_replication(
                this,
                target,
                ReplicationEdge(
                    source_path=status.source_root_path,
                    target_path=status.target_root_path,
                    mode=status.replication_mode,
                    enabled=status.replication_enabled,
                    state=status.state,
                    job_state=status.job_state,
                    recovery_point=status.recovery_point,
                    error_from_last_job=status.error_from_last_job,
                    replication_job_status=status.replication_job_status,
                ),
            )

        for status in cluster.replication_target_statuses:
            source = self.resolve_or_create(status.source_address, status.source_cluster_uuid)
            if source is None:
                continue
            self.add_replication(
                source,
                this,
                ReplicationEdge(
                    source_path=status.source_root_path,
                    target_path=status.target_root_path,
                    mode=None,
                    enabled=status.replication_enabled,
                    state=status.state,
                    job_state=status.job_state,
                    recovery_point=status.recovery_point,
                    error_from_last_job=status.error_from_last_job,
                    replication_job_status=status.replication_job_status,
                ),
            )

        states = {s.id: s.state for s in cluster.object_relationship_statuses}
        for obj in cluster.object_relationships:
            if obj.object_store_address is None or obj.bucket is None:
                continue
            bucket = self.bucket_node(obj.object_store_address, obj.bucket, obj.region)
            edge = ObjectReplicationEdge(
                direction=obj.direction,
                bucket=obj.bucket,
                folder=obj.object_folder,
                state=states.get(obj.id),
            )
            if (obj.direction or COPY_TO_OBJECT) == COPY_FROM_OBJECT:
                self.add_edge(bucket, this, edge)
            else:
                self.add_edge(this, bucket, edge)

    def build(self) -> nx.MultiDiGraph:
        self.add_profiled_clusters()
        for cluster in self.clusters:
            self.add_cluster_edges(cluster)
        return self.graph


def prune_graph(graph: nx.MultiDiGraph, cluster_name: str) -> nx.MultiDiGraph:
    """Keep profiled clusters named ``cluster_name`` and their one-hop neighbors.

    The name match is case-insensitive. With no match the graph is returned
    unchanged. Surviving nodes are renumbered 0..n-1 in their original order.
    """
    wanted = cluster_name.lower()
    matching = [
        idx
        for idx, node in graph.nodes(data="node")
        if isinstance(node, ProfiledCluster) and node.name.lower() == wanted
    ]
    if not matching:
        return graph

    keep: Set[int] = set()
    for idx in matching:
        keep.add(idx)
        keep.update(graph.successors(idx))
        keep.update(graph.predecessors(idx))

    pruned = graph.subgraph(keep).copy()
    return nx.convert_node_labels_to_integers(pruned, ordering="sorted")


def build_cdf_graph(clusters: List[ClusterCdfData], cluster_filter: Optional[str] = None) -> nx.MultiDiGraph:
    """Fold per-cluster relationship data into one deduplicated graph.

    Args:
        clusters: Collected data, one entry per profiled cluster
        cluster_filter: Optional cluster name to prune the graph around

    Returns:
        A MultiDiGraph with integer node ids starting at 0
    """
    graph = CdfGraphBuilder(clusters).build()
    if cluster_filter:
        graph = prune_graph(graph, cluster_filter)
    return graph


def nodes_in_order(graph: nx.MultiDiGraph) -> Iterator[Tuple[int, CdfNode]]:
    for idx in sorted(graph.nodes):
        yield idx, graph.nodes[idx]["node"]


def edges_in_order(graph: nx.MultiDiGraph) -> List[Tuple[int, int, CdfEdge]]:
    """Edges as (source, target, edge) in insertion order."""
    edges = sorted(graph.edges(data=True), key=lambda e: e[2]["seq"])
    return [(u, v, data["edge"]) for u, v, data in edges]
