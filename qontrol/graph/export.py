"""Export adapters for the data fabric graph: JSON and a plain-text dump."""

from __future__ import annotations

from typing import Any, Dict, List

import networkx as nx

from ..data.cdf import (
    CdfEdge,
    CdfNode,
    ObjectBucket,
    ObjectReplicationEdge,
    PortalEdge,
    ProfiledCluster,
    ReplicationEdge,
    UnknownCluster,
)
from .builder import edges_in_order, nodes_in_order


def node_short_name(node: CdfNode) -> str:
    if isinstance(node, ProfiledCluster):
        return node.name
    if isinstance(node, UnknownCluster):
        return node.address or "unknown"
    return f"s3://{node.bucket}"


def node_to_dict(idx: int, node: CdfNode) -> Dict[str, Any]:
    if isinstance(node, ProfiledCluster):
        return {"id": idx, "type": "profiled_cluster", "name": node.name, "uuid": node.uuid, "address": node.address}
    if isinstance(node, UnknownCluster):
        return {"id": idx, "type": "unknown_cluster", "address": node.address, "uuid": node.uuid}
    return {"id": idx, "type": "s3_bucket", "address": node.address, "bucket": node.bucket, "region": node.region}


def edge_to_dict(source: int, target: int, edge: CdfEdge) -> Dict[str, Any]:
    data: Dict[str, Any] = {"source": source, "target": target}
    if isinstance(edge, PortalEdge):
        data.update(
            type="portal",
            hub_id=edge.hub_id,
            spoke_id=edge.spoke_id,
            portal_type=edge.portal_type,
            state=edge.state,
            status=edge.status,
        )
    elif isinstance(edge, ReplicationEdge):
        data.update(
            type="replication",
            source_path=edge.source_path,
            target_path=edge.target_path,
            mode=edge.mode,
            enabled=edge.enabled,
            state=edge.state,
            job_state=edge.job_state,
            recovery_point=edge.recovery_point,
            error_from_last_job=edge.error_from_last_job,
        )
        if edge.replication_job_status is not None:
            data["replication_job_status"] = edge.replication_job_status.to_dict()
    else:
        data.update(
            type="object_replication",
            direction=edge.direction,
            bucket=edge.bucket,
            folder=edge.folder,
            state=edge.state,
        )
    return data


def graph_to_json(graph: nx.MultiDiGraph) -> Dict[str, List[Dict[str, Any]]]:
    """JSON-ready dict: ``{nodes: [...], edges: [...]}``. Edges reference node ids."""
    return {
        "nodes": [node_to_dict(idx, node) for idx, node in nodes_in_order(graph)],
        "edges": [edge_to_dict(u, v, edge) for u, v, edge in edges_in_order(graph)],
    }


def _node_line(idx: int, node: CdfNode) -> str:
    if isinstance(node, ProfiledCluster):
        return f"  [{idx}] {node.name} (uuid={node.uuid}, addr={node.address})"
    if isinstance(node, UnknownCluster):
        return f"  [{idx}] UNKNOWN (addr={node.address}, uuid={node.uuid or '?'})"
    assert isinstance(node, ObjectBucket)
    return f"  [{idx}] S3 s3://{node.address}/{node.bucket} (region={node.region or '?'})"


def _edge_line(src: str, tgt: str, edge: CdfEdge) -> str:
    if isinstance(edge, PortalEdge):
        return f"  {src} → {tgt} [Portal: type={edge.portal_type}, state={edge.state}, status={edge.status}]"
    if isinstance(edge, ReplicationEdge):
        return (
            f"  {src} → {tgt} [Replication: {src}:{edge.source_path or '?'} → {tgt}:{edge.target_path or '?'}, "
            f"mode={edge.mode or '?'}, enabled={str(edge.enabled).lower()}, "
            f"state={edge.state or '?'}, job_state={edge.job_state or '?'}]"
        )
    assert isinstance(edge, ObjectReplicationEdge)
    return (
        f"  {src} → {tgt} [ObjectReplication: dir={edge.direction or '?'}, bucket={edge.bucket or '?'}, "
        f"folder={edge.folder or '?'}, state={edge.state or '?'}]"
    )


def dump_graph_text(graph: nx.MultiDiGraph) -> str:
    """One line per node and per edge, for debugging."""
    lines = [f"CDF Graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges", "", "Nodes:"]
    for idx, node in nodes_in_order(graph):
        lines.append(_node_line(idx, node))
    lines.extend(["", "Edges:"])
    for u, v, edge in edges_in_order(graph):
        src = node_short_name(graph.nodes[u]["node"])
        tgt = node_short_name(graph.nodes[v]["node"])
        lines.append(_edge_line(src, tgt, edge))
    return "\n".join(lines)
