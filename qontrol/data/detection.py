"""Classify a cluster's platform from its node model numbers."""

from typing import Any, List, Tuple

from .models import ClusterKind, ClusterType

# Evaluated top-down; the first marker found in any node's model wins.
CLUSTER_TYPE_MARKERS: List[Tuple[str, ClusterKind]] = [
    ("AWS", ClusterKind.CNQ_AWS),
    ("Azure", ClusterKind.ANQ_AZURE),
]


def detect_cluster_type(nodes: Any) -> ClusterType:
    """Classify a cluster from the cluster-nodes response.

    Anything that is not a cloud marker match is on-prem, carrying the sorted
    set of non-empty model numbers. Never raises.
    """
    models = []
    if isinstance(nodes, list):
        for node in nodes:
            if isinstance(node, dict):
                model = node.get("model_number")
                if isinstance(model, str):
                    models.append(model)

    for marker, kind in CLUSTER_TYPE_MARKERS:
        if any(marker in model for model in models):
            return ClusterType(kind)

    return ClusterType.on_prem(sorted({m for m in models if m}))
