"""Data-fabric relationship graph: building, pruning and export."""

from .builder import build_cdf_graph, prune_graph
from .export import dump_graph_text, graph_to_json

__all__ = [
    "build_cdf_graph",
    "prune_graph",
    "dump_graph_text",
    "graph_to_json",
]
