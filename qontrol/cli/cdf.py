"""`qontrol cdf status`: the data-fabric relationship graph across the fleet."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, TextIO

from ..collectors.cdf import CdfCollector
from ..config import Config
from ..graph.export import dump_graph_text, graph_to_json
from .output import print_json
from .render import render_cdf_table


def run_cdf_status(
    args: argparse.Namespace,
    config: Config,
    out: Optional[TextIO] = None,
    collector: Optional[CdfCollector] = None,
) -> int:
    """Per-cluster failures are reported as warnings; the exit code stays 0."""
    out = out or sys.stdout
    collector = collector or CdfCollector(timeout=args.timeout)
    result = collector.collect_all(config, args.cluster, cluster_filter=args.filter)

    for error in result.errors:
        sys.stderr.write(f"warning: {error.profile}: {error.error}\n")

    if args.json:
        print_json(graph_to_json(result.graph), out)
        return 0

    out.write(render_cdf_table(result.graph))
    if args.detail:
        out.write("\n")
        out.write(dump_graph_text(result.graph))
    return 0


def add_parser(subparsers, parents) -> None:
    parser = subparsers.add_parser("cdf", help="Cluster data fabric: portals and replication")
    sub = parser.add_subparsers(dest="cdf_command", metavar="COMMAND")
    sub.required = True

    status = sub.add_parser("status", parents=parents, help="Show the relationship graph")
    status.add_argument("--cluster", action="append", help="Collect from this profile only (repeatable)")
    status.add_argument(
        "--filter",
        metavar="NAME",
        help="Keep only relationships touching this cluster (profile or cluster name)",
    )
    status.add_argument("--detail", action="store_true", help="Append the full node and edge listing")
    status.set_defaults(handler=run_cdf_status)
