"""Single-cluster subcommands: api, cluster, snapshot, fs; plus the fleet `hw psu` check."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, TextIO

from ..client import QumuloClient
from ..collectors.hardware import ClusterPsuResult, PsuCollector
from ..config import Config
from ..errors import QontrolError
from ..insights.capacity import parse_byte_value
from .output import print_json, print_table
from .render import format_bytes


def client_for(args: argparse.Namespace, config: Config) -> QumuloClient:
    """Client for the profile picked by ``--profile``, env, or the default."""
    profile = config.resolve_profile(args.profile)
    return QumuloClient.from_profile(profile, timeout=args.timeout)


def _entries(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("entries"), list):
        return payload["entries"]
    raise QontrolError("unexpected response: missing entries")


# =============================================================================
# api / cluster
# =============================================================================


def run_api_raw(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    body = None
    if args.body is not None:
        try:
            body = json.loads(args.body)
        except ValueError as e:
            raise QontrolError(f"failed to parse --body as JSON: {e}") from e
    with client_for(args, config) as client:
        result = client.request(args.method.upper(), args.path, body=body)
    print_json(result, out)
    return 0


def run_cluster_info(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        settings = client.get_cluster_settings()
        version = client.get_version()
        nodes = client.get_cluster_nodes()

    if args.json:
        print_json({"cluster": settings, "version": version, "nodes": nodes}, out)
        return 0

    out.write(f"Cluster: {(settings or {}).get('cluster_name', 'unknown')}\n")
    out.write(f"Version: {(version or {}).get('revision_id', 'unknown')}\n\n")
    print_table(nodes if isinstance(nodes, list) else [], ["id", "node_name", "node_status"], out)
    return 0


# =============================================================================
# snapshot
# =============================================================================


def run_snapshot_list(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        snapshots = client.get_snapshots()
        per_snapshot = client.get_snapshot_capacity_per_snapshot()

    used = {e.get("id"): e.get("capacity_used_bytes") for e in _entries(per_snapshot)}
    entries = _entries(snapshots)

    if args.json:
        for entry in entries:
            if entry.get("id") in used:
                entry["capacity_used_bytes"] = used[entry.get("id")]
        print_json(snapshots, out)
        return 0

    if not entries:
        out.write("No snapshots found.\n")
        return 0
    rows = [dict(e, capacity=format_bytes(parse_byte_value(used.get(e.get("id"))) or 0)) for e in entries]
    print_table(rows, ["id", "name", "timestamp", "directory_name", "capacity"], out)
    return 0


def run_snapshot_show(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        snap = client.get_snapshot(args.id) or {}

    if args.json:
        print_json(snap, out)
        return 0

    expiration = snap.get("expiration")
    out.write(f"Snapshot {args.id}\n")
    out.write(f"  Name:        {snap.get('name', '-')}\n")
    out.write(f"  Created:     {snap.get('timestamp', '-')}\n")
    out.write(f"  Source ID:   {snap.get('source_file_id', '-')}\n")
    out.write(f"  Directory:   {snap.get('directory_name', '-')}\n")
    out.write(f"  Policy:      {'policy' if snap.get('created_by_policy') else 'manual'}\n")
    out.write(f"  Expiration:  {expiration or 'never'}\n")
    out.write(f"  Deleting:    {str(bool(snap.get('in_delete'))).lower()}\n")
    return 0


def run_snapshot_policies(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        policies = client.get_snapshot_policies()

    if args.json:
        print_json(policies, out)
        return 0

    entries = _entries(policies)
    if not entries:
        out.write("No snapshot policies found.\n")
        return 0
    rows = [
        dict(
            e,
            status="enabled" if e.get("enabled") else "disabled",
            ttl=(e.get("schedule") or {}).get("expiration_time_to_live") or "never",
        )
        for e in entries
    ]
    print_table(rows, ["id", "policy_name", "status", "source_file_id", "ttl"], out)
    return 0


# =============================================================================
# fs
# =============================================================================

DIRECTORY_TYPE = "FS_FILE_TYPE_DIRECTORY"


def run_fs_ls(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        response = client.get_file_entries(args.path, after=args.after, limit=args.limit) or {}

    if args.json:
        print_json(response, out)
        return 0

    files = response.get("files") or []
    if not files:
        out.write("(empty directory)\n")
        return 0
    for entry in sorted(files, key=lambda f: (f.get("name") or "").lower()):
        suffix = "/" if entry.get("type") == DIRECTORY_TYPE else ""
        out.write(f"{entry.get('name', '?')}{suffix}\n")

    next_page = (response.get("paging") or {}).get("next")
    if next_page:
        sys.stderr.write(f"\n(more results available, use --after \"{next_page}\" to continue)\n")
    return 0


def run_fs_stat(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    with client_for(args, config) as client:
        attrs = client.get_file_attr(args.path) or {}

    if args.json:
        print_json(attrs, out)
        return 0

    size = parse_byte_value(attrs.get("size"))
    out.write(f"Path:     {attrs.get('path', args.path)}\n")
    out.write(f"Type:     {str(attrs.get('type', '-')).replace('FS_FILE_TYPE_', '').lower()}\n")
    out.write(f"Size:     {format_bytes(size) if size is not None else '-'}\n")
    out.write(f"ID:       {attrs.get('id', '-')}\n")
    out.write(f"Owner:    {attrs.get('owner', '-')}\n")
    out.write(f"Mode:     {attrs.get('mode', '-')}\n")
    out.write(f"Modified: {attrs.get('modification_time', '-')}\n")
    out.write(f"Created:  {attrs.get('creation_time', '-')}\n")
    return 0


# =============================================================================
# hw psu
# =============================================================================


def render_psu_summary(results: List[ClusterPsuResult], verbose: bool = False) -> str:
    lines = [f"{'CLUSTER':<20} {'NODES':>5} {'PSUS':>5} {'HEALTHY':>7} {'UNHEALTHY':>9}  STATUS", "-" * 72]
    for r in results:
        if r.error is not None:
            error = r.error if len(r.error) <= 30 else r.error[:29] + "…"
            lines.append(f"{r.cluster:<20} {'-':>5} {'-':>5} {'-':>7} {'-':>9}  error: {error}")
            continue
        status = "✓ healthy" if r.unhealthy_count == 0 else f"✗ {r.unhealthy_count} unhealthy"
        lines.append(
            f"{r.cluster:<20} {r.node_count:>5} {r.psu_count:>5} {r.healthy_count:>7} {r.unhealthy_count:>9}  {status}"
        )

    if verbose:
        for r in results:
            if r.error is None and r.psus:
                lines.extend(["", f"── {r.cluster} ──"])
                lines.extend(
                    f"  {p.node_id!s:<8} {p.psu_name:<10} {p.location:<10} {p.state}" for p in r.psus
                )
    elif any(r.unhealthy_count for r in results):
        lines.extend(["", "Unhealthy PSUs:"])
        for r in results:
            for p in r.psus:
                if not p.healthy:
                    lines.append(f"  {r.cluster} node {p.node_id} {p.psu_name} ({p.location}) - {p.state}")
    return "\n".join(lines) + "\n"


def run_hw_psu(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    """Exit 1 when any PSU is unhealthy or a cluster could not be checked."""
    out = out or sys.stdout
    results = PsuCollector(timeout=args.timeout).collect_all(config, args.cluster)

    if args.json:
        print_json([r.to_dict() for r in results], out)
    else:
        out.write(render_psu_summary(results, verbose=args.verbose > 0))

    if any(r.unhealthy_count > 0 or r.error is not None for r in results):
        return 1
    return 0


def add_parsers(subparsers, parents) -> None:
    api = subparsers.add_parser("api", help="Raw REST API access")
    api_sub = api.add_subparsers(dest="api_command", metavar="COMMAND")
    api_sub.required = True
    raw = api_sub.add_parser("raw", parents=parents, help="Send a request and print the JSON response")
    raw.add_argument("method", help="HTTP method (GET, POST, PUT, PATCH, DELETE)")
    raw.add_argument("path", help="API path, e.g. /v1/cluster/settings")
    raw.add_argument("--body", help="JSON request body")
    raw.set_defaults(handler=run_api_raw)

    cluster = subparsers.add_parser("cluster", help="Cluster information")
    cluster_sub = cluster.add_subparsers(dest="cluster_command", metavar="COMMAND")
    cluster_sub.required = True
    info = cluster_sub.add_parser("info", parents=parents, help="Name, version and nodes")
    info.set_defaults(handler=run_cluster_info)

    snapshot = subparsers.add_parser("snapshot", help="Snapshot queries")
    snap_sub = snapshot.add_subparsers(dest="snapshot_command", metavar="COMMAND")
    snap_sub.required = True
    snap_sub.add_parser("list", parents=parents, help="List snapshots with capacity").set_defaults(
        handler=run_snapshot_list
    )
    show = snap_sub.add_parser("show", parents=parents, help="Show one snapshot")
    show.add_argument("id", type=int, help="Snapshot id")
    show.set_defaults(handler=run_snapshot_show)
    snap_sub.add_parser("policies", parents=parents, help="List snapshot policies").set_defaults(
        handler=run_snapshot_policies
    )

    fs = subparsers.add_parser("fs", help="Browse the file system")
    fs_sub = fs.add_subparsers(dest="fs_command", metavar="COMMAND")
    fs_sub.required = True
    ls = fs_sub.add_parser("ls", parents=parents, help="List a directory")
    ls.add_argument("path", nargs="?", default="/", help="Directory path")
    ls.add_argument("--limit", type=int, help="Maximum entries to return")
    ls.add_argument("--after", help="Resume a listing from this paging token")
    ls.set_defaults(handler=run_fs_ls)
    stat = fs_sub.add_parser("stat", parents=parents, help="Show file attributes")
    stat.add_argument("path", help="File or directory path")
    stat.set_defaults(handler=run_fs_stat)

    hw = subparsers.add_parser("hw", help="Hardware health")
    hw_sub = hw.add_subparsers(dest="hw_command", metavar="COMMAND")
    hw_sub.required = True
    psu = hw_sub.add_parser("psu", parents=parents, help="PSU health across clusters")
    psu.add_argument("--cluster", action="append", help="Limit to this profile (repeatable)")
    psu.set_defaults(handler=run_hw_psu)
