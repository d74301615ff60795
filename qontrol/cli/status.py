"""`qontrol status`: the fleet dashboard."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, TextIO

from ..collectors.fleet import FleetCollector
from ..config import Config
from .watch import StatusWatcher

DEFAULT_INTERVAL = 5


def run_status(
    args: argparse.Namespace,
    config: Config,
    out: Optional[TextIO] = None,
    collector: Optional[FleetCollector] = None,
) -> int:
    collector = collector or FleetCollector(
        config,
        timeout=args.timeout,
        no_cache=args.no_cache,
        watch_mode=args.watch,
    )
    watcher = StatusWatcher(
        collector,
        profile_filters=args.cluster,
        json_mode=args.json,
        watch=args.watch,
        interval=args.interval,
        show_timing=args.timing,
        out=out or sys.stdout,
    )
    return watcher.run()


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value}")
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return parsed


def add_parser(subparsers, parents) -> None:
    parser = subparsers.add_parser(
        "status",
        aliases=["st", "dashboard"],
        parents=parents,
        help="Fleet health, capacity, activity and network",
    )
    parser.add_argument("--cluster", action="append", help="Limit to this profile (repeatable)")
    parser.add_argument("--watch", action="store_true", help="Refresh until interrupted")
    parser.add_argument(
        "--interval",
        type=positive_int,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between refreshes in --watch mode (default: {DEFAULT_INTERVAL})",
    )
    parser.add_argument("--no-cache", action="store_true", help="Ignore cached status and API responses")
    parser.add_argument("--timing", action="store_true", help="Print per-cluster request timing to stderr")
    parser.set_defaults(handler=run_status)
