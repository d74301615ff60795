"""Command-line entry point for qontrol."""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

import requests

from .. import __version__
from ..config import Config
from ..errors import QontrolError
from ..logs import set_verbosity, verbosity_from_flags
from . import cdf, cluster, profile, status

DEFAULT_TIMEOUT = 30


def _add_global_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", help="Profile to use (env: QONTROL_PROFILE)")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--quiet", action="store_true", help="Only print errors to stderr")
    parser.add_argument("-v", "--verbose", action="count", help="More diagnostics on stderr (-vv for debug)")
    parser.add_argument("--timeout", type=int, help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT})")


def build_parser() -> argparse.ArgumentParser:
    """Global flags are accepted both before and after the subcommand."""
    parser = argparse.ArgumentParser(
        prog="qontrol",
        description="Fleet status, alerts and data-fabric views for Qumulo clusters.",
    )
    parser.add_argument("--version", action="version", version=f"qontrol {__version__}")
    parser.add_argument("--config", help="Path to the profile store")
    _add_global_flags(parser)
    parser.set_defaults(
        profile=os.environ.get("QONTROL_PROFILE"),
        json=False,
        quiet=False,
        verbose=0,
        timeout=DEFAULT_TIMEOUT,
    )

    # Leaf subparsers only override what was given after the subcommand
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    _add_global_flags(common)
    parents = [common]

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    status.add_parser(subparsers, parents)
    cdf.add_parser(subparsers, parents)
    profile.add_parser(subparsers, parents)
    cluster.add_parsers(subparsers, parents)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbosity(verbosity_from_flags(args.quiet, args.verbose))

    try:
        config = Config.load(args.config)
        return args.handler(args, config)
    except (QontrolError, requests.RequestException, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
