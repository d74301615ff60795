"""`qontrol profile` subcommands."""

from __future__ import annotations

import argparse
import getpass
import sys
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TextIO

from ..client import QumuloClient
from ..config import DEFAULT_PORT, Config, Profile
from ..errors import QontrolError
from ..logs import INFO, log
from .output import print_json

TOKEN_EXPIRY_DAYS = {
    "6months": 182,
    "1year": 365,
    "never": None,
}


def redact_token(token: str) -> str:
    if len(token) <= 8:
        return "****"
    return "****" + token[-8:]


def token_expiration(expiry: str, now: Optional[datetime] = None) -> Optional[str]:
    """RFC 3339 expiration for an ``--expiry`` choice, or None for never."""
    if expiry not in TOKEN_EXPIRY_DAYS:
        raise QontrolError(f"invalid expiry '{expiry}' - choose one of {', '.join(TOKEN_EXPIRY_DAYS)}")
    days = TOKEN_EXPIRY_DAYS[expiry]
    if days is None:
        return None
    when = (now or datetime.now(timezone.utc)) + timedelta(days=days)
    return when.strftime("%Y-%m-%dT%H:%M:%SZ")


def create_token(
    host: str,
    port: int,
    insecure: bool,
    timeout: int,
    username: str,
    password: str,
    expiry: str,
    client_factory: Callable[..., QumuloClient] = QumuloClient.from_host,
) -> str:
    """Log in with credentials and mint a long-lived access token."""
    expiration = token_expiration(expiry)
    with client_factory(host, port, insecure=insecure, timeout=timeout) as client:
        client.login(username, password)
        me = client.who_am_i()
        auth_id = me.get("id") if isinstance(me, dict) else None
        if auth_id is None:
            raise QontrolError("who-am-i response did not contain a user id")
        log(f"[profile] Creating access token for user {auth_id} (expiry {expiry})", INFO)
        return client.create_access_token(str(auth_id), expiration)


def _prompt(label: str, secret: bool = False) -> str:
    value = getpass.getpass(f"{label}: ") if secret else input(f"{label}: ")
    value = value.strip()
    if not value:
        raise QontrolError(f"{label.lower()} is required")
    return value


def run_add(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    host = args.host
    if args.token:
        if not host:
            raise QontrolError("--host is required when using --token")
        token = args.token
    else:
        host = host or _prompt("Host")
        username = args.username or _prompt("Username")
        password = args.password or _prompt("Password", secret=True)
        token = create_token(host, args.port, args.insecure, args.timeout, username, password, args.expiry)

    config.add_profile(
        Profile(name=args.name, host=host, port=args.port, token=token, insecure=args.insecure),
        make_default=args.default,
    )
    config.save()
    out.write(f"Profile '{args.name}' added.\n")
    if config.default_profile == args.name:
        out.write("Set as default profile.\n")
    return 0


def run_list(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    if args.json:
        print_json(
            [{"name": p.name, "host": p.host, "port": p.port, "default": p.name == config.default_profile}
             for p in config.profiles.values()],
            out,
        )
        return 0
    if not config.profiles:
        out.write("No profiles configured. Use `qontrol profile add` to create one.\n")
        return 0
    for name in config.profiles:
        marker = " (default)" if name == config.default_profile else ""
        out.write(f"  {name}{marker}\n")
    return 0


def run_remove(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    config.remove_profile(args.name)
    config.save()
    out.write(f"Profile '{args.name}' removed.\n")
    return 0


def run_show(args: argparse.Namespace, config: Config, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    profile = config.resolve_profile(args.name or args.profile)
    if args.json:
        data = profile.to_dict()
        data["token"] = redact_token(profile.token)
        data["name"] = profile.name
        print_json(data, out)
        return 0

    marker = " (default)" if profile.name == config.default_profile else ""
    out.write(f"Profile: {profile.name}{marker}\n")
    out.write(f"  Host:     {profile.host}:{profile.port}\n")
    out.write(f"  Token:    {redact_token(profile.token)}\n")
    out.write(f"  Insecure: {str(profile.insecure).lower()}\n")
    if profile.cluster_uuid:
        out.write(f"  UUID:     {profile.cluster_uuid}\n")
    return 0


def add_parser(subparsers, parents) -> None:
    parser = subparsers.add_parser("profile", help="Manage cluster connection profiles")
    sub = parser.add_subparsers(dest="profile_command", metavar="COMMAND")
    sub.required = True

    add = sub.add_parser("add", parents=parents, help="Add or replace a profile")
    add.add_argument("name", help="Profile name")
    add.add_argument("--host", help="Cluster hostname or address")
    add.add_argument("--port", type=int, default=DEFAULT_PORT, help="REST API port")
    add.add_argument("--token", help="Existing access token (skips login)")
    add.add_argument("--insecure", action="store_true", help="Skip TLS certificate verification")
    add.add_argument("--default", action="store_true", help="Make this the default profile")
    add.add_argument("--username", help="Username for login")
    add.add_argument("--password", help="Password for login")
    add.add_argument("--expiry", default="1year", choices=sorted(TOKEN_EXPIRY_DAYS), help="Access token lifetime")
    add.set_defaults(handler=run_add)

    lst = sub.add_parser("list", parents=parents, help="List profiles")
    lst.set_defaults(handler=run_list)

    rm = sub.add_parser("remove", parents=parents, help="Remove a profile")
    rm.add_argument("name", help="Profile name")
    rm.set_defaults(handler=run_remove)

    show = sub.add_parser("show", parents=parents, help="Show a profile (token redacted)")
    show.add_argument("name", nargs="?", help="Profile name (defaults to the active profile)")
    show.set_defaults(handler=run_show)
