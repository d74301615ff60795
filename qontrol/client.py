"""Thin bearer-token client for the cluster REST API."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional
from urllib.parse import quote

import certifi
import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import __version__
from .config import Profile
from .data.persistence import ApiCache
from .errors import ApiError, QontrolError
from .logs import DEBUG, log

DEFAULT_CA_BUNDLE = certifi.where()
DEFAULT_TIMEOUT = 30

TTL_SLOW = 300  # settings, nodes, slots, chassis
TTL_MODERATE = 30  # connections, snapshots, aggregates, capacity history

VALID_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE")


def encode_fs_path(path: str) -> str:
    """Percent-encode a filesystem path for use as a single URL segment."""
    return quote(path if path.startswith("/") else "/" + path, safe="")


class QumuloClient:
    """Authenticated session against one cluster.

    Transient connection failures and 429/5xx responses on idempotent methods
    are retried a couple of times with a short backoff. Everything else is
    surfaced immediately: non-2xx responses raise ApiError, transport failures
    raise requests exceptions.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        insecure: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
        cache: Optional[ApiCache] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.cache = cache
        self._verify = False if insecure else DEFAULT_CA_BUNDLE
        self._session: Optional[requests.Session] = None

        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_profile(cls, profile: Profile, timeout: int = DEFAULT_TIMEOUT, use_cache: bool = True) -> "QumuloClient":
        """Build a client for a saved profile.

        The API response cache is only used when the profile already knows its
        cluster UUID, since entries are scoped by it.
        """
        base_url = profile.base_url or os.environ.get("QONTROL_BASE_URL") or f"https://{profile.host}:{profile.port}"
        cache = ApiCache(profile.cluster_uuid) if use_cache and profile.cluster_uuid else None
        return cls(base_url, profile.token, insecure=profile.insecure, timeout=timeout, cache=cache)

    @classmethod
    def from_host(cls, host: str, port: int, insecure: bool = False, timeout: int = DEFAULT_TIMEOUT, token: str = "") -> "QumuloClient":
        """Build a client without a saved profile (login flow)."""
        base_url = os.environ.get("QONTROL_BASE_URL") or f"https://{host}:{port}"
        return cls(base_url, token, insecure=insecure, timeout=timeout)

    def _get_session(self) -> requests.Session:
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=2,
                connect=1,
                read=0,
                backoff_factor=0.3,
                status_forcelist=(429, 502, 503, 504),
                allowed_methods=("GET", "HEAD"),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=4)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update({"User-Agent": f"qontrol/{__version__}", "Accept": "application/json"})
            self._session = session
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "QumuloClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Core request path ---

    def request(self, method: str, path: str, body: Any = None, auth: bool = True) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method name (case-insensitive)
            path: API path starting with '/'
            body: Optional JSON-serializable request body
            auth: Send the bearer token (False only for login)

        Returns:
            Parsed JSON, or None for an empty response body.

        Raises:
            ApiError: For any non-2xx response.
            QontrolError: For an invalid method or a non-JSON body.
            requests.RequestException: For transport failures and timeouts.
        """
        method = method.upper()
        if method not in VALID_METHODS:
            raise QontrolError(f"invalid HTTP method: {method}")

        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {}
        if auth:
            headers["Authorization"] = f"Bearer {self.token}"

        log(f"[http] {method} {url}", DEBUG)
        resp = self._get_session().request(
            method,
            url,
            json=body,
            headers=headers,
            timeout=self.timeout,
        )
        text = resp.text
        log(f"[http] {resp.status_code} {url} ({len(text)} bytes)", DEBUG)

        if not 200 <= resp.status_code < 300:
            raise ApiError(resp.status_code, text)
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise QontrolError(f"failed to parse response from {path} as JSON: {e}")

    def get(self, path: str) -> Any:
        return self.request("GET", path)

    def cached_get(self, path: str, ttl: int) -> Any:
        """GET through the API response cache when one is configured."""
        if self.cache is not None:
            cached = self.cache.get(path, ttl)
            if cached is not None:
                log(f"[http] cache hit {path}", DEBUG)
                return cached

        result = self.get(path)

        if self.cache is not None:
            self.cache.put(path, ttl, result)
        return result

    # --- Cluster ---

    def get_cluster_settings(self) -> Any:
        return self.cached_get("/v1/cluster/settings", TTL_SLOW)

    def get_version(self) -> Any:
        return self.get("/v1/version")

    def get_node_state(self) -> Any:
        return self.get("/v1/node/state")

    def get_cluster_nodes(self) -> Any:
        return self.cached_get("/v1/cluster/nodes/", TTL_SLOW)

    def get_file_system(self) -> Any:
        return self.get("/v1/file-system")

    def get_capacity_history(self, begin_time_epoch: int) -> Any:
        return self.cached_get(
            f"/v1/analytics/capacity-history/?begin-time={begin_time_epoch}&interval=DAILY",
            TTL_MODERATE,
        )

    def get_activity_by_type(self, activity_type: str) -> Any:
        return self.get(f"/v1/analytics/activity/current?type={activity_type}")

    # --- Health ---

    def get_cluster_slots(self) -> Any:
        return self.cached_get("/v1/cluster/slots/", TTL_SLOW)

    def get_cluster_chassis(self) -> Any:
        return self.cached_get("/v1/cluster/nodes/chassis/", TTL_SLOW)

    def get_protection_status(self) -> Any:
        return self.get("/v1/cluster/protection/status")

    def get_restriper_status(self) -> Any:
        return self.get("/v1/cluster/restriper/status")

    # --- Network ---

    def get_network_connections(self) -> Any:
        return self.cached_get("/v2/network/connections/", TTL_MODERATE)

    def get_network_status(self) -> Any:
        return self.get("/v3/network/status")

    # --- Snapshots ---

    def get_snapshots(self) -> Any:
        return self.cached_get("/v2/snapshots/", TTL_MODERATE)

    def get_snapshots_total_capacity(self) -> Any:
        return self.cached_get("/v1/snapshots/total-used-capacity", TTL_MODERATE)

    def get_snapshot(self, snapshot_id: int) -> Any:
        return self.get(f"/v2/snapshots/{snapshot_id}")

    def get_snapshot_capacity_per_snapshot(self) -> Any:
        return self.get("/v1/snapshots/capacity-used-per-snapshot/")

    def get_snapshot_policies(self) -> Any:
        return self.get("/v2/snapshots/policies/")

    # --- Filesystem ---

    def get_file_entries(self, path: str, after: Optional[str] = None, limit: Optional[int] = None) -> Any:
        url = f"/v1/files/{encode_fs_path(path)}/entries/"
        params = []
        if after:
            params.append(f"after={quote(after, safe='')}")
        if limit is not None:
            params.append(f"limit={limit}")
        if params:
            url = f"{url}?{'&'.join(params)}"
        return self.get(url)

    def get_file_attr(self, path: str) -> Any:
        return self.get(f"/v1/files/{encode_fs_path(path)}/info/attributes")

    def get_file_recursive_aggregates(self, path: str = "/") -> Any:
        return self.cached_get(f"/v1/files/{encode_fs_path(path)}/recursive-aggregates/", TTL_MODERATE)

    # --- Data fabric ---

    def get_portal_hubs(self) -> Any:
        return self.get("/v2/portal/hubs/")

    def get_portal_spokes(self) -> Any:
        return self.get("/v2/portal/spokes/")

    def get_replication_sources(self) -> Any:
        return self.get("/v2/replication/source-relationships/")

    def get_replication_source_statuses(self) -> Any:
        return self.get("/v2/replication/source-relationships/status/")

    def get_replication_target_statuses(self) -> Any:
        return self.get("/v2/replication/target-relationships/status/")

    def get_object_relationships(self) -> Any:
        return self.get("/v3/replication/object-relationships/")

    def get_object_relationship_statuses(self) -> Any:
        return self.get("/v3/replication/object-relationships/status/")

    # --- Authentication ---

    def login(self, username: str, password: str) -> str:
        """Exchange credentials for a short-lived session token and adopt it."""
        resp = self.request(
            "POST",
            "/v1/session/login",
            body={"username": username, "password": password},
            auth=False,
        )
        token = (resp or {}).get("bearer_token")
        if not token:
            raise QontrolError("login response did not contain a bearer token")
        self.token = token
        return token

    def who_am_i(self) -> Any:
        return self.get("/v1/session/who-am-i")

    def create_access_token(self, auth_id: str, expiration_time: Optional[str] = None) -> str:
        """Create a long-lived access token for ``auth_id``."""
        body: Dict[str, Any] = {"user": {"auth_id": auth_id}}
        if expiration_time:
            body["expiration_time"] = expiration_time
        resp = self.request("POST", "/v1/auth/access-tokens/", body=body)
        token = (resp or {}).get("bearer_token")
        if not token:
            raise QontrolError("access token response did not contain a bearer token")
        return token
