"""On-disk caches.

Two stores share one cache root:

- ``status-cache.json``: last successfully collected ClusterStatus per
  profile, used as a fallback when a cluster is unreachable.
- ``api/``: raw API responses keyed by ``<cluster_uuid>:<path>`` with a TTL,
  used to skip slow-changing endpoints on repeated runs.

Both are best effort. Reads treat any failure as a miss and writes log and
drop errors, so the CLI never fails because the cache directory is broken.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..logs import WARNING, DEBUG, log
from .models import CachedClusterData, ClusterStatus

STATUS_CACHE_FILE = "status-cache.json"
API_CACHE_SUBDIR = "api"


def get_cache_dir() -> Path:
    """Get the cache root.

    Returns QONTROL_CACHE_DIR if set, else $XDG_CACHE_HOME/qontrol, else
    ~/.cache/qontrol. The directory is created lazily on first write.
    """
    if env_dir := os.environ.get("QONTROL_CACHE_DIR"):
        return Path(env_dir)
    if xdg := os.environ.get("XDG_CACHE_HOME"):
        return Path(xdg) / "qontrol"
    return Path.home() / ".cache" / "qontrol"


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _atomic_write(path: Path, text: str) -> None:
    """Write ``text`` to a sibling temp file and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class StatusCache:
    """Per-profile store of the last good ClusterStatus.

    The file is a single envelope ``{"clusters": {profile: entry}}`` rewritten
    whole on every write. Writes from worker threads in the same process are
    serialized; concurrent processes may lose a write but never corrupt the
    file.
    """

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = cache_dir or get_cache_dir()
        self.path = self.cache_dir / STATUS_CACHE_FILE
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        clusters = data.get("clusters") if isinstance(data, dict) else None
        if not isinstance(clusters, dict):
            raise ValueError("status cache has no 'clusters' mapping")
        return clusters

    def read(self, profile: str) -> Optional[CachedClusterData]:
        """Return the cached entry for ``profile``, or None on any failure."""
        try:
            entry = self._load().get(profile)
            if entry is None:
                return None
            return CachedClusterData.from_dict(entry)
        except (OSError, ValueError, KeyError, TypeError) as e:
            log(f"[cache] Ignoring unreadable status cache for {profile}: {e}", DEBUG)
            return None

    def read_all(self, profiles: Iterable[str]) -> List[CachedClusterData]:
        """Cached entries for ``profiles`` in the given order, skipping misses."""
        results = []
        for profile in profiles:
            entry = self.read(profile)
            if entry is not None:
                results.append(entry)
        return results

    def write(self, profile: str, status: ClusterStatus) -> None:
        """Store ``status`` for ``profile``. Failures are logged, never raised."""
        entry = CachedClusterData(profile=profile, data=status, cached_at=utc_now_rfc3339())
        with self._lock:
            try:
                try:
                    clusters = self._load()
                except (OSError, ValueError) as e:
                    log(f"[cache] Replacing corrupt status cache: {e}", WARNING)
                    clusters = {}
                clusters[profile] = entry.to_dict()
                _atomic_write(self.path, json.dumps({"clusters": clusters}, indent=2, default=str))
            except (OSError, TypeError, ValueError) as e:
                log(f"[cache] Failed to write status cache for {profile}: {e}", WARNING)


class ApiCache:
    """TTL cache of raw API responses for one cluster.

    Entries live in ``<cache-root>/api/<sha256(key)>.json`` where the key is
    ``<cluster_uuid>:<path>``, so two clusters never share an entry.
    """

    def __init__(self, cluster_uuid: str, cache_dir: Optional[Path] = None):
        self.cluster_uuid = cluster_uuid
        self.cache_dir = (cache_dir or get_cache_dir()) / API_CACHE_SUBDIR

    def make_key(self, path: str) -> str:
        return f"{self.cluster_uuid}:{path}"

    def _entry_path(self, path: str) -> Path:
        digest = hashlib.sha256(self.make_key(path).encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def get(self, path: str, max_age: float) -> Optional[Any]:
        """Return the cached response if it is at most ``max_age`` seconds old."""
        entry_file = self._entry_path(path)
        if not entry_file.exists():
            return None
        try:
            entry = json.loads(entry_file.read_text(encoding="utf-8"))
            age = time.time() - float(entry["cached_at"])
            response = entry["response"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            log(f"[cache] Corrupt API cache entry for {self.make_key(path)}, treating as miss: {e}", DEBUG)
            return None
        if age < 0 or age > max_age:
            return None
        return response

    def put(self, path: str, ttl: float, response: Any) -> None:
        """Store ``response``. Failures are logged, never raised."""
        entry = {"cached_at": time.time(), "ttl_secs": int(ttl), "response": response}
        try:
            _atomic_write(self._entry_path(path), json.dumps(entry))
        except (OSError, TypeError, ValueError) as e:
            log(f"[cache] Failed to write API cache for {self.make_key(path)}: {e}", WARNING)
