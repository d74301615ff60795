"""Hardware health: power supply status across the fleet."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..client import QumuloClient
from ..config import Config, Profile
from ..data.models import PsuEntry
from ..errors import QontrolError
from ..logs import WARNING, log
from .base import BaseCollector
from .status import SOFT_ERRORS, parse_all_psus


@dataclass
class ClusterPsuResult:
    cluster: str
    node_count: int = 0
    psus: List[PsuEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def psu_count(self) -> int:
        return len(self.psus)

    @property
    def unhealthy_count(self) -> int:
        return sum(1 for p in self.psus if not p.healthy)

    @property
    def healthy_count(self) -> int:
        return self.psu_count - self.unhealthy_count

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "cluster": self.cluster,
            "node_count": self.node_count,
            "psu_count": self.psu_count,
            "healthy_count": self.healthy_count,
            "unhealthy_count": self.unhealthy_count,
            "psus": [asdict(p) for p in self.psus],
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class PsuCollector(BaseCollector):
    """Reads the chassis endpoint of every profile in parallel."""

    def __init__(self, timeout: int = 30, client_factory: Optional[Callable[[Profile], QumuloClient]] = None):
        self.timeout = timeout
        self.client_factory = client_factory or self._default_client

    @property
    def name(self) -> str:
        return "hw"

    @property
    def display_name(self) -> str:
        return "PSU Health"

    def _default_client(self, profile: Profile) -> QumuloClient:
        return QumuloClient.from_profile(profile, timeout=self.timeout, use_cache=False)

    def worker_failed(self, profile: Profile, error: BaseException) -> ClusterPsuResult:
        return ClusterPsuResult(cluster=profile.name, error="thread panicked")

    def collect_cluster(self, profile: Profile) -> ClusterPsuResult:
        try:
            client = self.client_factory(profile)
        except (QontrolError, ValueError, OSError) as e:
            return ClusterPsuResult(cluster=profile.name, error=f"failed to create client: {e}")
        try:
            node_count, psus = parse_all_psus(client.get_cluster_chassis())
            return ClusterPsuResult(cluster=profile.name, node_count=node_count, psus=psus)
        except SOFT_ERRORS as e:
            log(f"[hw] {profile.name}: chassis query failed: {e}", WARNING)
            return ClusterPsuResult(cluster=profile.name, error=str(e))
        finally:
            client.close()

    def collect_all(self, config: Config, profile_filters: Optional[List[str]] = None) -> List[ClusterPsuResult]:
        """PSU results in working-set order.

        Raises:
            ConfigError: If no profiles match ``profile_filters``.
        """
        return self.collect_each(config.select_profiles(profile_filters))
