"""Base collector interface for per-cluster data sources."""

import threading
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..config import Profile
from ..logs import WARNING, log


class BaseCollector(ABC):
    """Abstract base class for collectors that probe one cluster at a time.

    Subclasses implement ``collect_cluster``; ``collect_each`` fans it out
    over a working set with one thread per profile and joins them all before
    returning.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this collector.

        Returns:
            A short, lowercase identifier (e.g., 'status', 'cdf')
        """
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for messages.

        Returns:
            A user-friendly name (e.g., 'Cluster Status', 'Data Fabric')
        """
        pass

    @abstractmethod
    def collect_cluster(self, profile: Profile) -> Any:
        """Collect data from a single cluster.

        Implementations should turn expected failures into a result value.
        Anything that escapes is passed to ``worker_failed``.
        """
        pass

    @abstractmethod
    def worker_failed(self, profile: Profile, error: BaseException) -> Any:
        """Result to use when ``collect_cluster`` raised instead of returning."""
        pass

    def collect_each(self, profiles: List[Profile]) -> List[Any]:
        """Run ``collect_cluster`` for every profile in parallel.

        Returns:
            One result per profile, in the order of ``profiles`` regardless of
            which worker finished first.
        """
        results: List[Any] = [None] * len(profiles)
        errors: List[Optional[BaseException]] = [None] * len(profiles)

        def worker(idx: int, profile: Profile) -> None:
            try:
                results[idx] = self.collect_cluster(profile)
            except Exception as e:
                errors[idx] = e

        threads = [
            threading.Thread(target=worker, args=(idx, profile), name=f"{self.name}-{profile.name}", daemon=True)
            for idx, profile in enumerate(profiles)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for idx, error in enumerate(errors):
            if error is not None:
                log(f"[{self.name}] Worker for {profiles[idx].name} failed: {error}", WARNING)
                results[idx] = self.worker_failed(profiles[idx], error)
        return results

