"""Status polling loop: single run or ``--watch`` with NIC deltas between polls."""

from __future__ import annotations

import json
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TextIO, Tuple

from ..collectors.fleet import FleetCollector, build_cached_status
from ..data.models import EnvironmentStatus
from .render import render_status, render_timing_report, status_to_json

CLEAR_SCREEN = "\x1b[2J\x1b[H"

NicCounters = Dict[Tuple[str, int], int]


@dataclass
class WatchState:
    """Raw NIC counters from the previous poll, keyed by (profile, node_id)."""

    previous_nic_counters: NicCounters = field(default_factory=dict)
    previous_timestamp: float = 0.0  # time.monotonic() of the previous poll


def extract_nic_counters(status: EnvironmentStatus) -> NicCounters:
    counters: NicCounters = {}
    for cluster in status.clusters:
        for node in cluster.nodes.per_node:
            if node.nic_bytes_total is not None:
                counters[(cluster.profile_name, node.node_id)] = node.nic_bytes_total
    return counters


def apply_nic_deltas(status: EnvironmentStatus, prev: WatchState, now: float) -> NicCounters:
    """Fill throughput and utilization from the delta since ``prev``.

    A counter that went backwards counts as zero traffic. Returns the current
    counters for the next poll.
    """
    elapsed = now - prev.previous_timestamp
    counters: NicCounters = {}
    for cluster in status.clusters:
        for node in cluster.nodes.per_node:
            if node.nic_bytes_total is None:
                continue
            key = (cluster.profile_name, node.node_id)
            counters[key] = node.nic_bytes_total
            previous = prev.previous_nic_counters.get(key)
            if previous is None or elapsed <= 0:
                continue
            throughput = int(max(0, node.nic_bytes_total - previous) * 8 / elapsed)
            node.nic_throughput_bps = throughput
            if node.nic_link_speed_bps:
                node.nic_utilization_pct = throughput / node.nic_link_speed_bps * 100.0
    return counters


class StatusWatcher:
    """Runs the status view once, or repeatedly until stopped.

    Args:
        collector: Configured fleet collector
        profile_filters: ``--cluster`` values (empty means every profile)
        json_mode: Print the JSON document instead of the text view
        watch: Poll every ``interval`` seconds until interrupted
        interval: Seconds between polls
        show_timing: Print the per-step timing report to stderr
        out / err: Output streams
        clock: Monotonic clock used for NIC deltas
    """

    def __init__(
        self,
        collector: FleetCollector,
        profile_filters: Optional[List[str]] = None,
        json_mode: bool = False,
        watch: bool = False,
        interval: int = 5,
        show_timing: bool = False,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collector = collector
        self.profile_filters = profile_filters or []
        self.json_mode = json_mode
        self.watch = watch
        self.interval = interval
        self.show_timing = show_timing
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.clock = clock
        self.state: Optional[WatchState] = None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _show_cached(self) -> bool:
        profiles = self.collector.config.select_profiles(self.profile_filters)
        cached = build_cached_status(profiles, self.collector.cache)
        if cached is None:
            return False
        self.out.write(render_status(cached))
        self.out.write("Refreshing...\n")
        self.out.flush()
        return True

    def _track_nic(self, status: EnvironmentStatus) -> None:
        now = self.clock()
        if self.state is None:
            counters = extract_nic_counters(status)
        else:
            counters = apply_nic_deltas(status, self.state, now)
        self.state = WatchState(previous_nic_counters=counters, previous_timestamp=now)

    def poll(self, first: bool) -> None:
        showed_cached = first and not self.json_mode and not self.collector.no_cache and self._show_cached()

        status = self.collector.collect(self.profile_filters)
        if self.watch:
            self._track_nic(status)

        if self.json_mode:
            self.out.write(json.dumps(status_to_json(status), indent=2) + "\n")
        else:
            if showed_cached or (self.watch and not first):
                self.out.write(CLEAR_SCREEN)
            self.out.write(render_status(status))

        if self.show_timing:
            self.err.write(render_timing_report(status.clusters))
            self.err.flush()

        if self.watch and not self.json_mode:
            self.out.write(f"Refreshing every {self.interval}s - press Ctrl+C to stop\n")
        self.out.flush()

    def run(self) -> int:
        """Returns the exit code. Alerts never change it."""
        first = True
        try:
            while True:
                self.poll(first)
                if not self.watch or self._stop_event.wait(self.interval):
                    break
                first = False
        except KeyboardInterrupt:
            if not self.watch:
                raise
        return 0
