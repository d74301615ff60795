"""Collectors - per-cluster probes run in parallel across the fleet."""

from .base import BaseCollector
from .status import StatusCollector
from .fleet import FleetCollector
from .cdf import CdfCollector
from .hardware import PsuCollector

__all__ = [
    "BaseCollector",
    "StatusCollector",
    "FleetCollector",
    "CdfCollector",
    "PsuCollector",
]
