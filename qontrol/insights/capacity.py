"""Capacity projection from daily capacity-history samples.

Fits an ordinary least-squares line through (day_index, used_bytes) and
extrapolates to the cluster's total capacity. Only growing clusters get a
projection; stable or shrinking usage is not an alerting condition.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..data.models import CapacityProjection, ClusterType, ProjectionConfidence

MIN_DATA_POINTS = 7
LOW_CONFIDENCE_R_SQUARED = 0.5
ONPREM_WARN_DAYS = 90
CLOUD_WARN_DAYS = 7  # cloud capacity is adjusted on a shorter cadence

TB = 1_099_511_627_776

FLAT_TOLERANCE = 1e-12


@dataclass
class RegressionResult:
    """y = slope * x + intercept"""

    slope: float
    intercept: float
    r_squared: float


def linear_regression(points: List[Tuple[float, float]]) -> Optional[RegressionResult]:
    """Least-squares fit over (x, y) pairs.

    Returns None for fewer than two points or when every x is the same.
    Constant y is a perfect flat fit: slope 0 and R² of 1. Sums are taken
    about the means so byte-scale offsets do not leak into the slope.
    """
    if len(points) < 2:
        return None

    n = float(len(points))
    mean_x = sum(x for x, _ in points) / n
    mean_y = sum(y for _, y in points) / n

    ss_xx = sum((x - mean_x) ** 2 for x, _ in points)
    if ss_xx == 0.0:
        return None

    ss_tot = sum((y - mean_y) ** 2 for _, y in points)
    # Relative to the magnitude of y; rounding noise on ~1e15 values is not growth.
    if ss_tot <= FLAT_TOLERANCE * (mean_y * mean_y or 1.0) * n:
        return RegressionResult(slope=0.0, intercept=mean_y, r_squared=1.0)

    ss_xy = sum((x - mean_x) * (y - mean_y) for x, y in points)
    slope = ss_xy / ss_xx
    intercept = mean_y - slope * mean_x
    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in points)

    return RegressionResult(slope=slope, intercept=intercept, r_squared=1.0 - ss_res / ss_tot)


def parse_byte_value(value: Any) -> Optional[int]:
    """Byte counts arrive as decimal strings or plain integers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value)
        except ValueError:
            return None
        return parsed if parsed >= 0 else None
    return None


def parse_capacity_history(history: Any) -> List[Tuple[float, float]]:
    """Turn the capacity-history array into (day_index, used_bytes) points.

    The day index is the entry's position in the response, so a skipped
    malformed entry leaves a gap rather than shifting later days.
    """
    if not isinstance(history, list):
        return []
    points = []
    for i, entry in enumerate(history):
        if not isinstance(entry, dict):
            continue
        used = parse_byte_value(entry.get("capacity_used"))
        if used is not None:
            points.append((float(i), float(used)))
    return points


def compute_projection(history: Any, current_used: int, total_capacity: int) -> Optional[CapacityProjection]:
    """Project days until the cluster is full.

    Args:
        history: Raw capacity-history response (one entry per day)
        current_used: Bytes in use now
        total_capacity: Usable bytes

    Returns:
        A projection, or None when there are too few points, the fit is
        degenerate, or usage is not growing.
    """
    points = parse_capacity_history(history)
    if len(points) < MIN_DATA_POINTS:
        return None

    regression = linear_regression(points)
    if regression is None or regression.slope <= 0:
        return None

    remaining = float(total_capacity) - float(current_used)
    days_to_full = max(0, math.ceil(remaining / regression.slope))

    if regression.r_squared < LOW_CONFIDENCE_R_SQUARED:
        confidence = ProjectionConfidence.LOW
    else:
        confidence = ProjectionConfidence.HIGH

    return CapacityProjection(
        growth_rate_bytes_per_day=regression.slope,
        days_until_full=days_to_full,
        confidence=confidence,
    )


def warn_threshold_days(cluster_type: ClusterType) -> int:
    return CLOUD_WARN_DAYS if cluster_type.is_cloud else ONPREM_WARN_DAYS


def should_warn(projection: CapacityProjection, cluster_type: ClusterType) -> bool:
    if projection.days_until_full is None:
        return False
    return projection.days_until_full < warn_threshold_days(cluster_type)


def format_warning(projection: CapacityProjection, cluster_type: ClusterType) -> str:
    days = projection.days_until_full or 0
    if cluster_type.is_cloud:
        return f"may run out of space within ~{days} days - consider increasing capacity clamp"
    daily_tb = projection.growth_rate_bytes_per_day / TB
    return f"projected to fill in ~{days} days (+{daily_tb:.1f} TB/day)"
