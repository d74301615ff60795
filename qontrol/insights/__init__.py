"""Insights - capacity projection and the alert engine."""

from .capacity import compute_projection, linear_regression
from .alerts import generate_alerts

__all__ = [
    "compute_projection",
    "linear_regression",
    "generate_alerts",
]
