"""
Reliability package.

Public API:
- ReliabilityEngine (recalculate, recalculate_all, recalculate_reliability, details)
- compute_reliability, RELIABILITY_FACTORS
"""
from .engine import (
    RELIABILITY_FACTORS,
    ReliabilityDetails,
    ReliabilityEngine,
    ReliabilityFactor,
    compute_reliability,
)

__all__ = [
    "RELIABILITY_FACTORS",
    "ReliabilityDetails",
    "ReliabilityEngine",
    "ReliabilityFactor",
    "compute_reliability",
]
