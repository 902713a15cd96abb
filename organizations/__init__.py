"""
Organizations (NGO) domain package.

Public API:
- Organization, clamp_score, DEFAULT_RELIABILITY_SCORE
- OrganizationStore
"""
from .models import (
    Organization,
    clamp_score,
    DEFAULT_RELIABILITY_SCORE,
    MIN_RELIABILITY_SCORE,
    MAX_RELIABILITY_SCORE,
)
from .store import OrganizationStore

__all__ = [
    "Organization",
    "clamp_score",
    "DEFAULT_RELIABILITY_SCORE",
    "MIN_RELIABILITY_SCORE",
    "MAX_RELIABILITY_SCORE",
    "OrganizationStore",
]
