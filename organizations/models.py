"""
Purpose: Core data models for the organizations (NGO) domain.
What it does:
Defines the read-mostly view of a pickup organization that the matching core
needs: location, eligibility flags and reliability score. Profiles, contact
details and credentials belong to the identity subsystem, not here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from common.rounding import round_half_up

LatLon = Tuple[float, float]

DEFAULT_RELIABILITY_SCORE = 50
MIN_RELIABILITY_SCORE = 0
MAX_RELIABILITY_SCORE = 100


def clamp_score(value: float) -> int:
    return int(max(MIN_RELIABILITY_SCORE, min(MAX_RELIABILITY_SCORE, round_half_up(value))))


@dataclass(frozen=True)
class Organization:
    """
    A snapshot of an organization at a specific point in time.
    """
    id: str
    name: str
    location: LatLon  # (lat, lon)
    is_active: bool = True
    is_verified: bool = False
    reliability_score: int = DEFAULT_RELIABILITY_SCORE

    @property
    def is_eligible(self) -> bool:
        return self.is_active and self.is_verified

    @classmethod
    def new(
        cls,
        organization_id: str,
        lat: float,
        lon: float,
        *,
        name: str = "",
        is_active: bool = True,
        is_verified: bool = True,
        reliability_score: int = DEFAULT_RELIABILITY_SCORE,
    ) -> Organization:
        return cls(
            id=organization_id,
            name=name or organization_id,
            location=(lat, lon),
            is_active=is_active,
            is_verified=is_verified,
            reliability_score=clamp_score(reliability_score),
        )
