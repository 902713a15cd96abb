"""
Purpose: Central configuration for matching and reassignment.
What it does:

Stores all tunable thresholds/caps:

SEARCH_RADIUS_KM = 10
MAX_CANDIDATES = 30
MAX_DAILY_PICKUPS = 10
STALE_WINDOW = 20 minutes
MAX_REASSIGN_ATTEMPTS = 3
RELIABILITY_PENALTY = 5

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from common.config import Settings


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Candidate selection limits for one ranking call.
    """

    # --- Geo query ---
    search_radius_km: float = 10.0

    # Cap on organizations pulled from the geo query (cost control).
    max_candidates: int = 30

    # --- Load balancing ---
    # Organizations at or above this many pickups today are skipped.
    max_daily_pickups: int = 10

    # --- Accept safety margin ---
    # An accept is refused when less than this remains before expiry.
    min_minutes_to_accept: int = 15

    def validate(self) -> None:
        if self.search_radius_km <= 0:
            raise ValueError("search_radius_km must be > 0")
        if self.max_candidates <= 0:
            raise ValueError("max_candidates must be > 0")
        if self.max_daily_pickups <= 0:
            raise ValueError("max_daily_pickups must be > 0")
        if self.min_minutes_to_accept < 0:
            raise ValueError("min_minutes_to_accept must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> MatchingPolicy:
        p = cls(
            search_radius_km=settings.search_radius_km,
            max_candidates=settings.max_candidates,
            max_daily_pickups=settings.max_daily_pickups,
        )
        p.validate()
        return p


@dataclass(frozen=True)
class ReassignmentPolicy:
    """
    Timing and penalty rules for the stale-acceptance sweep.
    """

    # How long an Accepted donation may wait for pickup before it counts as abandoned.
    stale_window_minutes: int = 20

    # Total failed attempts after which the donation expires instead of retrying.
    max_reassign_attempts: int = 3

    # Immediate reliability deduction for the organization that let it go stale.
    reliability_penalty: int = 5

    # Wall-clock budget for one sweep pass; remaining donations wait for the next pass.
    sweep_timeout_seconds: int = 240

    # Reliability bonus on a confirmed delivery.
    delivery_bonus: int = 2

    @property
    def stale_window(self) -> timedelta:
        return timedelta(minutes=self.stale_window_minutes)

    @property
    def timeout_reason(self) -> str:
        return f"No pickup within {self.stale_window_minutes} minutes"

    def validate(self) -> None:
        if self.stale_window_minutes <= 0:
            raise ValueError("stale_window_minutes must be > 0")
        if self.max_reassign_attempts < 1:
            raise ValueError("max_reassign_attempts must be >= 1")
        if self.reliability_penalty < 0:
            raise ValueError("reliability_penalty must be >= 0")
        if self.sweep_timeout_seconds <= 0:
            raise ValueError("sweep_timeout_seconds must be > 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> ReassignmentPolicy:
        p = cls(
            stale_window_minutes=settings.stale_window_minutes,
            max_reassign_attempts=settings.max_reassign_attempts,
            reliability_penalty=settings.reliability_penalty,
            sweep_timeout_seconds=settings.sweep_timeout_seconds,
        )
        p.validate()
        return p


def default_matching_policy() -> MatchingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = MatchingPolicy()
    p.validate()
    return p


def default_reassignment_policy() -> ReassignmentPolicy:
    p = ReassignmentPolicy()
    p.validate()
    return p
