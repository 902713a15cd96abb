"""
Purpose: Ranking model (the "who is best" layer).
What it does:
Takes one eligible organization's features (distance, urgency, history)
and produces seven component scores, each in [0, 100], plus their weighted sum.

The weights and scoring functions live in a declarative registry
(factor name -> Factor(weight, fn)), so a different weighting can be passed to
the matcher without touching ranking control flow.

Rule: Pure functions. No store access, no clock reads.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from common.rounding import round_half_up
from donations.models import PickupStats

NEUTRAL_SCORE = 50.0


# ---- Component scorers (each returns 0-100) ----

def score_distance(distance_km: float, radius_km: float) -> float:
    """Exponential decay: being close matters much more than being merely in range."""
    if distance_km >= radius_km:
        return 0.0
    return max(0.0, 100.0 * math.exp(-2.0 * (distance_km / radius_km)))


def score_urgency(minutes_to_expiry: float) -> float:
    """Higher when expiry is imminent; 0 once it has passed."""
    if minutes_to_expiry <= 0:
        return 0.0
    if minutes_to_expiry <= 15:
        return 100.0
    if minutes_to_expiry <= 30:
        return 95.0
    if minutes_to_expiry <= 60:
        return 80.0
    if minutes_to_expiry <= 120:
        return 55.0
    if minutes_to_expiry <= 240:
        return 35.0
    return 15.0


def score_reliability(reliability_score: float) -> float:
    return float(min(100.0, max(0.0, reliability_score)))


def score_response_time(avg_response_mins: Optional[float]) -> float:
    """How fast this organization usually gets from accept to pickup."""
    if avg_response_mins is None:
        return NEUTRAL_SCORE
    if avg_response_mins <= 10:
        return 100.0
    if avg_response_mins <= 20:
        return 85.0
    if avg_response_mins <= 30:
        return 65.0
    if avg_response_mins <= 45:
        return 40.0
    return 15.0


def score_success_rate(delivered: int, total: int) -> float:
    if total <= 0:
        return NEUTRAL_SCORE
    return float(min(100, max(0, round_half_up(delivered / total * 100))))


def score_capacity(quantity: float, avg_quantity: Optional[float], max_quantity: Optional[float]) -> float:
    """
    Does this organization usually handle donations of this size?
    Neutral when there is no history to compare against.
    """
    if not avg_quantity or not max_quantity:
        return NEUTRAL_SCORE
    if quantity > max_quantity * 1.5:
        return 10.0
    if quantity <= avg_quantity:
        return 100.0
    ratio = (quantity - avg_quantity) / (max_quantity - avg_quantity + 1)
    return float(round_half_up(max(20.0, 100.0 - ratio * 80.0)))


def score_time_of_day(hour: int) -> float:
    """Coarse traffic heuristic: morning and evening rush, then late night."""
    if 8 <= hour <= 10 or 17 <= hour <= 20:
        return 40.0
    if hour >= 23 or hour <= 5:
        return 30.0
    return 90.0


# ---- Declarative registry ----

@dataclass(frozen=True)
class ScoringContext:
    """
    Everything a factor may look at for one (donation, organization) pair.
    """
    distance_km: float
    radius_km: float
    minutes_to_expiry: float
    reliability_score: float
    stats: PickupStats
    quantity: float
    hour: int


@dataclass(frozen=True)
class Factor:
    weight: float
    score: Callable[[ScoringContext], float]


DEFAULT_FACTORS: Dict[str, Factor] = {
    "distance": Factor(0.25, lambda ctx: score_distance(ctx.distance_km, ctx.radius_km)),
    "urgency": Factor(0.20, lambda ctx: score_urgency(ctx.minutes_to_expiry)),
    "reliability": Factor(0.15, lambda ctx: score_reliability(ctx.reliability_score)),
    "response_time": Factor(0.15, lambda ctx: score_response_time(ctx.stats.avg_response_mins)),
    "success_rate": Factor(
        0.10, lambda ctx: score_success_rate(ctx.stats.total_delivered, ctx.stats.total_accepted)
    ),
    "capacity": Factor(
        0.10, lambda ctx: score_capacity(ctx.quantity, ctx.stats.avg_quantity, ctx.stats.max_quantity)
    ),
    "time_of_day": Factor(0.05, lambda ctx: score_time_of_day(ctx.hour)),
}


def validate_factors(factors: Mapping[str, Factor]) -> None:
    """
    Weights must be non-negative and sum to 1.0 so the composite stays in [0, 100].
    """
    if not factors:
        raise ValueError("At least one scoring factor is required")
    for name, factor in factors.items():
        if factor.weight < 0:
            raise ValueError(f"Factor {name!r} has a negative weight")
    total = sum(factor.weight for factor in factors.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ValueError(f"Factor weights must sum to 1.0, got {total}")


def score_candidate(
    ctx: ScoringContext,
    factors: Mapping[str, Factor] = DEFAULT_FACTORS,
) -> Tuple[float, Dict[str, float]]:
    """
    Returns (composite score, per-factor breakdown). Component scores are clamped to [0, 100].
    """
    breakdown: Dict[str, float] = {}
    composite = 0.0
    for name, factor in factors.items():
        value = min(100.0, max(0.0, float(factor.score(ctx))))
        breakdown[name] = value
        composite += factor.weight * value
    return composite, breakdown
