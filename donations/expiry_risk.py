"""
Purpose: Food-safety risk estimate for a donation (0-100, higher = riskier).
What it does:
Combines five heuristics into one weighted score:
  1. shelf life already consumed since preparation (30%)
  2. time remaining before expiry (30%)
  3. category spoilage sensitivity (15%)
  4. transport time at an urban 20 km/h (15%)
  5. hour-of-day temperature heuristic (10%)

Rule: Advisory only. It never changes donation state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from common.rounding import round_half_up

from .models import Donation, FoodCategory

logger = logging.getLogger(__name__)

# 0-1 scale, higher spoils faster
SPOILAGE_RATE = {
    FoodCategory.COOKED_MEAL: 0.85,
    FoodCategory.RAW_INGREDIENTS: 0.45,
    FoodCategory.PACKAGED: 0.15,
    FoodCategory.BAKERY: 0.65,
    FoodCategory.BEVERAGES: 0.20,
    FoodCategory.MIXED: 0.75,
}

URBAN_PICKUP_SPEED_KMH = 20.0


@dataclass(frozen=True)
class ExpiryRisk:
    risk_score: int
    risk_level: str  # LOW | MEDIUM | HIGH
    recommendation: str
    factors: Dict[str, float]


def _time_remaining_risk(remaining_mins: float) -> float:
    if remaining_mins <= 0:
        return 100
    if remaining_mins <= 15:
        return 95
    if remaining_mins <= 30:
        return 80
    if remaining_mins <= 60:
        return 55
    if remaining_mins <= 120:
        return 30
    return 10


def _transport_risk(transport_mins: float, remaining_mins: float) -> float:
    risk = 0
    if transport_mins > 30:
        risk = 70
    elif transport_mins > 15:
        risk = 40
    elif transport_mins > 5:
        risk = 15

    # food would expire (or nearly) while on the road
    if transport_mins > 0 and remaining_mins > 0 and transport_mins >= remaining_mins * 0.8:
        risk = max(risk, 85)
    return risk


def _temperature_risk(hour: int, category: FoodCategory) -> float:
    if hour <= 6 or hour >= 21:
        return 10
    if 11 <= hour <= 16:
        return 70 if category in (FoodCategory.COOKED_MEAL, FoodCategory.BAKERY) else 40
    return 20


def assess_expiry_risk(
    donation: Donation,
    transport_km: float = 0.0,
    now: Optional[datetime] = None,
) -> ExpiryRisk:
    """
    Estimate how risky it is to move this donation right now.
    """
    now = now or datetime.now(donation.expiry_time.tzinfo)
    category = donation.category

    total_shelf_secs = category.max_shelf_hours * 3600
    elapsed_secs = (now - donation.prepared_at).total_seconds()
    shelf_used_pct = min(100.0, max(0.0, elapsed_secs / total_shelf_secs * 100))

    remaining_mins = donation.minutes_to_expiry(now)
    time_risk = _time_remaining_risk(remaining_mins)

    spoilage_risk = SPOILAGE_RATE[category] * 100

    transport_mins = (transport_km / URBAN_PICKUP_SPEED_KMH) * 60 if transport_km > 0 else 0.0
    transport_risk = _transport_risk(transport_mins, remaining_mins)

    temp_risk = _temperature_risk(now.hour, category)

    risk_score = round_half_up(
        0.30 * shelf_used_pct
        + 0.30 * time_risk
        + 0.15 * spoilage_risk
        + 0.15 * transport_risk
        + 0.10 * temp_risk
    )

    if risk_score >= 70:
        level = "HIGH"
        recommendation = (
            "Immediate pickup required. Consider reducing pickup radius. "
            "Not safe for extended transport."
        )
    elif risk_score >= 40:
        level = "MEDIUM"
        recommendation = "Pickup within 30 minutes recommended. Ensure proper handling during transport."
    else:
        level = "LOW"
        recommendation = "Food is safe for standard pickup and delivery window."

    logger.debug(f"Expiry risk: donation {donation.id} -> {level} ({risk_score}/100)")

    return ExpiryRisk(
        risk_score=risk_score,
        risk_level=level,
        recommendation=recommendation,
        factors={
            "shelf_life_used_pct": round(shelf_used_pct, 1),
            "minutes_remaining": round(remaining_mins, 1),
            "spoilage_risk": spoilage_risk,
            "transport_minutes": round(transport_mins, 1),
            "temperature_risk": temp_risk,
        },
    )
