"""
Purpose: Organization reliability scoring (0-100).
What it does:
Recomputes each organization's trust score from its full pickup history,
using five weighted behavioural factors:

  1. Delivery success rate      40%
  2. Pickup speed               20%
  3. Cancellation rate, inverse 15%
  4. Completion ratio           15%
  5. Recency of activity        10%

A bulk pass over all active organizations runs daily; a single organization
can be recalculated on demand (admin action). The score is a pure function of
the history, so re-running without new history leaves it unchanged.

Rule: Failures for one organization never stop the bulk pass.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional, Tuple

from common.clock import Clock, SystemClock
from common.rounding import round_half_up
from donations.models import PickupStats
from donations.store import DonationStore, PickupLogStore
from organizations.models import DEFAULT_RELIABILITY_SCORE, clamp_score
from organizations.store import OrganizationStore

logger = logging.getLogger(__name__)


# ---- Factor scorers ----

def score_success_rate(stats: PickupStats) -> float:
    return stats.total_delivered / stats.total_accepted * 100


def score_pickup_speed(avg_pickup_mins: Optional[float]) -> float:
    if avg_pickup_mins is None:
        return 50
    if avg_pickup_mins <= 10:
        return 100
    if avg_pickup_mins <= 20:
        return 80
    if avg_pickup_mins <= 30:
        return 60
    if avg_pickup_mins <= 45:
        return 35
    return 10


def score_cancellation(stats: PickupStats) -> float:
    # a 50% failure rate zeroes this factor
    failure_rate = stats.total_failed / stats.total_accepted
    return max(0.0, 100 - failure_rate * 200)


def score_completion(stats: PickupStats) -> float:
    completed = stats.total_delivered + stats.total_picked_up
    return min(100.0, completed / stats.total_accepted * 100)


def score_recency(last_activity_at: Optional[datetime], now: datetime) -> float:
    if last_activity_at is None:
        return 30
    days_since = (now - last_activity_at).total_seconds() / 86400
    if days_since <= 1:
        return 100
    if days_since <= 3:
        return 80
    if days_since <= 7:
        return 60
    if days_since <= 14:
        return 40
    return 15


@dataclass(frozen=True)
class ReliabilityFactor:
    weight: float
    score: Callable[[PickupStats, datetime], float]


RELIABILITY_FACTORS: Dict[str, ReliabilityFactor] = {
    "success_rate": ReliabilityFactor(0.40, lambda stats, now: score_success_rate(stats)),
    "pickup_speed": ReliabilityFactor(0.20, lambda stats, now: score_pickup_speed(stats.avg_response_mins)),
    "cancellation": ReliabilityFactor(0.15, lambda stats, now: score_cancellation(stats)),
    "completion": ReliabilityFactor(0.15, lambda stats, now: score_completion(stats)),
    "recency": ReliabilityFactor(0.10, lambda stats, now: score_recency(stats.last_activity_at, now)),
}


def compute_reliability(
    stats: PickupStats,
    now: datetime,
    factors: Mapping[str, ReliabilityFactor] = RELIABILITY_FACTORS,
) -> Tuple[int, Dict[str, float]]:
    """
    Composite score for an organization with at least one accepted pickup.
    Returns (score clamped to [0, 100], per-factor values).
    """
    if stats.total_accepted <= 0:
        raise ValueError("compute_reliability needs at least one accepted pickup")

    breakdown: Dict[str, float] = {}
    composite = 0.0
    for name, factor in factors.items():
        value = min(100.0, max(0.0, float(factor.score(stats, now))))
        breakdown[name] = value
        composite += factor.weight * value
    return clamp_score(composite), breakdown


@dataclass(frozen=True)
class ReliabilityDetails:
    """
    Admin view of an organization's reliability.
    """
    organization_id: str
    name: str
    current_score: int
    total_accepted: int
    total_delivered: int
    total_failed: int
    success_rate_pct: Optional[int]
    avg_pickup_mins: Optional[int]
    total_beneficiaries: int
    reassignments: int
    last_active: Optional[datetime]
    factors: Dict[str, float] = field(default_factory=dict)


class ReliabilityEngine:

    def __init__(
        self,
        organizations: OrganizationStore,
        pickup_logs: PickupLogStore,
        donations: Optional[DonationStore] = None,
        factors: Optional[Mapping[str, ReliabilityFactor]] = None,
        clock: Optional[Clock] = None,
        max_workers: int = 1,
    ):
        self.organizations = organizations
        self.pickup_logs = pickup_logs
        self.donations = donations
        self.factors = dict(factors or RELIABILITY_FACTORS)
        self.clock = clock or SystemClock()
        self.max_workers = max(1, max_workers)

    def recalculate(self, organization_id: str, now: Optional[datetime] = None) -> Optional[int]:
        """
        Recompute and persist one organization's score.
        Returns the new score, or None when there is no history
        (the score is then reset to the neutral default).
        """
        now = now or self.clock.now()
        self.organizations.get(organization_id)

        stats = self.pickup_logs.aggregate_stats([organization_id]).get(organization_id)
        if stats is None or stats.total_accepted == 0:
            self.organizations.set_reliability(organization_id, DEFAULT_RELIABILITY_SCORE)
            return None

        score, breakdown = compute_reliability(stats, now, self.factors)
        self.organizations.set_reliability(organization_id, score)

        logger.debug(
            f"Reliability: organization {organization_id} -> {score} "
            + ", ".join(f"{name}={round_half_up(value)}" for name, value in breakdown.items())
        )
        return score

    def recalculate_all(self, now: Optional[datetime] = None) -> int:
        """
        Recompute every active organization. Returns how many got a history-based score.
        """
        now = now or self.clock.now()
        organization_ids = self.organizations.active_ids()
        updated = 0

        if self.max_workers == 1:
            for organization_id in organization_ids:
                if self._recalculate_isolated(organization_id, now) is not None:
                    updated += 1
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._recalculate_isolated, organization_id, now)
                    for organization_id in organization_ids
                ]
                for future in as_completed(futures):
                    if future.result() is not None:
                        updated += 1

        logger.info(f"Reliability engine: recalculated {updated}/{len(organization_ids)} organizations")
        return updated

    def recalculate_reliability(self, organization_id: Optional[str] = None) -> int:
        """
        Entry point for the daily trigger (no id) or an admin action (one id).
        Returns the number of organizations that received a history-based score.
        """
        if organization_id is None:
            return self.recalculate_all()
        return 0 if self.recalculate(organization_id) is None else 1

    def details(self, organization_id: str, now: Optional[datetime] = None) -> ReliabilityDetails:
        now = now or self.clock.now()
        organization = self.organizations.get(organization_id)
        stats = self.pickup_logs.aggregate_stats([organization_id]).get(organization_id, PickupStats.empty())

        factors: Dict[str, float] = {}
        success_rate_pct = None
        if stats.total_accepted:
            _, factors = compute_reliability(stats, now, self.factors)
            success_rate_pct = round_half_up(stats.total_delivered / stats.total_accepted * 100)

        reassignments = self.donations.count_reassignments_for(organization_id) if self.donations else 0

        return ReliabilityDetails(
            organization_id=organization.id,
            name=organization.name,
            current_score=organization.reliability_score,
            total_accepted=stats.total_accepted,
            total_delivered=stats.total_delivered,
            total_failed=stats.total_failed,
            success_rate_pct=success_rate_pct,
            avg_pickup_mins=round_half_up(stats.avg_response_mins) if stats.avg_response_mins is not None else None,
            total_beneficiaries=stats.total_beneficiaries,
            reassignments=reassignments,
            last_active=stats.last_activity_at,
            factors=factors,
        )

    def _recalculate_isolated(self, organization_id: str, now: datetime) -> Optional[int]:
        try:
            return self.recalculate(organization_id, now)
        except Exception as e:
            logger.error(f"Reliability recalc failed for organization {organization_id}: {e}", exc_info=True)
            return None
