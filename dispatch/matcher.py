"""
Purpose: The matching engine (the "one call" ranking entry point).
What it does:
Given a donation id, gathers rule-qualified organizations (candidate_filter),
scores each across the weighted factor registry (scoring), and returns them
best-first with a per-factor breakdown. offer_to_best() also queues a
nearby-donation notice for the top candidate.

This is a greedy per-donation selector: it ranks organizations for one
donation at a time and does not try to optimise assignments across donations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from common.clock import Clock, SystemClock
from common.errors import NoEligibleCandidates
from common.rounding import round_half_up
from donations.models import Donation, DonationStatus
from donations.store import DonationStore, PickupLogStore
from organizations.store import OrganizationStore

from .candidate_filter import build_base_candidates
from .notifications import NotificationDispatcher, NotificationEvent
from .policy import MatchingPolicy, default_matching_policy
from .scoring import DEFAULT_FACTORS, Factor, ScoringContext, score_candidate, validate_factors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """
    One ranked organization for a donation.
    """
    organization_id: str
    name: str
    distance_km: float
    score: float
    factors: Dict[str, float] = field(default_factory=dict)
    daily_load: int = 0
    historical_deliveries: int = 0


class MatchingEngine:

    def __init__(
        self,
        donations: DonationStore,
        organizations: OrganizationStore,
        pickup_logs: PickupLogStore,
        policy: Optional[MatchingPolicy] = None,
        factors: Optional[Mapping[str, Factor]] = None,
        clock: Optional[Clock] = None,
    ):
        self.donations = donations
        self.organizations = organizations
        self.pickup_logs = pickup_logs
        self.policy = policy or default_matching_policy()
        self.factors = dict(factors or DEFAULT_FACTORS)
        self.clock = clock or SystemClock()

        self.policy.validate()
        validate_factors(self.factors)

    def rank(self, donation_id: str, now: Optional[datetime] = None) -> List[Candidate]:
        """
        Ranked candidates for a donation, best first.
        Empty when the donation is not Available or nobody is eligible.
        Raises NotFound if the donation does not exist.
        """
        donation = self.donations.get(donation_id)
        return self.rank_donation(donation, now=now)

    def rank_donation(self, donation: Donation, now: Optional[datetime] = None) -> List[Candidate]:
        now = now or self.clock.now()

        if donation.status != DonationStatus.AVAILABLE:
            return []

        eligible = build_base_candidates(
            donation,
            self.organizations,
            self.pickup_logs,
            self.policy,
            now,
        )
        if not eligible:
            logger.info(
                f"Matching: donation {donation.id} -> 0 candidates within {self.policy.search_radius_km}km"
            )
            return []

        # Shared by every candidate in this call.
        minutes_to_expiry = donation.minutes_to_expiry(now)
        hour = now.hour

        scored = []
        for item in eligible:
            ctx = ScoringContext(
                distance_km=item.distance_km,
                radius_km=self.policy.search_radius_km,
                minutes_to_expiry=minutes_to_expiry,
                reliability_score=item.organization.reliability_score,
                stats=item.stats,
                quantity=donation.quantity,
                hour=hour,
            )
            composite, breakdown = score_candidate(ctx, self.factors)
            scored.append((composite, item.distance_km, item, breakdown))

        # Best score first; ties go to the closer organization; otherwise stable.
        scored.sort(key=lambda entry: (-entry[0], entry[1]))

        candidates = [
            Candidate(
                organization_id=item.organization.id,
                name=item.organization.name,
                distance_km=round_half_up(distance_km * 100) / 100,
                score=round_half_up(composite * 100) / 100,
                factors=breakdown,
                daily_load=item.daily_load,
                historical_deliveries=item.stats.total_delivered,
            )
            for composite, distance_km, item, breakdown in scored
        ]

        top = candidates[0]
        logger.info(
            f"Matching: donation {donation.id} -> {len(candidates)} candidates "
            f"(top: {top.score}, organization: {top.organization_id})"
        )
        return candidates

    def best_candidate(self, donation_id: str, now: Optional[datetime] = None) -> Candidate:
        candidates = self.rank(donation_id, now=now)
        if not candidates:
            raise NoEligibleCandidates(f"No eligible organization for donation {donation_id}.")
        return candidates[0]

    def offer_to_best(
        self,
        donation: Donation,
        notifier: Optional[NotificationDispatcher],
        now: Optional[datetime] = None,
    ) -> Optional[Candidate]:
        """
        Rank an Available donation and queue a nearby-donation notice for the
        top candidate. Returns that candidate, or None when nobody qualifies.
        """
        candidates = self.rank_donation(donation, now=now)
        if not candidates:
            return None
        top = candidates[0]
        if notifier is not None:
            notifier.notify(
                top.organization_id,
                NotificationEvent.NEW_DONATION_NEARBY,
                {"donation_id": donation.id, "distance_km": top.distance_km, "score": top.score},
                title="New Donation Nearby",
                message=(
                    f'"{donation.food_type}" ({donation.quantity:g} {donation.unit.value}) '
                    f"is available {top.distance_km} km away."
                ),
            )
        return top
