#Purpose: Hard eligibility filtering (rule gates) for one donation.
#Builds the base candidate set before scoring.
#Responsibilities:
#geo query: active + verified organizations within the search radius, capped
#exclusion of organizations that already failed this donation
#daily load cap (overloaded organizations are skipped)
#one batched read of pickup history for the whole candidate set

#Output: "rule-qualified organizations" with the features scoring needs (still not ranked).

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List

from donations.models import Donation, PickupStats
from donations.store import PickupLogStore
from organizations.models import Organization
from organizations.store import OrganizationStore
from routing.geo import haversine_km

from .policy import MatchingPolicy


@dataclass(frozen=True)
class EligibleOrganization:
    organization: Organization
    distance_km: float
    stats: PickupStats
    daily_load: int


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def build_base_candidates(
    donation: Donation,
    organizations: OrganizationStore,
    pickup_logs: PickupLogStore,
    policy: MatchingPolicy,
    now: datetime,
) -> List[EligibleOrganization]:
    """
    Returns eligible organizations nearest first, each with its distance,
    aggregate history and today's load.
    """
    excluded = donation.failed_organization_ids

    nearby = organizations.find_near(
        donation.location,
        policy.search_radius_km,
        limit=policy.max_candidates,
        exclude_ids=excluded,
    )
    if not nearby:
        return []

    organization_ids = [organization.id for organization in nearby]

    # Batched reads: one pass for the whole candidate set, not one per organization.
    stats_by_id = pickup_logs.aggregate_stats(organization_ids)
    load_by_id = pickup_logs.daily_load(organization_ids, since=start_of_day(now))

    eligible: List[EligibleOrganization] = []
    for organization in nearby:
        # a backend may ignore exclude_ids; never re-offer to a failed organization
        if organization.id in excluded or not organization.is_eligible:
            continue

        daily_load = load_by_id.get(organization.id, 0)
        if daily_load >= policy.max_daily_pickups:
            continue

        distance_km = haversine_km(donation.location, organization.location)
        if distance_km > policy.search_radius_km:
            continue

        eligible.append(
            EligibleOrganization(
                organization=organization,
                distance_km=distance_km,
                stats=stats_by_id.get(organization.id, PickupStats.empty()),
                daily_load=daily_load,
            )
        )

    return eligible
