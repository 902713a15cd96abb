from datetime import timedelta

import pytest

from common.errors import NoEligibleCandidates, NotFound
from dispatch.matcher import MatchingEngine
from dispatch.policy import MatchingPolicy
from dispatch.scoring import DEFAULT_FACTORS, Factor, score_reliability
from donations.models import DonationStatus, PickupStatus, ReassignEntry

from .conftest import NOW


def test_no_nearby_organizations_returns_empty_list(matcher, make_donation):
    """Nobody within 10 km is an empty result, not an error."""
    donation = make_donation()
    assert matcher.rank(donation.id) == []


def test_organizations_outside_radius_are_ignored(matcher, make_donation, make_organization):
    make_organization("far_away", km=15)
    donation = make_donation()
    assert matcher.rank(donation.id) == []


def test_inactive_and_unverified_organizations_are_skipped(matcher, make_donation, make_organization):
    make_organization("ok", km=2)
    make_organization("inactive", km=1, is_active=False)
    make_organization("unverified", km=1, is_verified=False)
    donation = make_donation()

    ranked = matcher.rank(donation.id)
    assert [c.organization_id for c in ranked] == ["ok"]


def test_closer_organization_ranks_first(matcher, make_donation, make_organization):
    make_organization("far", km=8)
    make_organization("near", km=1)
    make_organization("middle", km=4)
    donation = make_donation()

    ranked = matcher.rank(donation.id)
    assert [c.organization_id for c in ranked] == ["near", "middle", "far"]
    assert ranked[0].distance_km == pytest.approx(1.0, abs=0.01)
    assert ranked[0].score > ranked[1].score > ranked[2].score


def test_breakdown_covers_every_factor(matcher, make_donation, make_organization):
    make_organization("ngo", km=3)
    donation = make_donation()

    candidate = matcher.rank(donation.id)[0]
    assert set(candidate.factors) == set(DEFAULT_FACTORS)
    assert all(0 <= v <= 100 for v in candidate.factors.values())
    assert 0 <= candidate.score <= 100


def test_reliability_moves_an_otherwise_equal_candidate_up(matcher, make_donation, make_organization):
    make_organization("steady", km=3, reliability_score=90)
    make_organization("shaky", km=3, reliability_score=10)
    donation = make_donation()

    ranked = matcher.rank(donation.id)
    assert [c.organization_id for c in ranked] == ["steady", "shaky"]


def test_previously_failed_organizations_are_excluded(matcher, donations, make_donation, make_organization):
    make_organization("failed_before", km=1)
    make_organization("fresh", km=5)
    donation = make_donation()
    donations.compare_and_set(
        donation.id,
        DonationStatus.AVAILABLE,
        {
            "reassign_history": [
                ReassignEntry("failed_before", NOW - timedelta(minutes=40), NOW, "No pickup within 20 minutes")
            ],
            "reassign_count": 1,
        },
        now=NOW,
    )

    ranked = matcher.rank(donation.id)
    assert [c.organization_id for c in ranked] == ["fresh"]


def test_organizations_at_daily_cap_are_skipped(matcher, make_donation, make_organization, add_log):
    make_organization("busy", km=1)
    make_organization("free", km=6)
    for _ in range(10):
        add_log("busy", PickupStatus.IN_PROGRESS, accepted_at=NOW - timedelta(hours=1))
    donation = make_donation()

    ranked = matcher.rank(donation.id)
    assert [c.organization_id for c in ranked] == ["free"]


def test_yesterdays_load_does_not_count(matcher, make_donation, make_organization, add_log):
    make_organization("busy_yesterday", km=1)
    for _ in range(10):
        add_log("busy_yesterday", PickupStatus.DELIVERED, accepted_at=NOW - timedelta(days=1))
    donation = make_donation()

    ranked = matcher.rank(donation.id)
    assert ranked[0].organization_id == "busy_yesterday"
    assert ranked[0].daily_load == 0
    assert ranked[0].historical_deliveries == 10


def test_candidate_set_is_capped_nearest_first(clock, donations, organizations, pickup_logs,
                                               make_donation, make_organization):
    for km in (1, 2, 3, 4, 5):
        make_organization(f"ngo_{km}", km=km)
    engine = MatchingEngine(
        donations, organizations, pickup_logs,
        policy=MatchingPolicy(max_candidates=2), clock=clock,
    )
    donation = make_donation()

    ranked = engine.rank(donation.id)
    assert sorted(c.organization_id for c in ranked) == ["ngo_1", "ngo_2"]


def test_equal_scores_break_ties_by_distance(clock, donations, organizations, pickup_logs,
                                             make_donation, make_organization):
    make_organization("farther", km=6, reliability_score=70)
    make_organization("closer", km=2, reliability_score=70)
    reliability_only = {"reliability": Factor(1.0, lambda ctx: score_reliability(ctx.reliability_score))}
    engine = MatchingEngine(donations, organizations, pickup_logs, factors=reliability_only, clock=clock)
    donation = make_donation()

    ranked = engine.rank(donation.id)
    assert ranked[0].score == ranked[1].score
    assert [c.organization_id for c in ranked] == ["closer", "farther"]


def test_only_available_donations_are_ranked(matcher, donations, make_donation, make_organization):
    make_organization("ngo", km=1)
    donation = make_donation()
    donations.compare_and_set(donation.id, DonationStatus.AVAILABLE, {"status": DonationStatus.CANCELLED}, now=NOW)

    assert matcher.rank(donation.id) == []


def test_unknown_donation_raises_not_found(matcher):
    with pytest.raises(NotFound):
        matcher.rank("missing")


def test_best_candidate(matcher, make_donation, make_organization):
    donation = make_donation()
    with pytest.raises(NoEligibleCandidates):
        matcher.best_candidate(donation.id)

    make_organization("ngo", km=1)
    assert matcher.best_candidate(donation.id).organization_id == "ngo"


def test_ranking_does_not_change_state(matcher, donations, organizations, make_donation, make_organization):
    make_organization("ngo", km=1, reliability_score=64)
    donation = make_donation()

    matcher.rank(donation.id)
    assert donations.get(donation.id) == donation
    assert organizations.get("ngo").reliability_score == 64
