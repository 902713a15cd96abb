from datetime import timedelta

import pytest

from common.errors import PersistenceFailure
from dispatch.notifications import NotificationEvent
from dispatch.policy import ReassignmentPolicy
from dispatch.reassignment import ReassignmentSweeper
from donations.models import DonationStatus, PickupStatus

from .conftest import NOW


class TickingClock:
    """Every read moves time forward, so a pass burns through its budget."""

    def __init__(self, start, step_seconds):
        self.current = start
        self.step = timedelta(seconds=step_seconds)

    def now(self):
        self.current += self.step
        return self.current


@pytest.fixture
def accepted_donation(service, make_donation, make_organization):
    def _accept(organization_id="ngo_a", at=NOW, **donation_kwargs):
        if organization_id not in {o.id for o in service.organizations.all()}:
            make_organization(organization_id, km=2)
        donation = make_donation(**donation_kwargs)
        return service.actions.accept(donation.id, organization_id, now=at)

    return _accept


def test_stale_acceptance_is_reassigned(service, accepted_donation, pickup_logs):
    donation = accepted_donation("ngo_a")

    result = service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert (result.reassigned, result.expired) == (1, 0)
    updated = service.donations.get(donation.id)
    assert updated.status == DonationStatus.AVAILABLE
    assert updated.reassign_count == 1
    assert updated.accepted_by is None
    assert updated.accepted_at is None
    assert [e.organization_id for e in updated.reassign_history] == ["ngo_a"]
    assert updated.reassign_history[0].reason == "No pickup within 20 minutes"

    assert service.organizations.get("ngo_a").reliability_score == 45
    log = pickup_logs.logs_for("ngo_a")[0]
    assert log.status == PickupStatus.FAILED
    assert log.failure_reason == "No pickup within 20 minutes"


def test_fresh_acceptance_is_left_alone(service, accepted_donation):
    donation = accepted_donation("ngo_a")

    result = service.reassignment.run(now=NOW + timedelta(minutes=19))

    assert (result.reassigned, result.expired) == (0, 0)
    assert service.donations.get(donation.id).status == DonationStatus.ACCEPTED
    assert service.organizations.get("ngo_a").reliability_score == 50


def test_third_failure_expires_the_donation(service, accepted_donation, make_organization):
    for organization_id in ("ngo_a", "ngo_b", "ngo_c"):
        make_organization(organization_id, km=2)
    donation = accepted_donation("ngo_a")

    t = NOW
    for attempt, next_organization in enumerate(["ngo_b", "ngo_c", None], start=1):
        t += timedelta(minutes=25)
        result = service.reassignment.run(now=t)
        current = service.donations.get(donation.id)
        assert current.reassign_count == attempt
        if next_organization is None:
            assert result.expired == 1
        else:
            assert result.reassigned == 1
            assert current.status == DonationStatus.AVAILABLE
            service.actions.accept(donation.id, next_organization, now=t)

    final = service.donations.get(donation.id)
    assert final.status == DonationStatus.EXPIRED
    assert final.reassign_count == 3
    assert [e.organization_id for e in final.reassign_history] == ["ngo_a", "ngo_b", "ngo_c"]

    # terminal: later sweeps never touch it again
    service.reassignment.run(now=t + timedelta(hours=1))
    assert service.donations.get(donation.id).status == DonationStatus.EXPIRED
    assert service.donations.get(donation.id).reassign_count == 3


def test_sweep_is_idempotent(service, accepted_donation):
    accepted_donation("ngo_a")
    later = NOW + timedelta(minutes=25)

    first = service.reassignment.run(now=later)
    second = service.reassignment.run(now=later)

    assert first.reassigned == 1
    assert (second.reassigned, second.expired) == (0, 0)
    assert service.organizations.get("ngo_a").reliability_score == 45


def test_penalties_are_coalesced_per_organization(service, accepted_donation, monkeypatch):
    accepted_donation("ngo_a")
    accepted_donation("ngo_a")
    accepted_donation("ngo_a")

    calls = []
    original = service.organizations.apply_reliability_deltas

    def spy(deltas):
        calls.append(dict(deltas))
        return original(deltas)

    monkeypatch.setattr(service.organizations, "apply_reliability_deltas", spy)

    result = service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert result.reassigned == 3
    assert calls == [{"ngo_a": -15}]
    assert result.penalties == {"ngo_a": -15}
    assert service.organizations.get("ngo_a").reliability_score == 35


def test_penalty_never_goes_below_zero(service, accepted_donation, make_organization):
    make_organization("ngo_low", km=2, reliability_score=3)
    accepted_donation("ngo_low")
    accepted_donation("ngo_low")

    service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert service.organizations.get("ngo_low").reliability_score == 0


def test_one_bad_donation_does_not_stop_the_pass(service, accepted_donation, monkeypatch):
    bad = accepted_donation("ngo_a")
    good = accepted_donation("ngo_b")

    original = service.donations.compare_and_set

    def flaky(donation_id, *args, **kwargs):
        if donation_id == bad.id:
            raise PersistenceFailure("write timed out")
        return original(donation_id, *args, **kwargs)

    monkeypatch.setattr(service.donations, "compare_and_set", flaky)

    result = service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert result.reassigned == 1
    assert list(result.failures) == [bad.id]
    assert "write timed out" in result.failures[bad.id]
    assert service.donations.get(good.id).status == DonationStatus.AVAILABLE
    # nothing was committed for the failed donation, so no penalty either
    assert service.donations.get(bad.id).status == DonationStatus.ACCEPTED
    assert service.organizations.get("ngo_a").reliability_score == 50
    assert service.organizations.get("ngo_b").reliability_score == 45


def test_committed_reassignment_survives_follow_up_errors(
    service, accepted_donation, make_organization, transport, monkeypatch
):
    make_organization("ngo_b", km=1)
    donation = accepted_donation("ngo_a")
    service.notifier.drain()
    transport.sent.clear()

    def broken_update(*args, **kwargs):
        raise PersistenceFailure("log write timed out")

    monkeypatch.setattr(service.pickup_logs, "update_log", broken_update)

    result = service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert (result.reassigned, result.expired) == (1, 0)
    assert result.failures == {}
    assert result.conflicts == 0
    [error] = result.follow_up_errors[donation.id]
    assert "log write timed out" in error
    assert service.donations.get(donation.id).status == DonationStatus.AVAILABLE
    assert service.organizations.get("ngo_a").reliability_score == 45

    # the rest of the step still ran
    service.notifier.drain()
    assert transport.events_for("ngo_a") == [NotificationEvent.DONATION_REASSIGNED]
    assert transport.events_for(donation.donor_id) == [NotificationEvent.DONATION_REASSIGNED]
    assert transport.events_for("ngo_b") == [NotificationEvent.NEW_DONATION_NEARBY]


def test_re_match_error_still_counts_the_reassignment(service, accepted_donation, monkeypatch):
    donation = accepted_donation("ngo_a")

    def broken_rank(*args, **kwargs):
        raise PersistenceFailure("stats query failed")

    monkeypatch.setattr(service.matcher, "rank_donation", broken_rank)

    result = service.reassignment.run(now=NOW + timedelta(minutes=25))

    assert result.reassigned == 1
    assert result.failures == {}
    assert "re-match" in result.follow_up_errors[donation.id][0]
    assert service.pickup_logs.logs_for("ngo_a")[0].status == PickupStatus.FAILED


def test_sweep_never_overwrites_a_fresh_accept(service, accepted_donation, make_organization, monkeypatch):
    make_organization("ngo_b", km=3)
    donation = accepted_donation("ngo_a")
    stale_snapshot = service.donations.get(donation.id)

    # ngo_a's acceptance was already handled and ngo_b accepted in between
    service.reassignment.run(now=NOW + timedelta(minutes=25))
    service.actions.accept(donation.id, "ngo_b", now=NOW + timedelta(minutes=26))

    monkeypatch.setattr(service.donations, "find", lambda **kwargs: [stale_snapshot])
    result = service.reassignment.run(now=NOW + timedelta(minutes=27))

    assert result.conflicts == 1
    assert result.reassigned == 0
    current = service.donations.get(donation.id)
    assert current.accepted_by == "ngo_b"
    assert current.reassign_count == 1


def test_overlapping_pass_is_skipped(service, accepted_donation):
    accepted_donation("ngo_a")
    sweeper = service.reassignment

    sweeper._running.acquire()
    try:
        result = sweeper.run(now=NOW + timedelta(minutes=25))
    finally:
        sweeper._running.release()

    assert result.skipped
    assert result.reassigned == 0


def test_pass_stops_when_time_budget_is_used(service, accepted_donation):
    for _ in range(5):
        accepted_donation("ngo_a")

    sweeper = ReassignmentSweeper(
        service.donations,
        service.organizations,
        service.pickup_logs,
        service.matcher,
        policy=ReassignmentPolicy(sweep_timeout_seconds=240),
        clock=TickingClock(NOW, step_seconds=100),
    )
    result = sweeper.run(now=NOW + timedelta(minutes=25))

    assert result.timed_out
    assert result.reassigned == 2
    still_accepted = service.donations.find(status=DonationStatus.ACCEPTED)
    assert len(still_accepted) == 3


def test_notifications_after_reassignment(service, accepted_donation, make_organization, transport):
    make_organization("ngo_b", km=1)
    donation = accepted_donation("ngo_a")
    service.notifier.drain()
    transport.sent.clear()

    service.reassignment.run(now=NOW + timedelta(minutes=25))
    service.notifier.drain()

    assert transport.events_for("ngo_a") == [NotificationEvent.DONATION_REASSIGNED]
    assert transport.events_for(donation.donor_id) == [NotificationEvent.DONATION_REASSIGNED]
    assert transport.events_for("ngo_b") == [NotificationEvent.NEW_DONATION_NEARBY]

    offer = [n for n in transport.sent if n.recipient_id == "ngo_b"][0]
    assert offer.payload["donation_id"] == donation.id
    assert offer.payload["distance_km"] == pytest.approx(1.0, abs=0.01)

    timeout = [n for n in transport.sent if n.recipient_id == "ngo_a"][0]
    assert timeout.title == "Pickup Timeout"
    donor = [n for n in transport.sent if n.recipient_id == donation.donor_id][0]
    assert donor.payload["attempt"] == 1


def test_service_sweep_returns_counts(service, accepted_donation, clock):
    accepted_donation("ngo_a")
    clock.advance(minutes=25)

    assert service.run_reassignment_sweep() == {"reassigned": 1, "expired": 0}
