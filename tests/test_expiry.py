from datetime import timedelta

from dispatch.notifications import NotificationEvent
from donations.models import DonationStatus

from .conftest import NOW


def test_overdue_available_donations_expire(service, make_donation, make_organization, transport):
    make_organization("ngo_a", km=2)
    overdue = make_donation(expires_in=timedelta(hours=1))
    accepted = make_donation(expires_in=timedelta(hours=1))
    fresh = make_donation(expires_in=timedelta(hours=4))
    service.actions.accept(accepted.id, "ngo_a", now=NOW)
    service.notifier.drain()
    transport.sent.clear()

    result = service.expiry.run(now=NOW + timedelta(hours=2))

    assert result.expired == 1
    assert service.donations.get(overdue.id).status == DonationStatus.EXPIRED
    # accepted donations are left to the reassignment sweep
    assert service.donations.get(accepted.id).status == DonationStatus.ACCEPTED
    assert service.donations.get(fresh.id).status == DonationStatus.AVAILABLE

    service.notifier.drain()
    assert transport.events_for(overdue.donor_id) == [NotificationEvent.DONATION_EXPIRED]


def test_expiry_pass_is_idempotent(service, make_donation):
    make_donation(expires_in=timedelta(hours=1))
    later = NOW + timedelta(hours=2)

    assert service.expiry.run(now=later).expired == 1
    assert service.expiry.run(now=later).expired == 0


def test_service_expire_overdue(service, make_donation, clock):
    make_donation(expires_in=timedelta(hours=1))
    clock.advance(hours=1)

    # expiring exactly now counts as overdue
    assert service.expire_overdue() == {"expired": 1}
