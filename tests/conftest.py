"""Shared fixtures: a frozen clock, empty stores, and factories for organizations,
donations and pickup history placed at known distances from one pickup point."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from common.clock import FrozenClock
from common.config import Settings
from dispatch.matcher import MatchingEngine
from dispatch.notifications import NotificationDispatcher
from dispatch.service import FoodBridgeService
from donations.models import Donation, PickupLog, PickupStatus
from donations.store import DonationStore, PickupLogStore
from organizations.models import Organization
from organizations.store import OrganizationStore
from routing.geo import EARTH_RADIUS_KM

# Midday: outside both rush windows, so the time-of-day factor is flat.
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
PICKUP = (-17.824858, 31.053028)


def point_north_of(origin, km):
    """A point exactly `km` north of `origin` along the meridian."""
    lat, lon = origin
    return (lat + math.degrees(km / EARTH_RADIUS_KM), lon)


class RecordingTransport:

    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)

    def events_for(self, recipient_id):
        return [n.event for n in self.sent if n.recipient_id == recipient_id]


class FailingTransport:

    def send(self, notification):
        raise RuntimeError("transport down")


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def donations():
    return DonationStore()


@pytest.fixture
def organizations():
    return OrganizationStore()


@pytest.fixture
def pickup_logs():
    return PickupLogStore()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    return NotificationDispatcher(transport)


@pytest.fixture
def service(clock, donations, organizations, pickup_logs, notifier):
    return FoodBridgeService(
        Settings(),
        donations=donations,
        organizations=organizations,
        pickup_logs=pickup_logs,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def matcher(clock, donations, organizations, pickup_logs):
    return MatchingEngine(donations, organizations, pickup_logs, clock=clock)


@pytest.fixture
def make_organization(organizations):
    def _make(organization_id, km=1.0, *, store=True, **kwargs):
        lat, lon = point_north_of(PICKUP, km)
        organization = Organization.new(organization_id, lat, lon, **kwargs)
        if store:
            organizations.add(organization)
        return organization

    return _make


@pytest.fixture
def make_donation(donations):
    def _make(
        *,
        donor_id="donor_1",
        expires_in=timedelta(hours=3),
        prepared_ago=timedelta(minutes=30),
        category="cooked_meal",
        quantity=20,
        location=PICKUP,
        store=True,
        **kwargs,
    ):
        expiry_time = NOW + expires_in
        donation = Donation.new(
            donor_id,
            "Rice and stew",
            quantity,
            location,
            expiry_time,
            kwargs.pop("pickup_deadline", expiry_time),
            category=category,
            prepared_at=NOW - prepared_ago,
            now=NOW,
            **kwargs,
        )
        if store:
            donations.add(donation)
        return donation

    return _make


@pytest.fixture
def add_log(pickup_logs):
    """
    Historical pickup log. `response_mins` sets pickup_time relative to accepted_at;
    the log's last activity is `updated_at` (defaults to accepted_at).
    """

    def _add(
        organization_id,
        status=PickupStatus.DELIVERED,
        *,
        accepted_at=NOW - timedelta(days=2),
        response_mins=None,
        beneficiary_count=0,
        updated_at=None,
        created_at=None,
    ):
        pickup_time = accepted_at + timedelta(minutes=response_mins) if response_mins is not None else None
        log = PickupLog.new(f"hist_{len(pickup_logs)}", organization_id, "donor_hist", accepted_at)
        log.status = status
        log.pickup_time = pickup_time
        log.beneficiary_count = beneficiary_count
        log.created_at = created_at or accepted_at
        log.updated_at = updated_at or accepted_at
        return pickup_logs.add(log)

    return _add
