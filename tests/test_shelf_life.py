from datetime import timedelta

import pytest

from common.errors import ShelfLifeViolation
from donations.shelf_life import is_valid_expiry, validate_expiry

from .conftest import NOW


def test_expiry_too_soon_is_rejected(make_donation):
    donation = make_donation(expires_in=timedelta(minutes=20), store=False)
    with pytest.raises(ShelfLifeViolation) as exc:
        validate_expiry(donation, NOW)
    assert "at least 30 minutes" in exc.value.reason


def test_exactly_thirty_minutes_is_allowed(make_donation):
    donation = make_donation(expires_in=timedelta(minutes=30), store=False)
    validate_expiry(donation, NOW)


@pytest.mark.parametrize(
    "category,hours,ok",
    [
        ("cooked_meal", 6, True),
        ("cooked_meal", 7, False),
        ("bakery", 12, True),
        ("bakery", 13, False),
        ("packaged", 48, True),
        ("packaged", 49, False),
    ],
)
def test_category_shelf_life(make_donation, category, hours, ok):
    donation = make_donation(
        category=category,
        prepared_ago=timedelta(0),
        expires_in=timedelta(hours=hours),
        store=False,
    )
    assert is_valid_expiry(donation, NOW) is ok


def test_shelf_life_message_names_category(make_donation):
    donation = make_donation(prepared_ago=timedelta(hours=5), expires_in=timedelta(hours=2), store=False)
    with pytest.raises(ShelfLifeViolation) as exc:
        validate_expiry(donation, NOW)
    assert exc.value.reason == "cooked_meal cannot exceed 6h shelf life"


def test_pickup_deadline_after_expiry_is_rejected(make_donation):
    donation = make_donation(
        expires_in=timedelta(hours=2),
        pickup_deadline=NOW + timedelta(hours=3),
        store=False,
    )
    with pytest.raises(ShelfLifeViolation) as exc:
        validate_expiry(donation, NOW)
    assert "Pickup deadline" in exc.value.reason


def test_rejected_donation_is_never_stored(service, donations, make_donation):
    donation = make_donation(expires_in=timedelta(minutes=10), store=False)
    with pytest.raises(ShelfLifeViolation):
        service.actions.create(donation, now=NOW)
    assert len(donations) == 0
