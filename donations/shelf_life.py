"""
Purpose: Creation/edit-time timing rules for donations.
What it does:
- expiry must leave at least MIN_EXPIRY_WINDOW before it passes
- expiry must not exceed prepared_at + the category's max shelf life
- pickup deadline must not be after expiry

Rule: Pure checks. Callers validate BEFORE writing so a rejected donation is never persisted.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from common.errors import ShelfLifeViolation

from .models import Donation

MIN_EXPIRY_WINDOW = timedelta(minutes=30)


def validate_expiry(donation: Donation, now: Optional[datetime] = None) -> None:
    """
    Raise ShelfLifeViolation with a human-readable reason if the donation's
    timing is unsafe. Returns None when valid.
    """
    now = now or datetime.now(donation.expiry_time.tzinfo)

    if donation.expiry_time < now + MIN_EXPIRY_WINDOW:
        raise ShelfLifeViolation("Expiry must be at least 30 minutes from now")

    max_hours = donation.category.max_shelf_hours
    max_expiry = donation.prepared_at + timedelta(hours=max_hours)
    if donation.expiry_time > max_expiry:
        raise ShelfLifeViolation(
            f"{donation.category.value} cannot exceed {max_hours}h shelf life"
        )

    if donation.pickup_deadline > donation.expiry_time:
        raise ShelfLifeViolation("Pickup deadline cannot be after expiry")


def is_valid_expiry(donation: Donation, now: Optional[datetime] = None) -> bool:
    try:
        validate_expiry(donation, now)
    except ShelfLifeViolation:
        return False
    return True
