"""
Purpose: Domain models for the Donations capability.
What it does:
- Defines core data structures:
- Donation (id, donor, food attributes, timing, pickup point, lifecycle, reassign history)
- ReassignEntry (one failed organization engagement)
- PickupLog (one organization's engagement with one donation)
- PickupStats (aggregate history per organization, input to scoring)

Defines enums/constants:
- DonationStatus = Available | Accepted | PickedUp | Delivered | Expired | Cancelled
- FoodCategory (each with a max shelf life in hours)
- DonationUnit
- PickupStatus = in_progress | picked_up | delivered | failed

Rule: No store access, no matching logic. Models only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

LatLon = Tuple[float, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DonationStatus(str, Enum):
    AVAILABLE = "Available"
    ACCEPTED = "Accepted"
    PICKED_UP = "PickedUp"
    DELIVERED = "Delivered"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {DonationStatus.DELIVERED, DonationStatus.EXPIRED, DonationStatus.CANCELLED}
)


class FoodCategory(str, Enum):
    COOKED_MEAL = "cooked_meal"
    RAW_INGREDIENTS = "raw_ingredients"
    PACKAGED = "packaged"
    BAKERY = "bakery"
    BEVERAGES = "beverages"
    MIXED = "mixed"

    @property
    def max_shelf_hours(self) -> int:
        return SHELF_LIFE_HOURS[self]


# Category-specific max safe duration between preparation and expiry.
SHELF_LIFE_HOURS = {
    FoodCategory.COOKED_MEAL: 6,
    FoodCategory.RAW_INGREDIENTS: 24,
    FoodCategory.PACKAGED: 48,
    FoodCategory.BAKERY: 12,
    FoodCategory.BEVERAGES: 24,
    FoodCategory.MIXED: 6,
}


class DonationUnit(str, Enum):
    SERVINGS = "servings"
    KG = "kg"
    PACKETS = "packets"
    TRAYS = "trays"


class PickupStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class ReassignEntry:
    """
    One organization that accepted the donation and failed to pick it up in time.
    Organizations listed here are never offered the same donation again.
    """
    organization_id: str
    accepted_at: Optional[datetime]
    expired_at: datetime
    reason: str


@dataclass
class Donation:
    """
    A single perishable-food offer posted by a donor.
    """

    id: str
    donor_id: str
    food_type: str
    category: FoodCategory
    quantity: float
    unit: DonationUnit

    prepared_at: datetime
    expiry_time: datetime
    pickup_deadline: datetime

    location: LatLon  # (lat, lon)
    pickup_address: str = ""

    status: DonationStatus = DonationStatus.AVAILABLE
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    reassign_count: int = 0
    reassign_history: List[ReassignEntry] = field(default_factory=list)

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def failed_organization_ids(self) -> set:
        return {entry.organization_id for entry in self.reassign_history}

    def minutes_to_expiry(self, now: datetime) -> float:
        return (self.expiry_time - now).total_seconds() / 60.0

    @staticmethod
    def new(
        donor_id: str,
        food_type: str,
        quantity: float,
        location: LatLon,
        expiry_time: datetime,
        pickup_deadline: datetime,
        *,
        category: str | FoodCategory = FoodCategory.COOKED_MEAL,
        unit: str | DonationUnit = DonationUnit.SERVINGS,
        prepared_at: Optional[datetime] = None,
        pickup_address: str = "",
        now: Optional[datetime] = None,
    ) -> Donation:
        now = now or _utcnow()
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        return Donation(
            id=str(uuid.uuid4()),
            donor_id=donor_id,
            food_type=food_type,
            category=FoodCategory(category),
            quantity=quantity,
            unit=DonationUnit(unit),
            prepared_at=prepared_at or now,
            expiry_time=expiry_time,
            pickup_deadline=pickup_deadline,
            location=location,
            pickup_address=pickup_address,
            created_at=now,
            updated_at=now,
        )


@dataclass
class PickupLog:
    """
    The record of one organization's engagement with one donation.
    Created on accept; never deleted (history feeds the reliability engine).
    """

    id: str
    donation_id: str
    organization_id: str
    donor_id: str

    accepted_at: datetime
    pickup_time: Optional[datetime] = None
    delivery_time: Optional[datetime] = None

    beneficiary_count: int = 0
    delivery_notes: str = ""

    status: PickupStatus = PickupStatus.IN_PROGRESS
    failure_reason: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def response_minutes(self) -> Optional[float]:
        if self.pickup_time is None or self.accepted_at is None:
            return None
        return (self.pickup_time - self.accepted_at).total_seconds() / 60.0

    @staticmethod
    def new(donation_id: str, organization_id: str, donor_id: str, accepted_at: datetime) -> PickupLog:
        return PickupLog(
            id=str(uuid.uuid4()),
            donation_id=donation_id,
            organization_id=organization_id,
            donor_id=donor_id,
            accepted_at=accepted_at,
            created_at=accepted_at,
            updated_at=accepted_at,
        )


@dataclass(frozen=True)
class PickupStats:
    """
    Aggregate pickup history for one organization.
    Averages are None when there is nothing to average.
    """
    total_accepted: int = 0
    total_delivered: int = 0
    total_picked_up: int = 0
    total_failed: int = 0
    avg_response_mins: Optional[float] = None
    avg_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    total_beneficiaries: int = 0
    last_activity_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> PickupStats:
        return cls()
