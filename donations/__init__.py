"""
Donations domain package.

Public API:
- Domain models: Donation, DonationStatus, FoodCategory, DonationUnit,
  ReassignEntry, PickupLog, PickupStatus, PickupStats
- Timing rules: validate_expiry, assess_expiry_risk
- Stores: DonationStore, PickupLogStore
"""
from .models import (
    Donation,
    DonationStatus,
    DonationUnit,
    FoodCategory,
    PickupLog,
    PickupStats,
    PickupStatus,
    ReassignEntry,
    SHELF_LIFE_HOURS,
    TERMINAL_STATUSES,
)
from .shelf_life import validate_expiry, is_valid_expiry
from .expiry_risk import assess_expiry_risk, ExpiryRisk
from .store import DonationStore, PickupLogStore

__all__ = [
    "Donation",
    "DonationStatus",
    "DonationUnit",
    "FoodCategory",
    "PickupLog",
    "PickupStats",
    "PickupStatus",
    "ReassignEntry",
    "SHELF_LIFE_HOURS",
    "TERMINAL_STATUSES",
    "validate_expiry",
    "is_valid_expiry",
    "assess_expiry_risk",
    "ExpiryRisk",
    "DonationStore",
    "PickupLogStore",
]
