#Shared plumbing used by every domain package:
#settings (env + .env), clock abstraction, error taxonomy, logging bootstrap.
#No business logic.

from .clock import Clock, SystemClock, FrozenClock
from .config import Settings
from .errors import (
    FoodBridgeError,
    NotFound,
    InvalidTransition,
    ShelfLifeViolation,
    PermissionDenied,
    NoEligibleCandidates,
    PersistenceFailure,
)
from .logging_config import configure_logging
from .rounding import round_half_up

__all__ = [
    "Clock",
    "SystemClock",
    "FrozenClock",
    "Settings",
    "FoodBridgeError",
    "NotFound",
    "InvalidTransition",
    "ShelfLifeViolation",
    "PermissionDenied",
    "NoEligibleCandidates",
    "PersistenceFailure",
    "configure_logging",
    "round_half_up",
]
