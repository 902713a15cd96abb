from .donation_state import VALID_TRANSITIONS, apply_transition, can_transition, ensure_transition
from .pickup_state import PICKUP_TRANSITIONS, fail_active_log, transition_pickup_log

__all__ = [
    "VALID_TRANSITIONS",
    "apply_transition",
    "can_transition",
    "ensure_transition",
    "PICKUP_TRANSITIONS",
    "fail_active_log",
    "transition_pickup_log",
]
