"""
Purpose: The donation lifecycle state machine.
What it does:
- Holds the transition table (the only legal walks between statuses)
- can_transition(): pure lookup
- apply_transition(): validates against the table, then writes through the
  store's compare_and_set so a concurrent writer that got there first makes
  this call fail with InvalidTransition instead of being overwritten.

Rule: Every status change in the system goes through apply_transition.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from common.errors import InvalidTransition
from donations.models import Donation, DonationStatus
from donations.store import DonationStore

VALID_TRANSITIONS = {
    DonationStatus.AVAILABLE: frozenset(
        {DonationStatus.ACCEPTED, DonationStatus.EXPIRED, DonationStatus.CANCELLED}
    ),
    # Accepted -> Available is a reassignment
    DonationStatus.ACCEPTED: frozenset(
        {DonationStatus.PICKED_UP, DonationStatus.AVAILABLE, DonationStatus.EXPIRED}
    ),
    DonationStatus.PICKED_UP: frozenset({DonationStatus.DELIVERED}),
    DonationStatus.DELIVERED: frozenset(),
    DonationStatus.EXPIRED: frozenset(),
    DonationStatus.CANCELLED: frozenset(),
}


def can_transition(current: DonationStatus | str, target: DonationStatus | str) -> bool:
    try:
        current = DonationStatus(current)
        target = DonationStatus(target)
    except ValueError:
        return False
    return target in VALID_TRANSITIONS[current]


def ensure_transition(current: DonationStatus, target: DonationStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def _coerce_target(current: DonationStatus, target: DonationStatus | str) -> DonationStatus:
    try:
        return DonationStatus(target)
    except ValueError:
        raise InvalidTransition(current, target, detail=f'Unknown donation status "{target}".') from None


def _lifecycle_fields(
    current: Donation,
    target: DonationStatus,
    now: datetime,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    fields = dict(changes)
    fields["status"] = target

    if target == DonationStatus.ACCEPTED:
        if not fields.get("accepted_by"):
            raise ValueError("Accepting a donation requires accepted_by")
        fields.setdefault("accepted_at", now)
    elif target == DonationStatus.PICKED_UP:
        fields.setdefault("picked_up_at", now)
    elif target == DonationStatus.DELIVERED:
        fields.setdefault("delivered_at", now)
    elif target == DonationStatus.AVAILABLE and current.status == DonationStatus.ACCEPTED:
        fields.setdefault("accepted_by", None)
        fields.setdefault("accepted_at", None)

    return fields


def apply_transition(
    store: DonationStore,
    donation_id: str,
    target: DonationStatus | str,
    *,
    now: Optional[datetime] = None,
    changes: Optional[Dict[str, Any]] = None,
    expected: Optional[DonationStatus] = None,
    guard: Optional[Dict[str, Any]] = None,
) -> Donation:
    """
    Move a donation to `target`.

    `expected` pins the pre-state the caller reasoned about (defaults to the
    status read now). `guard` adds extra field predicates to the conditional
    write, e.g. {"accepted_at": ...} so a sweep never clobbers a fresh accept.
    """
    now = now or datetime.now(timezone.utc)

    current = store.get(donation_id)
    target = _coerce_target(current.status, target)
    if expected is not None and current.status != expected:
        raise InvalidTransition(current.status, target)
    ensure_transition(current.status, target)

    fields = _lifecycle_fields(current, target, now, changes or {})
    return store.compare_and_set(
        donation_id,
        current.status,
        fields,
        guard=guard,
        now=now,
    )
