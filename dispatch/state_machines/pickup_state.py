"""
Purpose: Pickup-log state machine.
in_progress -> picked_up -> delivered
in_progress -> failed (terminal)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from common.errors import InvalidTransition
from donations.models import PickupLog, PickupStatus
from donations.store import PickupLogStore

logger = logging.getLogger(__name__)

PICKUP_TRANSITIONS = {
    PickupStatus.IN_PROGRESS: frozenset({PickupStatus.PICKED_UP, PickupStatus.FAILED}),
    PickupStatus.PICKED_UP: frozenset({PickupStatus.DELIVERED}),
    PickupStatus.DELIVERED: frozenset(),
    PickupStatus.FAILED: frozenset(),
}


def transition_pickup_log(
    store: PickupLogStore,
    log: PickupLog,
    target: PickupStatus,
    *,
    now: Optional[datetime] = None,
    **changes: Any,
) -> PickupLog:
    now = now or datetime.now(timezone.utc)
    if target not in PICKUP_TRANSITIONS[log.status]:
        raise InvalidTransition(
            log.status,
            target,
            detail=f'Cannot move a pickup log from "{log.status.value}" to "{target.value}".',
        )

    if target == PickupStatus.PICKED_UP:
        changes.setdefault("pickup_time", now)
    elif target == PickupStatus.DELIVERED:
        changes.setdefault("delivery_time", now)

    changes["status"] = target
    return store.update_log(log.id, changes, expected_status=log.status, now=now)


def fail_active_log(
    store: PickupLogStore,
    donation_id: str,
    organization_id: str,
    reason: str,
    *,
    now: Optional[datetime] = None,
) -> Optional[PickupLog]:
    """
    Mark the organization's in-progress log for this donation as failed.
    Returns None when there is no in-progress log (nothing to fail).
    """
    log = store.find_for_donation(donation_id, organization_id, statuses=[PickupStatus.IN_PROGRESS])
    if log is None:
        logger.warning(
            f"No in-progress pickup log for donation {donation_id} / organization {organization_id}"
        )
        return None
    return transition_pickup_log(store, log, PickupStatus.FAILED, now=now, failure_reason=reason)
