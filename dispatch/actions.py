"""
Purpose: Donor and organization actions on a donation.
What it does:
- create(): validate location and timing, insert (a rejected donation is never
  stored), then offer it to the best-ranked nearby organization
- edit(): owner only, Available only, re-validated before a conditional write
- accept(): Available -> Accepted, opens an in_progress pickup log
- confirm_pickup(): Accepted -> PickedUp, accepting organization only
- confirm_delivery(): PickedUp -> Delivered, records beneficiaries, small reliability bonus
- cancel(): Available -> Cancelled, owner only

Every status change goes through apply_transition. Notifications are queued
only after the write has succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from common.clock import Clock, SystemClock
from common.errors import InvalidTransition, PermissionDenied
from donations.models import Donation, DonationStatus, DonationUnit, FoodCategory, PickupLog, PickupStatus
from donations.shelf_life import validate_expiry
from donations.store import DonationStore, PickupLogStore
from organizations.store import OrganizationStore
from routing.geo import validate_point

from .matcher import MatchingEngine
from .notifications import NotificationDispatcher, NotificationEvent
from .policy import MatchingPolicy, ReassignmentPolicy, default_matching_policy, default_reassignment_policy
from .state_machines import apply_transition, transition_pickup_log

logger = logging.getLogger(__name__)

NOT_ACCEPTING_ORGANIZATION = "Only the accepting NGO can perform this action."
NOT_OWNER = "You do not have permission to modify this donation."
TOO_CLOSE_TO_EXPIRY = "Donation is too close to expiry to accept safely."

# Fields a donor may change after posting.
EDITABLE_FIELDS = frozenset(
    {
        "food_type",
        "category",
        "quantity",
        "unit",
        "prepared_at",
        "expiry_time",
        "pickup_deadline",
        "location",
        "pickup_address",
    }
)


class DonationActions:

    def __init__(
        self,
        donations: DonationStore,
        organizations: OrganizationStore,
        pickup_logs: PickupLogStore,
        notifier: Optional[NotificationDispatcher] = None,
        matching_policy: Optional[MatchingPolicy] = None,
        reassignment_policy: Optional[ReassignmentPolicy] = None,
        clock: Optional[Clock] = None,
        matcher: Optional[MatchingEngine] = None,
    ):
        self.donations = donations
        self.organizations = organizations
        self.pickup_logs = pickup_logs
        self.notifier = notifier
        self.matching_policy = matching_policy or default_matching_policy()
        self.reassignment_policy = reassignment_policy or default_reassignment_policy()
        self.clock = clock or SystemClock()
        self.matcher = matcher

    # --- donor side ---

    def create(self, donation: Donation, now: Optional[datetime] = None) -> Donation:
        now = now or self.clock.now()
        validate_point(donation.location)
        validate_expiry(donation, now)
        stored = self.donations.add(donation)
        logger.info(
            f"Donation {stored.id} created by donor {stored.donor_id} "
            f"({stored.category.value}, {stored.quantity:g} {stored.unit.value})"
        )

        if self.matcher is not None:
            # The donation is stored either way; a matching error only loses the first offer.
            try:
                top = self.matcher.offer_to_best(stored, self.notifier, now=now)
            except Exception as e:
                logger.error(f"Donation {stored.id}: matching after create failed: {e}", exc_info=True)
            else:
                if top is None:
                    logger.info(f"Donation {stored.id}: no eligible organization nearby yet")
        return stored

    def edit(
        self,
        donation_id: str,
        donor_id: str,
        changes: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Donation:
        now = now or self.clock.now()
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        current = self.donations.get(donation_id)
        if current.donor_id != donor_id:
            raise PermissionDenied(NOT_OWNER)
        if current.status != DonationStatus.AVAILABLE:
            raise InvalidTransition(
                current.status,
                detail=f'Cannot edit a donation with status "{current.status.value}".',
            )

        changes = dict(changes)
        if "category" in changes:
            changes["category"] = FoodCategory(changes["category"])
        if "unit" in changes:
            changes["unit"] = DonationUnit(changes["unit"])
        if "location" in changes:
            changes["location"] = validate_point(changes["location"])

        candidate = replace(current, **changes)
        validate_expiry(candidate, now)

        return self.donations.compare_and_set(
            donation_id,
            DonationStatus.AVAILABLE,
            changes,
            guard={"updated_at": current.updated_at},
            now=now,
        )

    def cancel(self, donation_id: str, donor_id: str, now: Optional[datetime] = None) -> Donation:
        now = now or self.clock.now()
        current = self.donations.get(donation_id)
        if current.donor_id != donor_id:
            raise PermissionDenied(NOT_OWNER)
        if current.status != DonationStatus.AVAILABLE:
            raise InvalidTransition(
                current.status,
                DonationStatus.CANCELLED,
                detail=(
                    f'Cannot cancel a donation with status "{current.status.value}". '
                    f"Only Available donations can be cancelled."
                ),
            )

        cancelled = apply_transition(
            self.donations,
            donation_id,
            DonationStatus.CANCELLED,
            now=now,
            expected=DonationStatus.AVAILABLE,
        )
        logger.info(f"Donation {donation_id} cancelled by donor {donor_id}")
        return cancelled

    # --- organization side ---

    def accept(self, donation_id: str, organization_id: str, now: Optional[datetime] = None) -> Donation:
        now = now or self.clock.now()
        organization = self.organizations.get(organization_id)
        current = self.donations.get(donation_id)

        if current.status != DonationStatus.AVAILABLE:
            raise InvalidTransition(current.status, DonationStatus.ACCEPTED)

        margin = timedelta(minutes=self.matching_policy.min_minutes_to_accept)
        if current.expiry_time - now < margin:
            raise InvalidTransition(current.status, DonationStatus.ACCEPTED, detail=TOO_CLOSE_TO_EXPIRY)

        accepted = apply_transition(
            self.donations,
            donation_id,
            DonationStatus.ACCEPTED,
            now=now,
            changes={"accepted_by": organization_id, "accepted_at": now},
            expected=DonationStatus.AVAILABLE,
        )
        self.pickup_logs.create_log(donation_id, organization_id, accepted.donor_id, now)

        logger.info(f"Donation {donation_id} accepted by organization {organization_id}")
        self._notify(
            accepted.donor_id,
            NotificationEvent.DONATION_ACCEPTED,
            {"donation_id": donation_id, "organization_id": organization_id},
            title="Donation Accepted",
            message=f'{organization.name} accepted your donation "{accepted.food_type}".',
        )
        return accepted

    def confirm_pickup(self, donation_id: str, organization_id: str, now: Optional[datetime] = None) -> Donation:
        now = now or self.clock.now()
        current = self.donations.get(donation_id)
        self._ensure_accepting(current, organization_id)

        picked_up = apply_transition(
            self.donations,
            donation_id,
            DonationStatus.PICKED_UP,
            now=now,
            expected=DonationStatus.ACCEPTED,
            guard={"accepted_by": organization_id},
        )
        log = self._active_log(donation_id, organization_id, PickupStatus.IN_PROGRESS)
        if log is not None:
            transition_pickup_log(self.pickup_logs, log, PickupStatus.PICKED_UP, now=now)

        logger.info(f"Donation {donation_id} picked up by organization {organization_id}")
        self._notify(
            current.donor_id,
            NotificationEvent.PICKUP_CONFIRMED,
            {"donation_id": donation_id, "organization_id": organization_id},
            title="Pickup Confirmed",
            message=f'Your donation "{current.food_type}" has been picked up.',
        )
        return picked_up

    def confirm_delivery(
        self,
        donation_id: str,
        organization_id: str,
        beneficiary_count: int = 0,
        delivery_notes: str = "",
        now: Optional[datetime] = None,
    ) -> Donation:
        now = now or self.clock.now()
        if beneficiary_count < 0:
            raise ValueError("beneficiary_count must be >= 0")

        current = self.donations.get(donation_id)
        self._ensure_accepting(current, organization_id)

        delivered = apply_transition(
            self.donations,
            donation_id,
            DonationStatus.DELIVERED,
            now=now,
            expected=DonationStatus.PICKED_UP,
            guard={"accepted_by": organization_id},
        )
        log = self._active_log(donation_id, organization_id, PickupStatus.PICKED_UP)
        if log is not None:
            transition_pickup_log(
                self.pickup_logs,
                log,
                PickupStatus.DELIVERED,
                now=now,
                beneficiary_count=beneficiary_count,
                delivery_notes=delivery_notes,
            )

        bonus = self.reassignment_policy.delivery_bonus
        if bonus:
            self.organizations.adjust_reliability(organization_id, bonus)

        logger.info(
            f"Donation {donation_id} delivered by organization {organization_id} "
            f"({beneficiary_count} beneficiaries)"
        )
        self._notify(
            current.donor_id,
            NotificationEvent.DELIVERY_CONFIRMED,
            {"donation_id": donation_id, "beneficiary_count": beneficiary_count},
            title="Delivery Confirmed",
            message=f'Your donation "{current.food_type}" reached {beneficiary_count} people.',
        )
        return delivered

    # --- helpers ---

    @staticmethod
    def _ensure_accepting(donation: Donation, organization_id: str) -> None:
        if donation.accepted_by != organization_id:
            raise PermissionDenied(NOT_ACCEPTING_ORGANIZATION)

    def _active_log(self, donation_id: str, organization_id: str, status: PickupStatus) -> Optional[PickupLog]:
        log = self.pickup_logs.find_for_donation(donation_id, organization_id, statuses=[status])
        if log is None:
            logger.warning(
                f"No {status.value} pickup log for donation {donation_id} / organization {organization_id}"
            )
        return log

    def _notify(self, recipient_id: str, event: NotificationEvent, payload, *, title: str, message: str) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(recipient_id, event, payload, title=title, message=message)
