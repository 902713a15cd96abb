"""
Purpose: Stale-acceptance reassignment sweep.
What it does:
Every pass finds donations still Accepted after the stale window. For each one:
  1) records the timeout in the donation's reassign history and bumps reassign_count
  2) moves it back to Available, or to Expired once the attempt cap is reached
     (one conditional write, guarded on accepted_at/accepted_by so a fresh
     accept or a pickup that lands mid-sweep is never overwritten)
  3) queues a reliability penalty for the organization
  4) fails the organization's in-progress pickup log
  5) re-ranks Available donations and notifies the new top candidate

Penalties are coalesced per organization and applied once, after the loop.

Rules:
- One donation failing never stops the pass; errors are logged per item.
- Once the conditional write commits the donation counts as moved. Steps 4 and 5
  and the notices are attempted independently; their errors are reported in
  follow_up_errors and never turn the donation into a failure.
- Passes never overlap: a pass that starts while another is running is skipped.
- A pass stops picking up new donations once its time budget is used;
  the remainder is handled by the next pass.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from common.clock import Clock, SystemClock
from common.errors import InvalidTransition
from donations.models import Donation, DonationStatus, ReassignEntry
from donations.store import DonationStore, PickupLogStore
from organizations.store import OrganizationStore

from .matcher import MatchingEngine
from .notifications import NotificationDispatcher, NotificationEvent
from .policy import ReassignmentPolicy, default_reassignment_policy
from .state_machines import apply_transition, fail_active_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    reassigned: int = 0
    expired: int = 0
    conflicts: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    # Committed transitions whose log update, notice or re-match failed.
    follow_up_errors: Dict[str, List[str]] = field(default_factory=dict)
    penalties: Dict[str, int] = field(default_factory=dict)
    timed_out: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, int]:
        return {"reassigned": self.reassigned, "expired": self.expired}


class ReassignmentSweeper:

    def __init__(
        self,
        donations: DonationStore,
        organizations: OrganizationStore,
        pickup_logs: PickupLogStore,
        matcher: MatchingEngine,
        notifier: Optional[NotificationDispatcher] = None,
        policy: Optional[ReassignmentPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.donations = donations
        self.organizations = organizations
        self.pickup_logs = pickup_logs
        self.matcher = matcher
        self.notifier = notifier
        self.policy = policy or default_reassignment_policy()
        self.clock = clock or SystemClock()
        self._running = threading.Lock()

        self.policy.validate()

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        if not self._running.acquire(blocking=False):
            logger.warning("Reassignment sweep: previous pass still running, skipping")
            return SweepResult(skipped=True)
        try:
            return self._sweep(now or self.clock.now())
        finally:
            self._running.release()

    def _sweep(self, now: datetime) -> SweepResult:
        started = self.clock.now()
        cutoff = now - self.policy.stale_window
        stale = self.donations.find(status=DonationStatus.ACCEPTED, accepted_before=cutoff)
        stale.sort(key=lambda d: d.accepted_at)

        reassigned = 0
        expired = 0
        conflicts = 0
        timed_out = False
        failures: Dict[str, str] = {}
        follow_up_errors: Dict[str, List[str]] = {}
        deltas: Dict[str, int] = defaultdict(int)

        for donation in stale:
            elapsed = (self.clock.now() - started).total_seconds()
            if elapsed >= self.policy.sweep_timeout_seconds:
                timed_out = True
                logger.warning(
                    f"Reassignment sweep: time budget of {self.policy.sweep_timeout_seconds}s used, "
                    f"{len(stale) - reassigned - expired - conflicts - len(failures)} donations left for next pass"
                )
                break

            try:
                outcome, errors = self._reassign(donation, now, deltas)
            except InvalidTransition as e:
                # Picked up, re-accepted or cancelled since we read it.
                conflicts += 1
                logger.info(f"Reassignment sweep: donation {donation.id} changed concurrently, skipping ({e})")
                continue
            except Exception as e:
                failures[donation.id] = str(e)
                logger.error(f"Reassignment sweep: failed to process donation {donation.id}: {e}", exc_info=True)
                continue

            if outcome == DonationStatus.EXPIRED:
                expired += 1
            else:
                reassigned += 1
            if errors:
                follow_up_errors[donation.id] = errors

        penalties = self._apply_penalties(deltas)

        if stale:
            logger.info(
                f"Reassignment sweep: {reassigned} reassigned, {expired} expired, "
                f"{conflicts} skipped, {len(failures)} failed, {len(follow_up_errors)} with follow-up errors"
            )
        return SweepResult(
            reassigned=reassigned,
            expired=expired,
            conflicts=conflicts,
            failures=failures,
            follow_up_errors=follow_up_errors,
            penalties=penalties,
            timed_out=timed_out,
        )

    def _reassign(
        self, donation: Donation, now: datetime, deltas: Dict[str, int]
    ) -> Tuple[DonationStatus, List[str]]:
        organization_id = donation.accepted_by
        attempt = donation.reassign_count + 1
        reason = self.policy.timeout_reason

        history = list(donation.reassign_history)
        if organization_id:
            history.append(
                ReassignEntry(
                    organization_id=organization_id,
                    accepted_at=donation.accepted_at,
                    expired_at=now,
                    reason=reason,
                )
            )

        target = (
            DonationStatus.EXPIRED
            if attempt >= self.policy.max_reassign_attempts
            else DonationStatus.AVAILABLE
        )

        updated = apply_transition(
            self.donations,
            donation.id,
            target,
            now=now,
            changes={"reassign_count": attempt, "reassign_history": history},
            expected=DonationStatus.ACCEPTED,
            guard={"accepted_at": donation.accepted_at, "accepted_by": organization_id},
        )

        if organization_id:
            deltas[organization_id] -= self.policy.reliability_penalty

        # Committed. Each follow-up step below is attempted even if an earlier one fails.
        errors: List[str] = []
        if organization_id:
            self._follow_up(
                donation.id, "fail pickup log", errors,
                fail_active_log, self.pickup_logs, donation.id, organization_id, reason, now=now,
            )
            self._follow_up(
                donation.id, "notify organization", errors,
                self._notify,
                organization_id,
                NotificationEvent.DONATION_REASSIGNED,
                {"donation_id": donation.id},
                title="Pickup Timeout",
                message=(
                    f'You did not pick up "{donation.food_type}" within '
                    f"{self.policy.stale_window_minutes} minutes. It has been reassigned "
                    f"and your reliability score was reduced."
                ),
            )

        if target == DonationStatus.EXPIRED:
            logger.info(f"Donation {donation.id} expired after {attempt} failed pickup attempts")
            self._follow_up(
                donation.id, "notify donor", errors,
                self._notify,
                donation.donor_id,
                NotificationEvent.DONATION_EXPIRED,
                {"donation_id": donation.id, "attempts": attempt},
                title="Donation Expired",
                message=(
                    f'"{donation.food_type}" could not be picked up after '
                    f"{attempt} attempts and has expired."
                ),
            )
            return target, errors

        logger.info(
            f"Donation {donation.id} reassigned from organization {organization_id} "
            f"(attempt {attempt}/{self.policy.max_reassign_attempts})"
        )
        self._follow_up(
            donation.id, "notify donor", errors,
            self._notify,
            donation.donor_id,
            NotificationEvent.DONATION_REASSIGNED,
            {"donation_id": donation.id, "attempt": attempt, "max_attempts": self.policy.max_reassign_attempts},
            title="Donation Reassigned",
            message=(
                f'The NGO did not pick up "{donation.food_type}" in time. Finding a new NGO '
                f"(attempt {attempt}/{self.policy.max_reassign_attempts})."
            ),
        )
        self._follow_up(
            donation.id, "re-match", errors,
            self.matcher.offer_to_best, updated, self.notifier, now=now,
        )
        return target, errors

    def _follow_up(self, donation_id: str, step: str, errors: List[str], fn, *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            errors.append(f"{step}: {e}")
            logger.error(
                f"Reassignment sweep: donation {donation_id} committed but {step} failed: {e}",
                exc_info=True,
            )

    def _apply_penalties(self, deltas: Dict[str, int]) -> Dict[str, int]:
        """One clamped update per organization for the whole pass."""
        deltas = {organization_id: delta for organization_id, delta in deltas.items() if delta}
        if not deltas:
            return {}
        try:
            updated = self.organizations.apply_reliability_deltas(deltas)
        except Exception as e:
            logger.error(f"Reassignment sweep: failed to apply reliability penalties {deltas}: {e}", exc_info=True)
            return {}
        for organization_id, score in updated.items():
            logger.info(
                f"Reliability penalty: organization {organization_id} {deltas[organization_id]:+d} -> {score}"
            )
        return dict(deltas)

    def _notify(self, recipient_id: str, event: NotificationEvent, payload, *, title: str, message: str) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(recipient_id, event, payload, title=title, message=message)
