"""
Purpose: Overdue expiry pass.
What it does:
Moves every Available donation whose expiry time has passed to Expired
(through the same conditional write as every other transition) and tells the donor.

Rule: Per-donation failures are logged and skipped; the pass never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from common.clock import Clock, SystemClock
from common.errors import InvalidTransition
from donations.models import DonationStatus
from donations.store import DonationStore

from .notifications import NotificationDispatcher, NotificationEvent
from .state_machines import apply_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryResult:
    expired: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, int]:
        return {"expired": self.expired}


class ExpirySweeper:

    def __init__(
        self,
        donations: DonationStore,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
    ):
        self.donations = donations
        self.notifier = notifier
        self.clock = clock or SystemClock()

    def run(self, now: Optional[datetime] = None) -> ExpiryResult:
        now = now or self.clock.now()
        overdue = self.donations.find(status=DonationStatus.AVAILABLE, expiring_before=now)

        expired = 0
        failures: Dict[str, str] = {}
        for donation in overdue:
            try:
                apply_transition(
                    self.donations,
                    donation.id,
                    DonationStatus.EXPIRED,
                    now=now,
                    expected=DonationStatus.AVAILABLE,
                )
            except InvalidTransition:
                # Accepted or cancelled since the scan.
                continue
            except Exception as e:
                failures[donation.id] = str(e)
                logger.error(f"Expiry pass: failed to expire donation {donation.id}: {e}", exc_info=True)
                continue

            expired += 1
            if self.notifier is not None:
                self.notifier.notify(
                    donation.donor_id,
                    NotificationEvent.DONATION_EXPIRED,
                    {"donation_id": donation.id},
                    title="Donation Expired",
                    message=f'Your donation "{donation.food_type}" expired before anyone picked it up.',
                )

        if expired or failures:
            logger.info(f"Expiry pass: {expired} donations expired, {len(failures)} failed")
        return ExpiryResult(expired=expired, failures=failures)
