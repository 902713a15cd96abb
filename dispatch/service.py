"""
Purpose: Bootstrap facade for the matching & lifecycle core.
What it does:
Wires the stores, matching engine, sweepers, reliability engine,
notification dispatcher and scheduler from one Settings object, and exposes
the small surface the HTTP layer and the periodic triggers call:

- rank_candidates(donation_id)
- can_transition(status, target) / apply_transition(donation_id, target)
- run_reassignment_sweep()
- recalculate_reliability(organization_id=None)
- expire_overdue()
- build_scheduler()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from common.clock import Clock, SystemClock
from common.config import Settings
from common.logging_config import configure_logging
from donations.models import Donation
from donations.store import DonationStore, PickupLogStore
from organizations.store import OrganizationStore
from reliability.engine import ReliabilityEngine

from .actions import DonationActions
from .expiry import ExpirySweeper
from .matcher import Candidate, MatchingEngine
from .notifications import NotificationDispatcher, build_transport
from .policy import MatchingPolicy, ReassignmentPolicy
from .reassignment import ReassignmentSweeper
from .scheduler import DailySchedule, IntervalSchedule, JobScheduler
from .state_machines import apply_transition as _apply_transition
from .state_machines import can_transition as _can_transition

logger = logging.getLogger(__name__)

EXPIRE_DONATIONS_JOB = "expire-donations"
REASSIGN_STALE_JOB = "reassign-stale"
RELIABILITY_RECALC_JOB = "reliability-recalc"


class FoodBridgeService:

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        donations: Optional[DonationStore] = None,
        organizations: Optional[OrganizationStore] = None,
        pickup_logs: Optional[PickupLogStore] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()

        self.donations = donations if donations is not None else DonationStore()
        self.organizations = organizations if organizations is not None else OrganizationStore()
        self.pickup_logs = pickup_logs if pickup_logs is not None else PickupLogStore()

        if notifier is None:
            transport = build_transport(
                self.settings.notify_webhook_url,
                timeout=self.settings.notify_timeout_seconds,
            )
            notifier = NotificationDispatcher(transport)
        self.notifier = notifier

        self.matching_policy = MatchingPolicy.from_settings(self.settings)
        self.reassignment_policy = ReassignmentPolicy.from_settings(self.settings)

        self.matcher = MatchingEngine(
            self.donations,
            self.organizations,
            self.pickup_logs,
            policy=self.matching_policy,
            clock=self.clock,
        )
        self.actions = DonationActions(
            self.donations,
            self.organizations,
            self.pickup_logs,
            notifier=self.notifier,
            matching_policy=self.matching_policy,
            reassignment_policy=self.reassignment_policy,
            clock=self.clock,
            matcher=self.matcher,
        )
        self.reassignment = ReassignmentSweeper(
            self.donations,
            self.organizations,
            self.pickup_logs,
            self.matcher,
            notifier=self.notifier,
            policy=self.reassignment_policy,
            clock=self.clock,
        )
        self.expiry = ExpirySweeper(self.donations, notifier=self.notifier, clock=self.clock)
        self.reliability = ReliabilityEngine(
            self.organizations,
            self.pickup_logs,
            donations=self.donations,
            clock=self.clock,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> FoodBridgeService:
        """Read settings from the environment (and .env), set up logging, and wire everything."""
        settings = settings or Settings.from_env()
        configure_logging(settings.log_level)
        return cls(settings, **kwargs)

    # --- exposed operations ---

    def rank_candidates(self, donation_id: str) -> List[Candidate]:
        return self.matcher.rank(donation_id)

    @staticmethod
    def can_transition(status, target) -> bool:
        return _can_transition(status, target)

    def apply_transition(self, donation_id: str, target, **kwargs) -> Donation:
        kwargs.setdefault("now", self.clock.now())
        return _apply_transition(self.donations, donation_id, target, **kwargs)

    def run_reassignment_sweep(self) -> Dict[str, int]:
        return self.reassignment.run().to_dict()

    def recalculate_reliability(self, organization_id: Optional[str] = None) -> int:
        return self.reliability.recalculate_reliability(organization_id)

    def expire_overdue(self) -> Dict[str, int]:
        return self.expiry.run().to_dict()

    # --- periodic triggers ---

    def build_scheduler(self) -> JobScheduler:
        s = self.settings
        scheduler = JobScheduler(clock=self.clock, poll_seconds=s.scheduler_poll_seconds)
        scheduler.register(
            EXPIRE_DONATIONS_JOB,
            IntervalSchedule(s.expiry_interval_seconds),
            self.expiry.run,
        )
        scheduler.register(
            REASSIGN_STALE_JOB,
            IntervalSchedule(s.sweep_interval_seconds),
            self.reassignment.run,
            timeout_seconds=s.sweep_timeout_seconds,
        )
        scheduler.register(
            RELIABILITY_RECALC_JOB,
            DailySchedule(hour=s.reliability_recalc_hour),
            self.reliability.recalculate_all,
            timeout_seconds=s.reliability_timeout_seconds,
        )
        return scheduler

    def start(self) -> JobScheduler:
        """Start the notification worker and the scheduler. Returns the running scheduler."""
        self.notifier.start()
        scheduler = self.build_scheduler()
        scheduler.start()
        return scheduler

    def stop(self, scheduler: Optional[JobScheduler] = None) -> None:
        if scheduler is not None:
            scheduler.stop()
        self.notifier.stop()

    def health(self, scheduler: Optional[JobScheduler] = None) -> Dict[str, Any]:
        return {
            "donations": len(self.donations),
            "organizations": len(self.organizations),
            "pickup_logs": len(self.pickup_logs),
            "notifications": dict(self.notifier.stats),
            "jobs": scheduler.status() if scheduler is not None else {},
        }
