"""
Purpose: In-memory, thread-safe stores for donations and pickup logs.
What it does:
- DonationStore: CRUD plus compare_and_set(), the single atomic conditional
  update every status change goes through.
- PickupLogStore: create/update logs, and the batched aggregate reads the
  matching and reliability engines consume (one pass per call, not per org).

Records are copied on the way in and out so nobody can mutate stored state
except through the guarded update methods.

Rule: Stores own persistence and atomicity, not lifecycle rules
(dispatch/state_machines decides what transitions are legal).
A durable backend replaces these classes by implementing the same methods
and raising PersistenceFailure on I/O errors.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from common.errors import InvalidTransition, NotFound

from .models import (
    Donation,
    DonationStatus,
    PickupLog,
    PickupStats,
    PickupStatus,
)

# Statuses that count toward an organization's daily load.
ACTIVE_LOAD_STATUSES = frozenset(
    {PickupStatus.IN_PROGRESS, PickupStatus.PICKED_UP, PickupStatus.DELIVERED}
)


class DonationStore:
    """
    Donations keyed by id. Never deletes (terminal donations stay as audit trail).
    """

    def __init__(self):
        self._donations: Dict[str, Donation] = {}
        self._lock = threading.Lock()

    def add(self, donation: Donation) -> Donation:
        with self._lock:
            if donation.id in self._donations:
                raise ValueError(f"Donation {donation.id} already exists")
            self._donations[donation.id] = copy.deepcopy(donation)
            return copy.deepcopy(donation)

    def get(self, donation_id: str) -> Donation:
        with self._lock:
            donation = self._donations.get(donation_id)
            if donation is None:
                raise NotFound("Donation not found.")
            return copy.deepcopy(donation)

    def exists(self, donation_id: str) -> bool:
        with self._lock:
            return donation_id in self._donations

    def all(self) -> List[Donation]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._donations.values()]

    def find(
        self,
        *,
        status: Optional[DonationStatus] = None,
        accepted_before: Optional[datetime] = None,
        expiring_before: Optional[datetime] = None,
    ) -> List[Donation]:
        """
        Simple filtered scan. `accepted_before` / `expiring_before` are inclusive.
        """
        with self._lock:
            matches = []
            for donation in self._donations.values():
                if status is not None and donation.status != status:
                    continue
                if accepted_before is not None:
                    if donation.accepted_at is None or donation.accepted_at > accepted_before:
                        continue
                if expiring_before is not None and donation.expiry_time > expiring_before:
                    continue
                matches.append(copy.deepcopy(donation))
            return matches

    def compare_and_set(
        self,
        donation_id: str,
        expected_status: DonationStatus,
        changes: Dict[str, Any],
        *,
        guard: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Donation:
        """
        Apply `changes` only if the stored donation is still in `expected_status`
        (and every `guard` field still holds the given value).

        This is the one place where a donation is written after creation, so at
        most one writer can move a donation out of any given status.
        """
        with self._lock:
            current = self._donations.get(donation_id)
            if current is None:
                raise NotFound("Donation not found.")

            target = changes.get("status")
            if current.status != expected_status:
                raise InvalidTransition(current.status, target)

            if current.status.is_terminal:
                raise InvalidTransition(current.status, target)

            for field_name, expected_value in (guard or {}).items():
                if getattr(current, field_name) != expected_value:
                    raise InvalidTransition(
                        current.status,
                        target,
                        detail=f"Donation {donation_id} was modified concurrently ({field_name} changed).",
                    )

            updated = replace(
                current,
                **copy.deepcopy(changes),
                updated_at=now or datetime.now(timezone.utc),
            )
            self._donations[donation_id] = updated
            return copy.deepcopy(updated)

    def count_reassignments_for(self, organization_id: str) -> int:
        """How many donations list this organization in their reassign history."""
        with self._lock:
            return sum(
                1
                for donation in self._donations.values()
                if organization_id in donation.failed_organization_ids
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._donations)


class PickupLogStore:
    """
    Pickup logs keyed by id, with a per-organization index for aggregate reads.
    """

    def __init__(self):
        self._logs: Dict[str, PickupLog] = {}
        self._by_organization: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def create_log(
        self,
        donation_id: str,
        organization_id: str,
        donor_id: str,
        accepted_at: datetime,
    ) -> PickupLog:
        log = PickupLog.new(donation_id, organization_id, donor_id, accepted_at)
        return self.add(log)

    def add(self, log: PickupLog) -> PickupLog:
        with self._lock:
            if log.id in self._logs:
                raise ValueError(f"Pickup log {log.id} already exists")
            self._logs[log.id] = copy.deepcopy(log)
            self._by_organization.setdefault(log.organization_id, []).append(log.id)
            return copy.deepcopy(log)

    def get(self, log_id: str) -> PickupLog:
        with self._lock:
            log = self._logs.get(log_id)
            if log is None:
                raise NotFound("Pickup log not found.")
            return copy.deepcopy(log)

    def find_for_donation(
        self,
        donation_id: str,
        organization_id: str,
        statuses: Optional[Iterable[PickupStatus]] = None,
    ) -> Optional[PickupLog]:
        """Most recent log for this donation/organization pair (optionally status-filtered)."""
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            found = None
            for log_id in self._by_organization.get(organization_id, []):
                log = self._logs[log_id]
                if log.donation_id != donation_id:
                    continue
                if wanted is not None and log.status not in wanted:
                    continue
                if found is None or log.created_at >= found.created_at:
                    found = log
            return copy.deepcopy(found) if found else None

    def update_log(
        self,
        log_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[PickupStatus] = None,
        now: Optional[datetime] = None,
    ) -> PickupLog:
        """
        Update a log, optionally only if it is still in `expected_status`.
        """
        with self._lock:
            current = self._logs.get(log_id)
            if current is None:
                raise NotFound("Pickup log not found.")
            if expected_status is not None and current.status != expected_status:
                raise InvalidTransition(
                    current.status,
                    changes.get("status"),
                    detail=f'Cannot update a pickup log with status "{current.status.value}".',
                )
            updated = replace(current, **changes, updated_at=now or datetime.now(timezone.utc))
            self._logs[log_id] = updated
            return copy.deepcopy(updated)

    def logs_for(self, organization_id: str) -> List[PickupLog]:
        with self._lock:
            return [copy.deepcopy(self._logs[i]) for i in self._by_organization.get(organization_id, [])]

    def aggregate_stats(self, organization_ids: Iterable[str]) -> Dict[str, PickupStats]:
        """
        One pass over the requested organizations' history.
        Organizations without any log are absent from the result.
        """
        result: Dict[str, PickupStats] = {}
        with self._lock:
            for organization_id in set(organization_ids):
                log_ids = self._by_organization.get(organization_id)
                if not log_ids:
                    continue
                result[organization_id] = _summarize([self._logs[i] for i in log_ids])
        return result

    def daily_load(self, organization_ids: Iterable[str], since: datetime) -> Dict[str, int]:
        """
        Count of today's active/completed engagements per organization (created at or after `since`).
        """
        counts: Dict[str, int] = {}
        with self._lock:
            for organization_id in set(organization_ids):
                count = 0
                for log_id in self._by_organization.get(organization_id, []):
                    log = self._logs[log_id]
                    if log.created_at >= since and log.status in ACTIVE_LOAD_STATUSES:
                        count += 1
                if count:
                    counts[organization_id] = count
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)


def _summarize(logs: List[PickupLog]) -> PickupStats:
    total = len(logs)
    delivered = sum(1 for log in logs if log.status == PickupStatus.DELIVERED)
    picked_up = sum(1 for log in logs if log.status == PickupStatus.PICKED_UP)
    failed = sum(1 for log in logs if log.status == PickupStatus.FAILED)

    response_times = [log.response_minutes for log in logs if log.response_minutes is not None]
    quantities = [log.beneficiary_count for log in logs]

    return PickupStats(
        total_accepted=total,
        total_delivered=delivered,
        total_picked_up=picked_up,
        total_failed=failed,
        avg_response_mins=sum(response_times) / len(response_times) if response_times else None,
        avg_quantity=sum(quantities) / len(quantities) if quantities else None,
        max_quantity=max(quantities) if quantities else None,
        total_beneficiaries=sum(quantities),
        last_activity_at=max(log.updated_at for log in logs),
    )
