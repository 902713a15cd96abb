"""
Purpose: In-memory organization store (stand-in for the identity/profile store).
What it does:
- find_near(): active + verified organizations within a radius, nearest first, capped
- get(): single lookup
- adjust_reliability(): clamped single increment
- apply_reliability_deltas(): one clamped update per organization for a whole batch
- set_reliability(): absolute write used by the reliability engine

Rule: The only fields the core ever writes are reliability scores.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from common.errors import NotFound
from routing.geo import LatLon, haversine_km

from .models import Organization, clamp_score


class OrganizationStore:

    def __init__(self, organizations: Optional[Iterable[Organization]] = None):
        self._organizations: Dict[str, Organization] = {}
        self._lock = threading.Lock()
        for organization in organizations or []:
            self.add(organization)

    def add(self, organization: Organization) -> Organization:
        with self._lock:
            self._organizations[organization.id] = organization
        return organization

    def get(self, organization_id: str) -> Organization:
        with self._lock:
            organization = self._organizations.get(organization_id)
        if organization is None:
            raise NotFound("Organization not found.")
        return organization

    def all(self) -> List[Organization]:
        with self._lock:
            return list(self._organizations.values())

    def active_ids(self) -> List[str]:
        with self._lock:
            return [o.id for o in self._organizations.values() if o.is_active]

    def find_near(
        self,
        point: LatLon,
        radius_km: float,
        *,
        limit: Optional[int] = None,
        exclude_ids: Iterable[str] = (),
        require_active: bool = True,
        require_verified: bool = True,
    ) -> List[Organization]:
        """
        Geo query: organizations within `radius_km` of `point`, nearest first.
        Exclusions are applied before the limit so excluded organizations never
        take a slot in the capped candidate set.
        """
        excluded = set(exclude_ids)
        with self._lock:
            snapshot = list(self._organizations.values())

        in_range = []
        for organization in snapshot:
            if organization.id in excluded:
                continue
            if require_active and not organization.is_active:
                continue
            if require_verified and not organization.is_verified:
                continue
            distance = haversine_km(point, organization.location)
            if distance <= radius_km:
                in_range.append((distance, organization))

        in_range.sort(key=lambda pair: pair[0])
        if limit is not None:
            in_range = in_range[:limit]
        return [organization for _, organization in in_range]

    def adjust_reliability(self, organization_id: str, delta: int) -> Organization:
        with self._lock:
            organization = self._organizations.get(organization_id)
            if organization is None:
                raise NotFound("Organization not found.")
            updated = replace(
                organization,
                reliability_score=clamp_score(organization.reliability_score + delta),
            )
            self._organizations[organization_id] = updated
            return updated

    def apply_reliability_deltas(self, deltas: Dict[str, int]) -> Dict[str, int]:
        """
        Bulk clamped increment: each organization gets exactly one update for the
        summed delta. Unknown organizations are skipped.
        Returns organization_id -> new score.
        """
        new_scores: Dict[str, int] = {}
        with self._lock:
            for organization_id, delta in deltas.items():
                organization = self._organizations.get(organization_id)
                if organization is None:
                    continue
                score = clamp_score(organization.reliability_score + delta)
                self._organizations[organization_id] = replace(organization, reliability_score=score)
                new_scores[organization_id] = score
        return new_scores

    def set_reliability(self, organization_id: str, score: int) -> Organization:
        with self._lock:
            organization = self._organizations.get(organization_id)
            if organization is None:
                raise NotFound("Organization not found.")
            updated = replace(organization, reliability_score=clamp_score(score))
            self._organizations[organization_id] = updated
            return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._organizations)
