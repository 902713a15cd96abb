"""
Purpose: Error taxonomy for the matching & lifecycle core.

Every operational failure raised by the core is one of these classes.
`status_code` and `error_code` exist so the (external) HTTP layer can map
them to responses without string matching.
"""

from __future__ import annotations

from typing import Optional


class FoodBridgeError(Exception):
    """Base class for all core errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(FoodBridgeError):
    """Raised when a donation, organization or pickup log does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class InvalidTransition(FoodBridgeError):
    """
    Raised when a status change is not in the transition table, or when a
    concurrent writer moved the donation out of the expected status first.
    """

    status_code = 400
    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current_status, target=None, detail: Optional[str] = None):
        status_value = getattr(current_status, "value", current_status)
        if detail is None:
            detail = f'Cannot perform this action on a donation with status "{status_value}".'
        super().__init__(detail)
        self.current_status = current_status
        self.target = target


class ShelfLifeViolation(FoodBridgeError):
    """Raised when a donation's timing breaks the shelf-life rules."""

    status_code = 400
    error_code = "SHELF_LIFE_VIOLATION"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PermissionDenied(FoodBridgeError):
    """Raised when an actor is not the one allowed to perform the action."""

    status_code = 403
    error_code = "AUTHORIZATION_ERROR"


class NoEligibleCandidates(FoodBridgeError):
    """
    Raised only by callers that insist on a single best candidate.
    Ranking itself returns an empty list instead.
    """

    status_code = 404
    error_code = "NO_ELIGIBLE_CANDIDATES"


class PersistenceFailure(FoodBridgeError):
    """Raised by a storage backend when a read or write fails."""

    status_code = 503
    error_code = "PERSISTENCE_FAILURE"
