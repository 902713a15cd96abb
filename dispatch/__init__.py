#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Scoring / ranking (MatchingEngine, the "one call" ranking entry point)
#Lifecycle actions, sweeps and the scheduler
#FoodBridgeService wires all of it together

from .candidate_filter import build_base_candidates
from .scoring import DEFAULT_FACTORS, Factor, score_candidate
from .matcher import Candidate, MatchingEngine
from .actions import DonationActions
from .reassignment import ReassignmentSweeper, SweepResult
from .expiry import ExpirySweeper, ExpiryResult
from .notifications import NotificationDispatcher, NotificationEvent
from .scheduler import DailySchedule, IntervalSchedule, JobScheduler
from .service import FoodBridgeService

__all__ = [
    "build_base_candidates",
    "DEFAULT_FACTORS",
    "Factor",
    "score_candidate",
    "Candidate",
    "MatchingEngine",
    "DonationActions",
    "ReassignmentSweeper",
    "SweepResult",
    "ExpirySweeper",
    "ExpiryResult",
    "NotificationDispatcher",
    "NotificationEvent",
    "DailySchedule",
    "IntervalSchedule",
    "JobScheduler",
    "FoodBridgeService",
]
