"""
Purpose: Runtime settings for the matching & lifecycle core.
What it does:
Reads environment variables (optionally from a .env file) into one frozen
Settings object. Policies are derived from it at bootstrap.

Example .env:
FOODBRIDGE_LOG_LEVEL=DEBUG
FOODBRIDGE_NOTIFY_WEBHOOK_URL=http://localhost:8080/hooks/notify
FOODBRIDGE_SEARCH_RADIUS_KM=10

Rule: No logic here beyond parsing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

ENV_PREFIX = "FOODBRIDGE_"


def _read(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a valid {cast.__name__}, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"

    # --- Notifications ---
    notify_webhook_url: Optional[str] = None
    notify_timeout_seconds: float = 5.0

    # --- Matching ---
    search_radius_km: float = 10.0
    max_candidates: int = 30
    max_daily_pickups: int = 10

    # --- Reassignment ---
    stale_window_minutes: int = 20
    max_reassign_attempts: int = 3
    reliability_penalty: int = 5

    # --- Scheduler ---
    sweep_interval_seconds: int = 300
    sweep_timeout_seconds: int = 240
    expiry_interval_seconds: int = 60
    reliability_recalc_hour: int = 0
    reliability_timeout_seconds: int = 300
    scheduler_poll_seconds: float = 1.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Settings:
        """
        Build settings from the process environment (after loading .env),
        or from an explicit mapping for tests.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        return cls(
            log_level=_read(env, "LOG_LEVEL", cls.log_level, str).upper(),
            notify_webhook_url=_read(env, "NOTIFY_WEBHOOK_URL", None, str),
            notify_timeout_seconds=_read(env, "NOTIFY_TIMEOUT_SECONDS", cls.notify_timeout_seconds, float),
            search_radius_km=_read(env, "SEARCH_RADIUS_KM", cls.search_radius_km, float),
            max_candidates=_read(env, "MAX_CANDIDATES", cls.max_candidates, int),
            max_daily_pickups=_read(env, "MAX_DAILY_PICKUPS", cls.max_daily_pickups, int),
            stale_window_minutes=_read(env, "STALE_WINDOW_MINUTES", cls.stale_window_minutes, int),
            max_reassign_attempts=_read(env, "MAX_REASSIGN_ATTEMPTS", cls.max_reassign_attempts, int),
            reliability_penalty=_read(env, "RELIABILITY_PENALTY", cls.reliability_penalty, int),
            sweep_interval_seconds=_read(env, "SWEEP_INTERVAL_SECONDS", cls.sweep_interval_seconds, int),
            sweep_timeout_seconds=_read(env, "SWEEP_TIMEOUT_SECONDS", cls.sweep_timeout_seconds, int),
            expiry_interval_seconds=_read(env, "EXPIRY_INTERVAL_SECONDS", cls.expiry_interval_seconds, int),
            reliability_recalc_hour=_read(env, "RELIABILITY_RECALC_HOUR", cls.reliability_recalc_hour, int),
            reliability_timeout_seconds=_read(
                env, "RELIABILITY_TIMEOUT_SECONDS", cls.reliability_timeout_seconds, int
            ),
            scheduler_poll_seconds=_read(env, "SCHEDULER_POLL_SECONDS", cls.scheduler_poll_seconds, float),
        )
