"""
Water intake logging and daily progress.

Every backend operation goes through the usage quota guard first:
a progress read costs two reads (profile + daily record); a log costs one
write plus one function invocation (the streak trigger it fires).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from aquacrew.core.documents import DocumentStore, Increment
from aquacrew.core.errors import ConfirmationRequiredError, QuotaExceededError, ValidationError
from aquacrew.core.logging import log_event
from aquacrew.core.metrics import water_logs_total
from aquacrew.core.triggers import Unsubscribe
from aquacrew.features.profiles.service import ProfileService
from aquacrew.features.usage.guard import UsageQuotaGuard
from aquacrew.models.profile import DEFAULT_HYDRATION_GOAL, UserProfile
from aquacrew.models.progress import DailyProgress, DailyProgressRecord, daily_progress_path
from aquacrew.models.usage import AlertLevel, UsageKind

QUOTA_MESSAGE = "Daily usage limit reached. Please try again tomorrow."
DANGER_MESSAGE = "Usage is close to today's limit. Confirm to log anyway."


@dataclass(frozen=True)
class LogResult:
    status: str  # logged | goal_already_reached
    amount: int
    progress: DailyProgress


class WaterTracker:
    def __init__(
        self,
        store: DocumentStore,
        guard: UsageQuotaGuard,
        profiles: ProfileService,
        *,
        default_goal: int = DEFAULT_HYDRATION_GOAL,
        default_amount: int = 250,
        today_fn: Callable[[], date] = date.today,
    ):
        self._store = store
        self._guard = guard
        self._profiles = profiles
        self._default_goal = default_goal
        self._default_amount = default_amount
        self._today_fn = today_fn

    def get_progress(self, uid: str, today: Optional[date] = None) -> DailyProgress:
        if not self._guard.reserve(UsageKind.READS, 2):
            raise QuotaExceededError(QUOTA_MESSAGE)
        profile = self._profiles.get_profile(uid)
        return self._progress_for(profile, self._intake(uid, today or self._today_fn()))

    def watch_progress(self, uid: str, on_change: Callable[[int], None], today: Optional[date] = None) -> Unsubscribe:
        """Push today's intake to ``on_change`` whenever the record changes."""
        path = daily_progress_path(uid, today or self._today_fn())
        return self._store.subscribe(path, lambda data: on_change((data or {}).get("currentIntake") or 0))

    def add_water(
        self,
        uid: str,
        amount: Optional[int] = None,
        today: Optional[date] = None,
        *,
        confirm_override: bool = False,
    ) -> LogResult:
        amount = self._default_amount if amount is None else amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive number of millilitres")
        day = today or self._today_fn()

        profile = self._profiles.get_profile(uid)
        intake = self._intake(uid, day)
        if intake >= self._goal(profile):
            water_logs_total.inc(labels={"outcome": "goal_already_reached"})
            return LogResult(status="goal_already_reached", amount=0, progress=self._progress_for(profile, intake))

        self._guard.refresh()
        if self._guard.would_exceed(UsageKind.WRITES) or self._guard.would_exceed(UsageKind.FUNCTIONS):
            water_logs_total.inc(labels={"outcome": "quota_exceeded"})
            raise QuotaExceededError(QUOTA_MESSAGE)
        if self._guard.classify() == AlertLevel.DANGER and not confirm_override:
            water_logs_total.inc(labels={"outcome": "confirmation_required"})
            raise ConfirmationRequiredError(DANGER_MESSAGE)
        if not self._guard.reserve(UsageKind.WRITES):
            water_logs_total.inc(labels={"outcome": "quota_exceeded"})
            raise QuotaExceededError(QUOTA_MESSAGE)
        self._guard.reserve(UsageKind.FUNCTIONS)

        self._store.set(daily_progress_path(uid, day), {"currentIntake": Increment(amount)}, merge=True)
        water_logs_total.inc(labels={"outcome": "logged"})
        log_event("info", "hydration.logged", user_id=uid, date=day.isoformat(), event_type="hydration", extra={"amount": amount})

        refreshed = self._profiles.get_profile(uid)
        return LogResult(status="logged", amount=amount, progress=self._progress_for(refreshed, self._intake(uid, day)))

    def _intake(self, uid: str, day: date) -> int:
        data = self._store.get(daily_progress_path(uid, day))
        return DailyProgressRecord.from_document(uid, day.isoformat(), data).current_intake

    def _goal(self, profile: UserProfile) -> int:
        return profile.hydration_goal or self._default_goal

    def _progress_for(self, profile: UserProfile, intake: int) -> DailyProgress:
        goal = self._goal(profile)
        return DailyProgress(
            daily_goal=goal,
            current_intake=intake,
            progress=min(intake / goal, 1.0) if goal > 0 else 0.0,
            current_streak=profile.current_streak,
            longest_streak=profile.longest_streak,
            goal_reached=intake >= goal,
        )
