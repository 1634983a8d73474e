from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional

from aquacrew.core.documents import DocumentStore
from aquacrew.core.logging import log_event
from aquacrew.core.metrics import milestones_awarded_total, streak_updates_total
from aquacrew.core.triggers import DocumentWriteEvent, Unsubscribe
from aquacrew.models.milestone import milestones_crossed
from aquacrew.models.profile import DEFAULT_HYDRATION_GOAL, UserProfile, profile_path
from aquacrew.models.progress import DAILY_PROGRESS_PATTERN


@dataclass(frozen=True)
class StreakTransition:
    day: str
    previous_streak: int
    current_streak: int
    longest_streak: int
    new_milestones: List[str] = field(default_factory=list)
    unviewed_milestones: List[str] = field(default_factory=list)

    def to_updates(self) -> Dict[str, object]:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastGoalAchievedDate": self.day,
            "unviewedMilestones": list(self.unviewed_milestones),
        }


def compute_transition(profile: UserProfile, day: date) -> StreakTransition:
    """Next streak state for a goal-met ``day``. Pure; callers handle the goal and idempotence checks."""
    yesterday = (day - timedelta(days=1)).isoformat()
    last = profile.last_goal_achieved_date

    if not last:
        new_streak = 1
    elif last == yesterday:
        new_streak = profile.current_streak + 1
    else:
        new_streak = 1

    crossed = milestones_crossed(profile.current_streak, new_streak)
    queue = list(profile.unviewed_milestones)
    appended = [m for m in crossed if m not in queue]

    return StreakTransition(
        day=day.isoformat(),
        previous_streak=profile.current_streak,
        current_streak=new_streak,
        longest_streak=max(profile.longest_streak, new_streak),
        new_milestones=appended,
        unviewed_milestones=queue + appended,
    )


class StreakEngine:
    """
    Reacts to daily progress writes and maintains the profile's streak fields.

    Delivery is at-least-once. A second evaluation of an already recorded
    date is a no-op because ``lastGoalAchievedDate`` equals that date.
    """

    def __init__(self, store: DocumentStore, default_goal: int = DEFAULT_HYDRATION_GOAL):
        self._store = store
        self._default_goal = default_goal

    def register(self) -> Unsubscribe:
        return self._store.on_write(DAILY_PROGRESS_PATTERN, self.handle_progress_written)

    def handle_progress_written(self, event: DocumentWriteEvent) -> Optional[StreakTransition]:
        if event.is_delete:
            return None
        uid = event.params["uid"]
        day = event.params["date"]
        intake = (event.after or {}).get("currentIntake") or 0
        return self.evaluate(uid, day, intake)

    def evaluate(self, uid: str, day: str, current_intake: int) -> Optional[StreakTransition]:
        try:
            parsed_day = date.fromisoformat(day)
            if parsed_day.isoformat() != day:
                # Compact or week forms would never match the stored YYYY-MM-DD key
                raise ValueError(day)
        except ValueError:
            log_event("warning", "streak.invalid_date", user_id=uid, date=day, event_type="streak")
            streak_updates_total.inc(labels={"outcome": "invalid_date"})
            return None

        outcome = {"status": "unknown", "transition": None, "goal": None, "last": None}

        def _decide(data: Optional[dict]) -> Optional[Dict[str, object]]:
            outcome["transition"] = None
            if data is None:
                outcome["status"] = "profile_missing"
                return None
            profile = UserProfile.from_document(uid, data)
            goal = profile.hydration_goal or self._default_goal
            outcome["goal"] = goal
            outcome["last"] = profile.last_goal_achieved_date
            if current_intake < goal:
                outcome["status"] = "below_goal"
                return None
            if profile.last_goal_achieved_date == day:
                outcome["status"] = "already_recorded"
                return None
            transition = compute_transition(profile, parsed_day)
            outcome["status"] = "updated"
            outcome["transition"] = transition
            return transition.to_updates()

        # Raises TransientStoreError to the trigger dispatcher, which redelivers.
        self._store.transaction(profile_path(uid), _decide)

        status = outcome["status"]
        streak_updates_total.inc(labels={"outcome": status})
        if status == "profile_missing":
            log_event("error", "streak.profile_missing", user_id=uid, date=day, event_type="streak", error_code="not_found")
            return None
        if status == "below_goal":
            log_event(
                "info",
                "streak.goal_not_reached",
                user_id=uid,
                date=day,
                event_type="streak",
                extra={"intake": current_intake, "goal": outcome["goal"]},
            )
            return None
        if status == "already_recorded":
            log_event("info", "streak.already_recorded", user_id=uid, date=day, event_type="streak")
            return None

        transition: StreakTransition = outcome["transition"]
        last = outcome["last"]
        if last and last > day:
            # Older date delivered after a newer one; the reset stands (see DESIGN.md).
            log_event("warning", "streak.out_of_order", user_id=uid, date=day, event_type="streak", extra={"last_goal_achieved_date": last})
        for milestone in transition.new_milestones:
            milestones_awarded_total.inc(labels={"milestone": milestone})
        log_event(
            "info",
            "streak.updated",
            user_id=uid,
            date=day,
            event_type="streak",
            extra={
                "current_streak": transition.current_streak,
                "longest_streak": transition.longest_streak,
                "new_milestones": ",".join(transition.new_milestones),
            },
        )
        return transition
