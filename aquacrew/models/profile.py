from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_HYDRATION_GOAL = 2000


def profile_path(uid: str) -> str:
    return f"users/{uid}"


class UserProfile(BaseModel):
    """
    Profile document ``users/{uid}``. Stored with camelCase field names;
    absent streak fields read as zero/empty.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    email: str = ""
    username: str = ""
    hydration_goal: int = Field(DEFAULT_HYDRATION_GOAL, alias="hydrationGoal")
    onboarding_complete: bool = Field(False, alias="onboardingComplete")
    current_streak: int = Field(0, alias="currentStreak", ge=0)
    longest_streak: int = Field(0, alias="longestStreak", ge=0)
    last_goal_achieved_date: str = Field("", alias="lastGoalAchievedDate")
    unviewed_milestones: List[str] = Field(default_factory=list, alias="unviewedMilestones")

    @classmethod
    def from_document(cls, uid: str, data: Optional[dict]) -> "UserProfile":
        payload = dict(data or {})
        payload.setdefault("uid", uid)
        # Stored documents may carry null/0 where the client never set a goal
        if not payload.get("hydrationGoal"):
            payload.pop("hydrationGoal", None)
        for name in ("currentStreak", "longestStreak", "lastGoalAchievedDate", "unviewedMilestones"):
            if payload.get(name) is None:
                payload.pop(name, None)
        return cls.model_validate(payload)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)

    def streak_state(self) -> dict:
        return {
            "uid": self.uid,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_goal_achieved_date": self.last_goal_achieved_date or None,
            "unviewed_milestones": list(self.unviewed_milestones),
        }
