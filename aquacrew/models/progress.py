from __future__ import annotations

import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DAILY_PROGRESS_PATTERN = "users/{uid}/daily_progress/{date}"


def daily_progress_path(uid: str, day: datetime.date | str) -> str:
    key = day.isoformat() if isinstance(day, datetime.date) else day
    return f"users/{uid}/daily_progress/{key}"


class DailyProgressRecord(BaseModel):
    """Running intake total for one user on one calendar date."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    date: str
    current_intake: int = Field(0, alias="currentIntake", ge=0)

    @classmethod
    def from_document(cls, uid: str, day: str, data: Optional[dict]) -> "DailyProgressRecord":
        intake = (data or {}).get("currentIntake") or 0
        return cls(uid=uid, date=day, current_intake=intake)


class DailyProgress(BaseModel):
    """Read model for the home screen: today's intake against the goal."""

    daily_goal: int
    current_intake: int
    progress: float
    current_streak: int
    longest_streak: int = 0
    goal_reached: bool = False
