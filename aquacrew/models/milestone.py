from __future__ import annotations

from typing import List, Tuple

from pydantic import BaseModel

WEEKLY_THRESHOLDS: Tuple[int, ...] = (7, 14, 21, 28)
MONTHLY_THRESHOLDS: Tuple[int, ...] = (30, 60, 90)
MILESTONE_THRESHOLDS: Tuple[int, ...] = tuple(sorted(WEEKLY_THRESHOLDS + MONTHLY_THRESHOLDS))


def milestone_id(threshold: int) -> str:
    if threshold in WEEKLY_THRESHOLDS:
        return f"weekly_{threshold // 7}"
    if threshold in MONTHLY_THRESHOLDS:
        return f"monthly_{threshold // 30}"
    raise ValueError(f"Not a milestone threshold: {threshold}")


ALL_MILESTONE_IDS: Tuple[str, ...] = tuple(milestone_id(t) for t in MILESTONE_THRESHOLDS)


def milestones_crossed(previous_streak: int, new_streak: int) -> List[str]:
    """Milestone ids whose threshold lies in (previous_streak, new_streak], ascending."""
    return [
        milestone_id(threshold)
        for threshold in MILESTONE_THRESHOLDS
        if new_streak >= threshold and previous_streak < threshold
    ]


class MilestoneMessage(BaseModel):
    milestone: str
    title: str
    message: str
    emoji: str


def describe_milestone(milestone: str) -> MilestoneMessage:
    kind, _, count = milestone.partition("_")
    if kind == "weekly" and count:
        plural = "" if count == "1" else "s"
        return MilestoneMessage(
            milestone=milestone,
            title=f"{count} Week Streak! 🎉",
            message=f"Amazing! You've maintained your hydration goal for {count} week{plural} in a row!",
            emoji="🏆",
        )
    if kind == "monthly" and count:
        plural = "" if count == "1" else "s"
        return MilestoneMessage(
            milestone=milestone,
            title=f"{count} Month Streak! 🏆",
            message=f"Incredible! You've maintained your hydration goal for {count} month{plural} in a row!",
            emoji="👑",
        )
    return MilestoneMessage(
        milestone=milestone,
        title="Milestone Achieved!",
        message="Great job on your progress!",
        emoji="🎉",
    )
