from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer
from aquacrew.models.progress import daily_progress_path

router = APIRouter(tags=["streaks"])


class DailyProgressWritten(BaseModel):
    """Document-written event for ``users/{uid}/daily_progress/{date}``."""

    uid: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)
    value: Optional[Dict[str, Any]] = None
    old_value: Optional[Dict[str, Any]] = None


@router.get("/v1/streaks/{uid}")
def get_streak(uid: str, container: AppContainer = Depends(get_container)):
    """Return the current streak state for a user."""
    return container.profiles.get_profile(uid).streak_state()


@router.post("/v1/triggers/daily-progress")
def daily_progress_written(event: DailyProgressWritten, container: AppContainer = Depends(get_container)):
    # Exhausted transient retries surface as 503 so the platform redelivers.
    matched = container.store.triggers.dispatch_write(
        daily_progress_path(event.uid, event.date),
        event.old_value,
        event.value,
        raise_on_exhausted=True,
    )
    return {"ack": True, "handlers": matched}
