from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer

router = APIRouter(prefix="/v1/hydration", tags=["hydration"])


class LogWaterRequest(BaseModel):
    amount: Optional[int] = Field(None, gt=0)
    day: Optional[date] = None
    confirm_override: bool = False


@router.post("/{uid}/log")
def log_water(uid: str, body: LogWaterRequest, container: AppContainer = Depends(get_container)):
    result = container.tracker.add_water(uid, body.amount, body.day, confirm_override=body.confirm_override)
    return {
        "status": result.status,
        "amount": result.amount,
        "progress": result.progress.model_dump(),
        "usage_alert_level": container.guard.classify().value,
    }


@router.get("/{uid}/today")
def get_today(uid: str, day: Optional[date] = Query(None), container: AppContainer = Depends(get_container)):
    return container.tracker.get_progress(uid, day).model_dump()
