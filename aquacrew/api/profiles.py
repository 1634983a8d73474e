from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer
from aquacrew.models.session import derive_phase

router = APIRouter(prefix="/v1/profiles", tags=["profiles"])


class CreateProfileRequest(BaseModel):
    uid: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)


class OnboardingRequest(BaseModel):
    username: str = Field(..., min_length=1)
    hydration_goal: int


class GoalRequest(BaseModel):
    hydration_goal: int


def _render(profile) -> dict:
    body = profile.to_document()
    body["phase"] = derive_phase(True, profile.onboarding_complete).value
    return body


@router.post("", status_code=201)
def create_profile(body: CreateProfileRequest, container: AppContainer = Depends(get_container)):
    return _render(container.profiles.create_profile(body.uid, body.email))


@router.get("/{uid}")
def get_profile(uid: str, container: AppContainer = Depends(get_container)):
    return _render(container.profiles.get_profile(uid))


@router.post("/{uid}/onboarding")
def complete_onboarding(uid: str, body: OnboardingRequest, container: AppContainer = Depends(get_container)):
    return _render(container.profiles.complete_onboarding(uid, body.username, body.hydration_goal))


@router.put("/{uid}/goal")
def update_goal(uid: str, body: GoalRequest, container: AppContainer = Depends(get_container)):
    return _render(container.profiles.update_goal(uid, body.hydration_goal))
