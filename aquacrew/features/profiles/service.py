"""
Profile domain service.
- create_profile(uid, email): sign-up
- complete_onboarding(uid, username, hydration_goal)
- update_goal(uid, hydration_goal)
- get_profile(uid)
"""
from __future__ import annotations

from aquacrew.core.documents import DocumentStore
from aquacrew.core.errors import ConflictError, NotFoundError, ValidationError
from aquacrew.core.logging import log_event
from aquacrew.models.profile import DEFAULT_HYDRATION_GOAL, UserProfile, profile_path


def validate_goal(hydration_goal) -> int:
    if isinstance(hydration_goal, bool) or not isinstance(hydration_goal, int) or hydration_goal <= 0:
        raise ValidationError("Please enter a valid number for your hydration goal.")
    return hydration_goal


class ProfileService:
    def __init__(self, store: DocumentStore, default_goal: int = DEFAULT_HYDRATION_GOAL):
        self._store = store
        self._default_goal = default_goal

    def get_profile(self, uid: str) -> UserProfile:
        data = self._store.get(profile_path(uid))
        if data is None:
            raise NotFoundError(f"No profile for user {uid}")
        return UserProfile.from_document(uid, data)

    def create_profile(self, uid: str, email: str) -> UserProfile:
        if not uid or not uid.strip():
            raise ValidationError("uid is required")
        if not email or not email.strip():
            raise ValidationError("Please fill out all fields.")
        if self._store.get(profile_path(uid)) is not None:
            raise ConflictError(f"Profile already exists for user {uid}")

        profile = UserProfile(
            uid=uid,
            email=email.strip(),
            hydration_goal=self._default_goal,
            onboarding_complete=False,
        )
        self._store.set(profile_path(uid), profile.to_document())
        log_event("info", "profile.created", user_id=uid, event_type="profile")
        return profile

    def complete_onboarding(self, uid: str, username: str, hydration_goal: int) -> UserProfile:
        if not username or not username.strip():
            raise ValidationError("Please fill out all fields.")
        goal = validate_goal(hydration_goal)
        self.get_profile(uid)
        self._store.update(
            profile_path(uid),
            {"username": username.strip(), "hydrationGoal": goal, "onboardingComplete": True},
        )
        log_event("info", "profile.onboarding_complete", user_id=uid, event_type="profile", extra={"goal": goal})
        return self.get_profile(uid)

    def update_goal(self, uid: str, hydration_goal: int) -> UserProfile:
        goal = validate_goal(hydration_goal)
        self._store.update(profile_path(uid), {"hydrationGoal": goal})
        return self.get_profile(uid)
