from __future__ import annotations

from enum import Enum


class AppPhase(str, Enum):
    SIGNED_OUT = "signed_out"
    ONBOARDING_PENDING = "onboarding_pending"
    ACTIVE = "active"


def derive_phase(is_logged_in: bool, onboarding_complete: bool) -> AppPhase:
    if not is_logged_in:
        return AppPhase.SIGNED_OUT
    if not onboarding_complete:
        return AppPhase.ONBOARDING_PENDING
    return AppPhase.ACTIVE
