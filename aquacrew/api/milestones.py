from __future__ import annotations

from fastapi import APIRouter, Depends

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer

router = APIRouter(prefix="/v1/milestones", tags=["milestones"])


def _render(notifier) -> dict:
    message = notifier.current_message()
    return {
        "state": notifier.state.value,
        "current": message.model_dump() if message else None,
        "queue": notifier.queue,
    }


@router.get("/{uid}/current")
def current_milestone(uid: str, container: AppContainer = Depends(get_container)):
    container.profiles.get_profile(uid)
    return _render(container.notifier_for(uid))


@router.post("/{uid}/ack")
def acknowledge_milestone(uid: str, container: AppContainer = Depends(get_container)):
    container.profiles.get_profile(uid)
    notifier = container.notifier_for(uid)
    acknowledged = notifier.acknowledge()
    body = _render(notifier)
    body["acknowledged"] = acknowledged
    return body
