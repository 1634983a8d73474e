from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set

from aquacrew.core.documents import ArrayRemove, DocumentStore
from aquacrew.core.logging import log_event
from aquacrew.core.triggers import Unsubscribe
from aquacrew.models.milestone import MilestoneMessage, describe_milestone
from aquacrew.models.profile import profile_path


class NotifierState(str, Enum):
    IDLE = "idle"
    SHOWING = "showing"


class MilestoneNotifier:
    """
    Surfaces the head of a user's ``unviewedMilestones`` queue, one at a time.

    Acknowledging removes exactly that id from the stored queue and updates the
    local view first. Ids whose removal has not yet been confirmed by a later
    snapshot stay hidden, so a stale snapshot cannot redisplay them.
    """

    def __init__(
        self,
        store: DocumentStore,
        uid: str,
        on_show: Optional[Callable[[MilestoneMessage], None]] = None,
    ):
        self._store = store
        self.uid = uid
        self._on_show = on_show
        self._queue: List[str] = []
        self._current: Optional[str] = None
        self._pending_removal: Set[str] = set()
        self._lock = threading.RLock()

    @property
    def state(self) -> NotifierState:
        return NotifierState.SHOWING if self._current is not None else NotifierState.IDLE

    @property
    def current(self) -> Optional[str]:
        return self._current

    @property
    def queue(self) -> List[str]:
        with self._lock:
            return list(self._queue)

    def current_message(self) -> Optional[MilestoneMessage]:
        current = self._current
        return describe_milestone(current) if current else None

    def subscribe(self) -> Unsubscribe:
        return self._store.subscribe(profile_path(self.uid), self.on_profile)

    def on_profile(self, data: Optional[dict]) -> None:
        self.observe((data or {}).get("unviewedMilestones") or [])

    def observe(self, queue: Sequence[str]) -> Optional[str]:
        """Apply a queue snapshot; returns the milestone now showing, if any."""
        with self._lock:
            incoming = list(queue)
            self._pending_removal &= set(incoming)
            stale = sorted(self._pending_removal)
            self._queue = [m for m in incoming if m not in self._pending_removal]

            if self._current is not None and self._current not in self._queue:
                # Removed elsewhere, or the queue emptied while showing
                self._current = None
            shown = self._advance()

        for milestone in stale:
            self._remove(milestone)
        return shown

    def acknowledge(self) -> Optional[str]:
        """Dismiss the showing milestone; returns its id, or None when idle."""
        with self._lock:
            milestone = self._current
            if milestone is None:
                return None
            self._current = None
            self._pending_removal.add(milestone)
            self._queue = [m for m in self._queue if m != milestone]

        self._remove(milestone)

        with self._lock:
            self._advance()
        return milestone

    def _advance(self) -> Optional[str]:
        if self._current is None and self._queue:
            self._current = self._queue[0]
            log_event("info", "milestones.showing", user_id=self.uid, event_type="milestone", extra={"milestone": self._current})
            if self._on_show is not None:
                self._on_show(describe_milestone(self._current))
        return self._current

    def _remove(self, milestone: str) -> None:
        try:
            self._store.update(profile_path(self.uid), {"unviewedMilestones": ArrayRemove(milestone)})
        except Exception:
            log_event(
                "warning",
                "milestones.remove_failed",
                user_id=self.uid,
                event_type="milestone",
                extra={"milestone": milestone},
                exc_info=True,
            )
