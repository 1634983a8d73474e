from __future__ import annotations

import threading
from typing import Callable, List, Optional

from aquacrew.core.documents import DocumentStore
from aquacrew.core.logging import log_event
from aquacrew.core.triggers import Unsubscribe
from aquacrew.features.milestones.notifier import MilestoneNotifier
from aquacrew.models.profile import UserProfile, profile_path
from aquacrew.models.session import AppPhase, derive_phase

StateListener = Callable[["AppState"], None]


class AppState:
    """
    Session state for one signed-in user.

    The profile subscription installed by ``sign_in`` is the only writer;
    routing, screens and the milestone notifier read from here.
    """

    def __init__(self, store: DocumentStore):
        self._store = store
        self._uid: Optional[str] = None
        self._profile: Optional[UserProfile] = None
        self._notifier: Optional[MilestoneNotifier] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._listeners: List[StateListener] = []
        self._lock = threading.RLock()

    @property
    def uid(self) -> Optional[str]:
        return self._uid

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def is_logged_in(self) -> bool:
        return self._uid is not None

    @property
    def phase(self) -> AppPhase:
        profile = self._profile
        return derive_phase(self.is_logged_in, bool(profile and profile.onboarding_complete))

    @property
    def notifier(self) -> Optional[MilestoneNotifier]:
        return self._notifier

    def add_listener(self, listener: StateListener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, uid: str, on_milestone=None) -> AppPhase:
        self.sign_out()
        with self._lock:
            self._uid = uid
            self._notifier = MilestoneNotifier(self._store, uid, on_show=on_milestone)
        self._unsubscribe = self._store.subscribe(profile_path(uid), self._on_profile)
        log_event("info", "session.signed_in", user_id=uid, event_type="session", extra={"phase": self.phase.value})
        return self.phase

    def sign_out(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            uid = self._uid
            self._uid = None
            self._profile = None
            self._notifier = None
        if unsubscribe is not None:
            unsubscribe()
            log_event("info", "session.signed_out", user_id=uid, event_type="session")
            self._emit()

    def _on_profile(self, data: Optional[dict]) -> None:
        with self._lock:
            uid = self._uid
            if uid is None:
                return
            self._profile = UserProfile.from_document(uid, data) if data is not None else None
            notifier = self._notifier
        if notifier is not None:
            notifier.on_profile(data)
        self._emit()

    def _emit(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)
