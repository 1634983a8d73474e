"""
Composition root.

Builds the document store, local storage and every service once, wires the
streak trigger, and hands the container to the HTTP layer via app.state.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Tuple

from aquacrew.core.config import Settings, settings
from aquacrew.core.documents import DocumentStore, InMemoryDocumentStore
from aquacrew.core.kvstore import InMemoryKeyValueStorage, KeyValueStorage, SqlKeyValueStorage
from aquacrew.core.logging import log_event
from aquacrew.core.triggers import TriggerDispatcher, Unsubscribe
from aquacrew.features.hydration.service import WaterTracker
from aquacrew.features.milestones.notifier import MilestoneNotifier
from aquacrew.features.profiles.service import ProfileService
from aquacrew.features.session.state import AppState
from aquacrew.features.streaks.engine import StreakEngine
from aquacrew.features.usage.guard import QuotaLimits, UsageQuotaGuard


def build_dispatcher(cfg: Settings) -> TriggerDispatcher:
    return TriggerDispatcher(
        max_attempts=cfg.TRIGGER_MAX_ATTEMPTS,
        retry_delay_seconds=cfg.TRIGGER_RETRY_DELAY_SECONDS,
    )


def build_document_store(cfg: Settings) -> DocumentStore:
    backend = (cfg.DOCUMENT_STORE or "memory").lower()
    if backend == "firestore":
        from aquacrew.core.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore(project=cfg.FIRESTORE_PROJECT, triggers=build_dispatcher(cfg))
    return InMemoryDocumentStore(triggers=build_dispatcher(cfg))


def build_storage(cfg: Settings) -> KeyValueStorage:
    if cfg.DATABASE_URL:
        from aquacrew.core.database import init_engine

        init_engine(cfg.DATABASE_URL)
        return SqlKeyValueStorage()
    return InMemoryKeyValueStorage()


@dataclass
class AppContainer:
    settings: Settings
    store: DocumentStore
    storage: KeyValueStorage
    guard: UsageQuotaGuard
    engine: StreakEngine
    profiles: ProfileService
    tracker: WaterTracker
    state: AppState
    _notifiers: OrderedDict[str, Tuple[MilestoneNotifier, Unsubscribe]] = field(default_factory=OrderedDict)
    _notifiers_lock: threading.Lock = field(default_factory=threading.Lock)

    def notifier_for(self, uid: str) -> MilestoneNotifier:
        """
        One subscribed notifier per user, created on first use.

        At most ``MILESTONE_NOTIFIER_CACHE_SIZE`` stay subscribed; the least
        recently used one is unsubscribed and dropped to make room.
        """
        evicted = []
        with self._notifiers_lock:
            entry = self._notifiers.get(uid)
            if entry is not None:
                self._notifiers.move_to_end(uid)
                return entry[0]

            notifier = MilestoneNotifier(self.store, uid)
            self._notifiers[uid] = (notifier, notifier.subscribe())
            while len(self._notifiers) > max(1, self.settings.MILESTONE_NOTIFIER_CACHE_SIZE):
                evicted.append(self._notifiers.popitem(last=False))

        for old_uid, (_, unsubscribe) in evicted:
            unsubscribe()
            log_event("info", "milestones.notifier_evicted", user_id=old_uid, event_type="milestone")
        return notifier

    def cached_notifier_uids(self) -> List[str]:
        with self._notifiers_lock:
            return list(self._notifiers)


def build_container(
    cfg: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    storage: Optional[KeyValueStorage] = None,
    today_fn: Callable[[], date] = date.today,
) -> AppContainer:
    cfg = cfg or settings
    store = store or build_document_store(cfg)
    storage = storage or build_storage(cfg)

    guard = UsageQuotaGuard(
        storage,
        QuotaLimits.from_settings(cfg),
        storage_key=cfg.USAGE_STORAGE_KEY,
        today_fn=today_fn,
    )
    engine = StreakEngine(store, default_goal=cfg.DEFAULT_HYDRATION_GOAL)
    engine.register()
    profiles = ProfileService(store, default_goal=cfg.DEFAULT_HYDRATION_GOAL)
    tracker = WaterTracker(
        store,
        guard,
        profiles,
        default_goal=cfg.DEFAULT_HYDRATION_GOAL,
        default_amount=cfg.DEFAULT_WATER_AMOUNT_ML,
        today_fn=today_fn,
    )
    return AppContainer(
        settings=cfg,
        store=store,
        storage=storage,
        guard=guard,
        engine=engine,
        profiles=profiles,
        tracker=tracker,
        state=AppState(store),
    )
