"""
Document store abstraction.

Documents are plain dicts addressed by slash-separated paths
(``users/{uid}``, ``users/{uid}/daily_progress/{date}``). Every write is
atomic per document; ``transaction`` gives compare-and-set semantics for
read-decide-write sequences. Two kinds of push subscription share the
``Unsubscribe`` interface: ``subscribe`` watches one document,
``on_write`` fires triggers for a path pattern.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from aquacrew.core.errors import NotFoundError
from aquacrew.core.logging import log_event
from aquacrew.core.triggers import TriggerDispatcher, TriggerHandler, Unsubscribe

SnapshotListener = Callable[[Optional[dict]], None]
TransactionFn = Callable[[Optional[dict]], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class Increment:
    amount: int


class ArrayUnion:
    def __init__(self, *values: Any):
        self.values = list(values)

    def __eq__(self, other):
        return isinstance(other, ArrayUnion) and other.values == self.values

    def __repr__(self):
        return f"ArrayUnion({', '.join(map(repr, self.values))})"


class ArrayRemove:
    def __init__(self, *values: Any):
        self.values = list(values)

    def __eq__(self, other):
        return isinstance(other, ArrayRemove) and other.values == self.values

    def __repr__(self):
        return f"ArrayRemove({', '.join(map(repr, self.values))})"


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    data: dict

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class DocumentStore(Protocol):
    triggers: TriggerDispatcher

    def get(self, path: str) -> Optional[dict]:
        ...

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        ...

    def batch_update(self, updates: Dict[str, Dict[str, Any]]) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def transaction(self, path: str, fn: TransactionFn) -> Optional[Dict[str, Any]]:
        ...

    def query(self, collection: str, field: str, value: Any) -> List[DocumentSnapshot]:
        ...

    def subscribe(self, path: str, on_change: SnapshotListener) -> Unsubscribe:
        ...

    def on_write(self, pattern: str, handler: TriggerHandler) -> Unsubscribe:
        ...


def apply_field(current: Any, value: Any) -> Any:
    """Resolve a field write (plain value or sentinel) against the current value."""
    if isinstance(value, Increment):
        return (current or 0) + value.amount
    if isinstance(value, ArrayUnion):
        existing = list(current or [])
        for item in value.values:
            if item not in existing:
                existing.append(item)
        return existing
    if isinstance(value, ArrayRemove):
        return [item for item in (current or []) if item not in value.values]
    return copy.deepcopy(value)


def apply_fields(document: Optional[dict], fields: Dict[str, Any]) -> dict:
    updated = copy.deepcopy(document) if document else {}
    for name, value in fields.items():
        updated[name] = apply_field(updated.get(name), value)
    return updated


class InMemoryDocumentStore:
    """
    Thread-safe in-process document store.

    Listeners and triggers run synchronously on the writing thread, after the
    write is committed and outside the store lock.
    """

    def __init__(self, triggers: Optional[TriggerDispatcher] = None):
        self.triggers = triggers or TriggerDispatcher()
        self._docs: Dict[str, dict] = {}
        self._listeners: Dict[str, List[SnapshotListener]] = {}
        self._lock = threading.RLock()

    # Reads ------------------------------------------------------------
    def get(self, path: str) -> Optional[dict]:
        with self._lock:
            doc = self._docs.get(_normalize(path))
            return copy.deepcopy(doc) if doc is not None else None

    def query(self, collection: str, field: str, value: Any) -> List[DocumentSnapshot]:
        prefix = _normalize(collection) + "/"
        with self._lock:
            matches = [
                DocumentSnapshot(path=path, data=copy.deepcopy(doc))
                for path, doc in self._docs.items()
                if path.startswith(prefix) and "/" not in path[len(prefix):] and doc.get(field) == value
            ]
        return sorted(matches, key=lambda snap: snap.path)

    # Writes -----------------------------------------------------------
    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        path = _normalize(path)
        with self._lock:
            before = self._docs.get(path)
            after = apply_fields(before if merge else None, data)
            self._docs[path] = after
        self._publish([(path, before, after)])

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self.batch_update({path: fields})

    def batch_update(self, updates: Dict[str, Dict[str, Any]]) -> None:
        changes = []
        with self._lock:
            normalized = {_normalize(path): fields for path, fields in updates.items()}
            missing = [path for path in normalized if path not in self._docs]
            if missing:
                raise NotFoundError(f"Document not found: {missing[0]}")
            for path, fields in normalized.items():
                before = self._docs[path]
                after = apply_fields(before, fields)
                self._docs[path] = after
                changes.append((path, before, after))
        self._publish(changes)

    def delete(self, path: str) -> None:
        path = _normalize(path)
        with self._lock:
            before = self._docs.pop(path, None)
        if before is not None:
            self._publish([(path, before, None)])

    def transaction(self, path: str, fn: TransactionFn) -> Optional[Dict[str, Any]]:
        path = _normalize(path)
        with self._lock:
            before = self._docs.get(path)
            updates = fn(copy.deepcopy(before) if before is not None else None)
            if not updates:
                return None
            if before is None:
                raise NotFoundError(f"Document not found: {path}")
            after = apply_fields(before, updates)
            self._docs[path] = after
        self._publish([(path, before, after)])
        return updates

    # Subscriptions ----------------------------------------------------
    def subscribe(self, path: str, on_change: SnapshotListener) -> Unsubscribe:
        path = _normalize(path)
        with self._lock:
            self._listeners.setdefault(path, []).append(on_change)
            current = copy.deepcopy(self._docs.get(path))
        self._notify(path, on_change, current)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(path, [])
                if on_change in listeners:
                    listeners.remove(on_change)
                if not listeners:
                    self._listeners.pop(path, None)

        return unsubscribe

    def on_write(self, pattern: str, handler: TriggerHandler) -> Unsubscribe:
        return self.triggers.register(pattern, handler)

    # Internal helpers -------------------------------------------------
    def _publish(self, changes: Iterable[tuple]) -> None:
        for path, before, after in changes:
            with self._lock:
                listeners = list(self._listeners.get(path, []))
            for listener in listeners:
                self._notify(path, listener, copy.deepcopy(after))
            self.triggers.dispatch_write(path, copy.deepcopy(before), copy.deepcopy(after))

    @staticmethod
    def _notify(path: str, listener: SnapshotListener, snapshot: Optional[dict]) -> None:
        try:
            listener(snapshot)
        except Exception:
            log_event("error", "documents.listener_failed", event_type=path, exc_info=True)


def _normalize(path: str) -> str:
    return path.strip("/")
