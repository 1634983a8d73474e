"""
Cloud Firestore implementation of the document store.

Change triggers are not observed by the client library; the platform delivers
them to ``POST /v1/triggers/daily-progress``, which hands them to
``store.triggers`` the same way the in-memory store does after a write.
"""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from aquacrew.core.documents import (
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    Increment,
    SnapshotListener,
    TransactionFn,
)
from aquacrew.core.errors import NotFoundError, TransientStoreError
from aquacrew.core.triggers import TriggerDispatcher, TriggerHandler, Unsubscribe

BATCH_LIMIT = 500

_TRANSIENT = (
    gexc.Aborted,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.ServiceUnavailable,
    gexc.TooManyRequests,
)


@lru_cache(maxsize=1)
def get_firestore_client(project: Optional[str] = None) -> firestore.Client:
    return firestore.Client(project=project)


@contextmanager
def _translate_errors(path: str):
    try:
        yield
    except gexc.NotFound as exc:
        raise NotFoundError(f"Document not found: {path}") from exc
    except _TRANSIENT as exc:
        raise TransientStoreError(f"Firestore unavailable for {path}: {exc}") from exc


def _to_firestore(fields: Dict[str, Any]) -> Dict[str, Any]:
    converted: Dict[str, Any] = {}
    for name, value in fields.items():
        if isinstance(value, Increment):
            converted[name] = firestore.Increment(value.amount)
        elif isinstance(value, ArrayUnion):
            converted[name] = firestore.ArrayUnion(value.values)
        elif isinstance(value, ArrayRemove):
            converted[name] = firestore.ArrayRemove(value.values)
        else:
            converted[name] = value
    return converted


class FirestoreDocumentStore:
    def __init__(self, client: Optional[firestore.Client] = None, *, project: Optional[str] = None, triggers: Optional[TriggerDispatcher] = None):
        self._client = client or get_firestore_client(project)
        self.triggers = triggers or TriggerDispatcher()

    def _ref(self, path: str):
        return self._client.document(path.strip("/"))

    def get(self, path: str) -> Optional[dict]:
        with _translate_errors(path):
            snap = self._ref(path).get()
        return snap.to_dict() if snap.exists else None

    def query(self, collection: str, field: str, value: Any) -> List[DocumentSnapshot]:
        with _translate_errors(collection):
            docs = self._client.collection(collection.strip("/")).where(filter=FieldFilter(field, "==", value)).stream()
            return [DocumentSnapshot(path=doc.reference.path, data=doc.to_dict() or {}) for doc in docs]

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        with _translate_errors(path):
            self._ref(path).set(_to_firestore(data), merge=merge)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        with _translate_errors(path):
            self._ref(path).update(_to_firestore(fields))

    def batch_update(self, updates: Dict[str, Dict[str, Any]]) -> None:
        items = list(updates.items())
        for start in range(0, len(items), BATCH_LIMIT):
            batch = self._client.batch()
            for path, fields in items[start:start + BATCH_LIMIT]:
                batch.update(self._ref(path), _to_firestore(fields))
            with _translate_errors(items[start][0]):
                batch.commit()

    def delete(self, path: str) -> None:
        with _translate_errors(path):
            self._ref(path).delete()

    def transaction(self, path: str, fn: TransactionFn) -> Optional[Dict[str, Any]]:
        ref = self._ref(path)

        @firestore.transactional
        def _run(transaction):
            snap = ref.get(transaction=transaction)
            updates = fn(snap.to_dict() if snap.exists else None)
            if updates:
                transaction.update(ref, _to_firestore(updates))
            return updates or None

        with _translate_errors(path):
            return _run(self._client.transaction())

    def subscribe(self, path: str, on_change: SnapshotListener) -> Unsubscribe:
        def _callback(docs, changes, read_time):
            snap = docs[0] if docs else None
            on_change(snap.to_dict() if snap is not None and snap.exists else None)

        watch = self._ref(path).on_snapshot(_callback)
        return watch.unsubscribe

    def on_write(self, pattern: str, handler: TriggerHandler) -> Unsubscribe:
        return self.triggers.register(pattern, handler)
