"""
Document-write triggers with at-least-once delivery.

Handlers are registered against path patterns such as
``users/{uid}/daily_progress/{date}``. A handler that raises
TransientStoreError is redelivered the same event up to ``max_attempts``
times; any other exception is logged and the event is dropped.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from aquacrew.core.errors import TransientStoreError
from aquacrew.core.logging import log_event
from aquacrew.core.metrics import trigger_deliveries_total

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class DocumentWriteEvent:
    path: str
    params: Dict[str, str]
    before: Optional[dict]
    after: Optional[dict]
    event_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_delete(self) -> bool:
        return self.after is None

    @property
    def is_create(self) -> bool:
        return self.before is None and self.after is not None


TriggerHandler = Callable[[DocumentWriteEvent], None]


def match_pattern(pattern: str, path: str) -> Optional[Dict[str, str]]:
    """Match ``path`` against a ``{param}`` pattern, returning the bound params."""
    pattern_parts = pattern.strip("/").split("/")
    path_parts = path.strip("/").split("/")
    if len(pattern_parts) != len(path_parts):
        return None
    params: Dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected.startswith("{") and expected.endswith("}"):
            if not actual:
                return None
            params[expected[1:-1]] = actual
        elif expected != actual:
            return None
    return params


class TriggerDispatcher:
    def __init__(self, max_attempts: int = 3, retry_delay_seconds: float = 0.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_seconds = max(0.0, retry_delay_seconds)
        self._handlers: List[Tuple[str, TriggerHandler]] = []
        self._lock = threading.Lock()

    def register(self, pattern: str, handler: TriggerHandler) -> Unsubscribe:
        entry = (pattern, handler)
        with self._lock:
            self._handlers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._handlers:
                    self._handlers.remove(entry)

        return unsubscribe

    def dispatch_write(
        self,
        path: str,
        before: Optional[dict],
        after: Optional[dict],
        *,
        raise_on_exhausted: bool = False,
    ) -> int:
        """Deliver a write on ``path`` to every matching handler; returns the match count."""
        with self._lock:
            handlers = list(self._handlers)

        matched = 0
        for pattern, handler in handlers:
            params = match_pattern(pattern, path)
            if params is None:
                continue
            matched += 1
            event = DocumentWriteEvent(path=path, params=params, before=before, after=after)
            self.deliver(handler, event, raise_on_exhausted=raise_on_exhausted)
        return matched

    def deliver(self, handler: TriggerHandler, event: DocumentWriteEvent, *, raise_on_exhausted: bool = False) -> bool:
        last_error: Optional[TransientStoreError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                handler(event)
                trigger_deliveries_total.inc(labels={"status": "ok"})
                return True
            except TransientStoreError as exc:
                last_error = exc
                trigger_deliveries_total.inc(labels={"status": "retry"})
                log_event(
                    "warning",
                    "trigger.transient_failure",
                    event_type=event.path,
                    error_code=exc.code,
                    extra={"attempt": attempt, "event_id": event.event_id, "error": exc.message},
                )
                if self.retry_delay_seconds and attempt < self.max_attempts:
                    time.sleep(self.retry_delay_seconds * (2 ** (attempt - 1)))
            except Exception:
                trigger_deliveries_total.inc(labels={"status": "failed"})
                log_event(
                    "error",
                    "trigger.handler_failed",
                    event_type=event.path,
                    extra={"event_id": event.event_id},
                    exc_info=True,
                )
                return False

        trigger_deliveries_total.inc(labels={"status": "exhausted"})
        log_event(
            "error",
            "trigger.retries_exhausted",
            event_type=event.path,
            error_code="store_unavailable",
            extra={"attempts": self.max_attempts, "event_id": event.event_id},
        )
        if raise_on_exhausted and last_error is not None:
            raise last_error
        return False
