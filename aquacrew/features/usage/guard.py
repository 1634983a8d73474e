"""
Usage quota guard.

Cooperative, per-installation limiter that keeps backend usage under a daily
budget (75% of the free tier). Counters live in local key-value storage and
reset when the stored ``lastReset`` date differs from today's local date.

Write-through persistence: state is committed in memory first, then the full
snapshot is persisted. A failed persist is logged and the in-memory state
stays authoritative, so a crash can only under-count usage.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from aquacrew.core.config import Settings
from aquacrew.core.errors import ValidationError
from aquacrew.core.kvstore import KeyValueStorage
from aquacrew.core.logging import log_event
from aquacrew.core.metrics import quota_denials_total, usage_quota_current
from aquacrew.models.usage import AlertLevel, UsageCounters, UsageKind, UsageLine, UsageReport

DEFAULT_STORAGE_KEY = "@aquacrew_usage_data"


@dataclass(frozen=True)
class QuotaLimits:
    reads: int = 30000
    writes: int = 11250
    functions: int = 750
    warning_ratio: float = 0.7
    danger_ratio: float = 0.9

    def limit_for(self, kind: UsageKind) -> int:
        return getattr(self, kind.value)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "QuotaLimits":
        return cls(
            reads=cfg.QUOTA_READS_LIMIT,
            writes=cfg.QUOTA_WRITES_LIMIT,
            functions=cfg.QUOTA_FUNCTIONS_LIMIT,
            warning_ratio=cfg.QUOTA_WARNING_RATIO,
            danger_ratio=cfg.QUOTA_DANGER_RATIO,
        )


def _coerce_kind(kind: Union[UsageKind, str]) -> UsageKind:
    try:
        return UsageKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown usage kind: {kind!r}")


def _coerce_count(count: int) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError("count must be a positive integer")
    return count


def _percentage(current: int, limit: int) -> int:
    # Half-up rounding, matching the dashboard's display
    return int(current * 100 / limit + 0.5)


class UsageQuotaGuard:
    def __init__(
        self,
        storage: KeyValueStorage,
        limits: Optional[QuotaLimits] = None,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
        today_fn: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self.limits = limits or QuotaLimits()
        self._storage_key = storage_key
        self._today_fn = today_fn
        self._lock = threading.RLock()
        self._counters = UsageCounters(last_reset=self._today())
        self.load()

    @property
    def counters(self) -> UsageCounters:
        with self._lock:
            return self._counters

    def load(self) -> UsageCounters:
        """Populate in-memory counters from the last persisted snapshot."""
        try:
            raw = self._storage.get(self._storage_key)
        except Exception:
            log_event("error", "usage.load_failed", event_type="usage", exc_info=True)
            raw = None

        loaded = None
        if raw:
            try:
                loaded = UsageCounters.model_validate_json(raw)
            except PydanticValidationError:
                log_event("warning", "usage.snapshot_invalid", event_type="usage", extra={"snapshot": raw})

        with self._lock:
            self._counters = loaded or UsageCounters(last_reset=self._today())
            self._publish_gauges()
            return self._counters

    # Operations -------------------------------------------------------
    def reserve(self, kind: Union[UsageKind, str], count: int = 1) -> bool:
        usage_kind = _coerce_kind(kind)
        amount = _coerce_count(count)
        with self._lock:
            current = self._resolve_reset()
            projected = current.get(usage_kind) + amount
            if projected > self.limits.limit_for(usage_kind):
                quota_denials_total.inc(labels={"kind": usage_kind.value})
                log_event(
                    "warning",
                    "usage.quota_denied",
                    event_type="usage",
                    error_code="quota_exceeded",
                    extra={"kind": usage_kind.value, "current": current.get(usage_kind), "requested": amount},
                )
                return False
            self._counters = current.with_count(usage_kind, projected)
            self._persist()
            return True

    def would_exceed(self, kind: Union[UsageKind, str], count: int = 1) -> bool:
        usage_kind = _coerce_kind(kind)
        amount = _coerce_count(count)
        with self._lock:
            current = self._pending_view()
            return current.get(usage_kind) + amount > self.limits.limit_for(usage_kind)

    def classify(self) -> AlertLevel:
        with self._lock:
            counters = self._counters
        ratio = max(counters.get(kind) / self.limits.limit_for(kind) for kind in UsageKind)
        if ratio >= self.limits.danger_ratio:
            return AlertLevel.DANGER
        if ratio >= self.limits.warning_ratio:
            return AlertLevel.WARNING
        return AlertLevel.SAFE

    def report(self) -> UsageReport:
        with self._lock:
            counters = self._counters
            lines = {}
            for kind in UsageKind:
                limit = self.limits.limit_for(kind)
                current = counters.get(kind)
                lines[kind.value] = UsageLine(current=current, limit=limit, percentage=_percentage(current, limit))
            return UsageReport(alert_level=self.classify(), last_reset=counters.last_reset, **lines)

    def refresh(self) -> UsageCounters:
        """Apply (and persist) a pending daily reset without reserving anything."""
        with self._lock:
            return self._resolve_reset()

    # Internal helpers -------------------------------------------------
    def _today(self) -> str:
        return self._today_fn().isoformat()

    def _pending_view(self) -> UsageCounters:
        today = self._today()
        if self._counters.last_reset != today:
            return UsageCounters(last_reset=today)
        return self._counters

    def _resolve_reset(self) -> UsageCounters:
        today = self._today()
        if self._counters.last_reset != today:
            previous = self._counters.last_reset
            self._counters = UsageCounters(last_reset=today)
            log_event("info", "usage.daily_reset", event_type="usage", extra={"previous_reset": previous, "today": today})
            self._persist()
        return self._counters

    def _persist(self) -> None:
        self._publish_gauges()
        try:
            self._storage.set(self._storage_key, self._counters.to_json())
        except Exception:
            log_event("error", "usage.persist_failed", event_type="usage", exc_info=True)

    def _publish_gauges(self) -> None:
        for kind in UsageKind:
            usage_quota_current.set(self._counters.get(kind), labels={"kind": kind.value})
