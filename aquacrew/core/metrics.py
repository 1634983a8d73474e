"""In-process counters and gauges, exported in Prometheus text format."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Tuple

Labels = Optional[Dict[str, str]]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names or ())
        self._values: Dict[Tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Labels) -> Tuple[str, ...]:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def value(self, labels: Labels = None) -> float:
        with self._lock:
            return self._values.get(self._key(labels), 0.0)

    def export(self) -> List[str]:
        lines = []
        if self.help_text:
            lines.append(f"# HELP {self.name} {self.help_text}")
        lines.append(f"# TYPE {self.name} {self.kind}")
        with self._lock:
            samples = sorted(self._values.items())
        for key, value in samples:
            rendered = ",".join(f'{name}="{_escape(v)}"' for name, v in zip(self.label_names, key))
            lines.append(f"{self.name}{{{rendered}}} {value}" if rendered else f"{self.name} {value}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class Counter(_Metric):
    kind = "counter"

    def inc(self, labels: Labels = None, amount: float = 1.0) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)


class Gauge(_Metric):
    kind = "gauge"

    def set(self, value: float, labels: Labels = None) -> None:
        with self._lock:
            self._values[self._key(labels)] = float(value)


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, cls, name: str, help_text: str, label_names) -> _Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = cls(name, help_text, label_names)
            return metric

    def counter(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._register(Counter, name, help_text, label_names)

    def gauge(self, name: str, help_text: str = "", label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._register(Gauge, name, help_text, label_names)

    def export_prometheus(self) -> str:
        with self._lock:
            metrics = list(self._metrics.values())
        lines: List[str] = []
        for metric in metrics:
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            metrics = list(self._metrics.values())
        for metric in metrics:
            metric.reset()


METRICS = MetricsRegistry()

streak_updates_total = METRICS.counter(
    "streak_updates_total", "Streak evaluations by outcome", ["outcome"]
)
milestones_awarded_total = METRICS.counter(
    "milestones_awarded_total", "Milestones appended to a user's queue", ["milestone"]
)
trigger_deliveries_total = METRICS.counter(
    "trigger_deliveries_total", "Document trigger delivery attempts by status", ["status"]
)
quota_denials_total = METRICS.counter(
    "quota_denials_total", "Reservations refused by the usage quota guard", ["kind"]
)
water_logs_total = METRICS.counter(
    "water_logs_total", "Water log requests by outcome", ["outcome"]
)
usage_quota_current = METRICS.gauge(
    "usage_quota_current", "Operations counted against today's quota", ["kind"]
)
