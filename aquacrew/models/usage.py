from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UsageKind(str, Enum):
    READS = "reads"
    WRITES = "writes"
    FUNCTIONS = "functions"

    @property
    def counter_field(self) -> str:
        return f"{self.value}_today"


class AlertLevel(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


class UsageCounters(BaseModel):
    """Per-installation daily counters, persisted as camelCase JSON."""

    model_config = ConfigDict(populate_by_name=True)

    reads_today: int = Field(0, alias="readsToday", ge=0)
    writes_today: int = Field(0, alias="writesToday", ge=0)
    functions_today: int = Field(0, alias="functionsToday", ge=0)
    last_reset: str = Field("", alias="lastReset")

    def get(self, kind: UsageKind) -> int:
        return getattr(self, kind.counter_field)

    def with_count(self, kind: UsageKind, value: int) -> "UsageCounters":
        return self.model_copy(update={kind.counter_field: value})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class UsageLine(BaseModel):
    current: int
    limit: int
    percentage: int


class UsageReport(BaseModel):
    reads: UsageLine
    writes: UsageLine
    functions: UsageLine
    alert_level: AlertLevel
    last_reset: str
