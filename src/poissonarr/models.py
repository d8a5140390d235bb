"""
Engine Models

Task descriptors, log entries and counters exchanged between the scheduler,
the executor and the persisted state. Field names serialize in camelCase,
which is the shape the control protocol and the state file use.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SYSTEM_KIND = "system"


class TaskKind(str, Enum):
    """Kind of decoy action."""
    SEARCH = "search"
    BROWSE = "browse"
    AD_CLICK = "adClick"


class TaskStatus(str, Enum):
    """Outcome recorded on a log entry."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    RESOURCE_FAILED = "resourceFailed"
    INFO = "info"


class Intensity(str, Enum):
    """Named arrival-rate presets."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    MAX = "max"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialize for storage and the control protocol."""
        return self.model_dump(mode="json", by_alias=True)


class TaskDescriptor(CamelModel):
    """
    A single decoy action built for one batch entry.

    Built once, dispatched once, then discarded. The target scheme is only
    checked at dispatch time.
    """

    kind: TaskKind
    target: str
    duration_budget_ms: int = Field(ge=0)
    scheduled_offset_sec: float = Field(default=0.0, ge=0.0)
    search_engine: str | None = None
    search_query: str | None = None


class InteractionSummary(CamelModel):
    scrolls: int = 0
    clicks: int = 0


class InteractionReport(CamelModel):
    """Aggregate counts reported by the in-page collaborator. Never content."""

    scrolls: int = 0
    clicks: int = 0
    bytes_estimated: int = 0

    @property
    def summary(self) -> InteractionSummary:
        return InteractionSummary(scrolls=self.scrolls, clicks=self.clicks)


class LogEntry(CamelModel):
    """One row of the user-visible activity log."""

    timestamp: datetime
    kind: str
    target: str | None = None
    search_engine: str | None = None
    search_query: str | None = None
    duration_ms: int | None = None
    interaction_summary: InteractionSummary | None = None
    bytes_estimated: int = 0
    status: TaskStatus
    message: str

    @classmethod
    def system(cls, message: str, timestamp: datetime) -> "LogEntry":
        return cls(
            timestamp=timestamp,
            kind=SYSTEM_KIND,
            status=TaskStatus.INFO,
            message=message,
        )


class Stats(CamelModel):
    """Daily counters, all-time total and the days on which tasks ran."""

    today: str
    searches: int = 0
    browses: int = 0
    ad_clicks: int = 0
    total_actions: int = 0
    days_active: list[str] = Field(default_factory=list)

    def roll_over(self, today: str) -> None:
        """Reset daily counters when the calendar day changed."""
        if self.today != today:
            self.today = today
            self.searches = 0
            self.browses = 0
            self.ad_clicks = 0

    def count(self, kind: TaskKind) -> None:
        if kind is TaskKind.SEARCH:
            self.searches += 1
        elif kind is TaskKind.BROWSE:
            self.browses += 1
        else:
            self.ad_clicks += 1
        self.total_actions += 1
        if self.today not in self.days_active:
            self.days_active.append(self.today)
