"""Pydantic schemas for the sleep domain.

Every record here is immutable: the learner, scheduler and coach return new
values, and state transitions produce updated copies via ``model_copy``.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from napcoach.core.timeutil import duration_minutes, parse_instant


class SessionSource(str, Enum):
    """How a sleep session was recorded."""

    MANUAL = "manual"
    TIMER = "timer"


class BlockKind(str, Enum):
    """Kind of projected schedule block."""

    NAP = "nap"
    BEDTIME = "bedtime"
    WIND_DOWN = "windDown"


class TipType(str, Enum):
    """Type of coach tip."""

    WARNING = "warning"
    SUGGESTION = "suggestion"
    INFO = "info"


class TipSeverity(str, Enum):
    """Severity of a coach tip."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NotificationStatus(str, Enum):
    """Lifecycle state of a reminder."""

    SCHEDULED = "scheduled"
    CANCELED = "canceled"
    SENT = "sent"


class SleepSession(BaseModel):
    """A recorded sleep interval."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Session identifier")
    start: datetime = Field(description="Sleep start (UTC)")
    end: datetime = Field(description="Sleep end (UTC), strictly after start")
    quality: int | None = Field(default=None, ge=1, le=5, description="Caregiver rating 1-5")
    notes: str | None = Field(default=None, description="Free-text notes")
    source: SessionSource = Field(default=SessionSource.MANUAL, description="Recording source")
    deleted: bool = Field(default=False, description="Soft-delete flag")
    updated_at: datetime = Field(description="Last modification time")

    @field_validator("start", "end", "updated_at", mode="before")
    @classmethod
    def _normalize_instant(cls, value: Any) -> datetime:
        return parse_instant(value)

    @model_validator(mode="after")
    def _check_range(self) -> "SleepSession":
        if self.end <= self.start:
            raise ValueError("End time must be after start time")
        return self

    @property
    def duration_min(self) -> float:
        """Elapsed minutes of sleep."""
        return duration_minutes(self.start, self.end)


class BabyProfile(BaseModel):
    """The child the engine is tracking."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Profile identifier")
    name: str = Field(description="Display name")
    birth_date: date = Field(description="Date of birth")


class LearnerState(BaseModel):
    """Smoothed estimates produced by the pattern learner."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=1, description="State schema version")
    ewma_wake_window_min: float = Field(description="Smoothed wake window in minutes")
    ewma_nap_length_min: float = Field(description="Smoothed nap length in minutes")
    last_updated: datetime = Field(description="When the state was computed")
    confidence: float = Field(ge=0.1, le=1.0, description="Trust in the estimates")

    @field_validator("last_updated", mode="before")
    @classmethod
    def _normalize_instant(cls, value: Any) -> datetime:
        return parse_instant(value)


class ScheduleBlock(BaseModel):
    """A projected nap, wind-down or bedtime interval."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Deterministic block id")
    kind: BlockKind = Field(description="Block kind")
    start: datetime = Field(description="Block start (UTC)")
    end: datetime = Field(description="Block end (UTC)")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in this block")
    rationale: str = Field(description="Why the block was placed here")


class Schedule(BaseModel):
    """Projected blocks for today (from now on) and tomorrow."""

    model_config = ConfigDict(frozen=True)

    today: list[ScheduleBlock] = Field(default_factory=list)
    tomorrow: list[ScheduleBlock] = Field(default_factory=list)


class CoachTip(BaseModel):
    """An advisory produced by the coach rule engine."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Tip identifier")
    type: TipType = Field(description="Tip type")
    title: str = Field(description="Short title")
    message: str = Field(description="Actionable advice")
    justification: str = Field(description="Numeric evidence behind the tip")
    severity: TipSeverity = Field(description="Severity")
    related_session_ids: list[str] = Field(default_factory=list)
    related_day_keys: list[str] = Field(default_factory=list)
    created_at: datetime = Field(description="When the tip was generated")


class NotificationHistoryItem(BaseModel):
    """One reminder decision and its lifecycle."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="History entry id")
    notification_id: str | None = Field(
        default=None, description="Delivery handle, None when never scheduled"
    )
    schedule_block_id: str = Field(description="Block the reminder is for")
    kind: BlockKind = Field(description="Block kind")
    scheduled_for: datetime = Field(description="Reminder trigger time")
    title: str
    body: str
    status: NotificationStatus
    created_at: datetime
    canceled_at: datetime | None = None
    sent_at: datetime | None = None


class ScheduledReminder(BaseModel):
    """A reminder pending in the delivery system."""

    model_config = ConfigDict(frozen=True)

    notification_id: str
    trigger_at: datetime
    title: str
    body: str
    payload: dict[str, str] = Field(default_factory=dict)
