"""Request bodies for the HTTP API."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from napcoach.schemas.domain import SessionSource


class ProfileInput(BaseModel):
    """Create or replace a baby profile."""

    name: str = Field(min_length=1, max_length=100, description="Display name")
    birth_date: date = Field(description="Date of birth")


class SessionCreate(BaseModel):
    """Log a sleep session."""

    start: datetime = Field(description="Sleep start")
    end: datetime = Field(description="Sleep end")
    quality: int | None = Field(default=None, ge=1, le=5, description="Caregiver rating 1-5")
    notes: str | None = Field(default=None, max_length=500, description="Free-text notes")
    source: SessionSource = Field(default=SessionSource.MANUAL, description="Recording source")


class SessionUpdate(BaseModel):
    """Edit a sleep session; omitted fields keep their value."""

    start: datetime | None = None
    end: datetime | None = None
    quality: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = Field(default=None, max_length=500)
