"""
Streak Engine — Pydantic Records & API Schemas
================================================

What:  Plain records passed between the store and the streak updaters, plus the
       request/response contracts of the HTTP surface.
Why:   The updaters are pure functions of these records. Keeping them apart from
       the ORM models means the decision logic can be tested without a database,
       and the store decides alone how rows are read and written.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Store Records — read from / written to the data store
# ══════════════════════════════════════════════════════════════════════════


class ProfileRecord(BaseModel):
    """A user and the IANA zone their streak days are counted in."""
    user_id: str
    timezone: Optional[str] = Field(default="UTC")

    model_config = {"from_attributes": True}


class StreakState(BaseModel):
    """
    Per-user streak counters.

    best_len is a running maximum, so it can never be below current_len.
    """
    user_id: str
    current_len: int = Field(default=0, ge=0)
    best_len: int = Field(default=0, ge=0)
    freeze_tokens: int = Field(default=0, ge=0)
    last_completed_local_date: Optional[date] = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_best_covers_current(self) -> "StreakState":
        if self.best_len < self.current_len:
            raise ValueError("best_len must be >= current_len")
        return self


class CircleRecord(BaseModel):
    """A circle's streak columns as read at the start of a run."""
    id: str
    member_count: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    last_streak_date: Optional[date] = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_best_covers_current(self) -> "CircleRecord":
        if self.best_streak < self.current_streak:
            raise ValueError("best_streak must be >= current_streak")
        return self


class CircleStreakState(BaseModel):
    """New streak columns for one circle."""
    circle_id: str
    current_streak: int = Field(ge=0)
    best_streak: int = Field(ge=0)
    last_streak_date: date

    @model_validator(mode="after")
    def check_best_covers_current(self) -> "CircleStreakState":
        if self.best_streak < self.current_streak:
            raise ValueError("best_streak must be >= current_streak")
        return self


# ══════════════════════════════════════════════════════════════════════════
# Job Report — returned by the orchestrator, the HTTP trigger and the CLI
# ══════════════════════════════════════════════════════════════════════════


class FailureRecord(BaseModel):
    """
    One entity the job could not process.

    entity_type is "user", "circle", or "phase" when a whole listing
    (all profiles, all circles) could not be read.
    """
    entity_type: str = Field(description="user, circle or phase")
    entity_id: str = Field(description="User id, circle id or phase name")
    cause: str = Field(description="Short description of the error")


class JobReport(BaseModel):
    """
    Outcome of one streak job run.

    processed_* counts entities handled without error, whether or not their
    state changed; updated_* counts the ones whose row was written.
    """
    success: bool
    run_at: datetime
    processed_users: int = 0
    processed_circles: int = 0
    updated_users: int = 0
    updated_circles: int = 0
    failures: List[FailureRecord] = Field(default_factory=list)
    duration_ms: float = 0.0


class JobRunRequest(BaseModel):
    """Optional body for POST /jobs/update-streaks."""
    now: Optional[datetime] = Field(
        default=None,
        description="Reference instant (ISO 8601). Defaults to the time of the call.",
    )


# ══════════════════════════════════════════════════════════════════════════
# Read Responses
# ══════════════════════════════════════════════════════════════════════════


class StreakResponse(BaseModel):
    """What the sprint screen shows for the signed-in user."""
    user_id: str
    current_len: int
    best_len: int
    freeze_tokens: int
    last_completed_local_date: Optional[date] = None

    model_config = {"from_attributes": True}


class CircleStreakResponse(BaseModel):
    circle_id: str
    current_streak: int
    best_streak: int
    last_streak_date: Optional[date] = None


class ErrorResponse(BaseModel):
    """Standardized error body for all API errors."""
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
