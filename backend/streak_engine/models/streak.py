"""
Streak Engine — Streak SQLAlchemy Model
=========================================

What:  One row per user holding their daily streak counters.
Why:   The sprint screen shows current_len and freeze_tokens; the reminder
       function reads the same row to decide whom to nudge.
Who:   Written only by the daily streak job.

Lifecycle:
    1. Inserted the first time a user is credited for a day (current_len = 1)
    2. Updated at most once per local day afterwards
       (last_completed_local_date is the idempotency guard and the CAS key)

Invariants (enforced by check constraints):
    - best_len >= current_len
    - all counters are non-negative
"""

from datetime import date, datetime, timezone

from sqlalchemy import CheckConstraint, Date, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from streak_engine.database import Base


class Streak(Base):
    __tablename__ = "streaks"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    current_len: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    best_len: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    # Earned every N-day milestone; consumed elsewhere, never by the job
    freeze_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    # A calendar date in the user's zone, not an instant
    last_completed_local_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Local calendar date of the most recent credited day",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("best_len >= current_len", name="ck_streaks_best_ge_current"),
        CheckConstraint(
            "current_len >= 0 AND best_len >= 0 AND freeze_tokens >= 0",
            name="ck_streaks_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Streak(user_id={self.user_id}, current_len={self.current_len}, "
            f"best_len={self.best_len}, freeze_tokens={self.freeze_tokens}, "
            f"last='{self.last_completed_local_date}')>"
        )
