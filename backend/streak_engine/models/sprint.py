"""
Streak Engine — Sprint SQLAlchemy Model
=========================================

What:  A timed study session recorded by the camera flow.
Why:   Sprints are the qualifying activity for both user and circle streaks.
Who:   Written by the app; read-only to the streak job.

Only sprints with counts_for_streak = true qualify: the flag is set when the
sprint ran its full natural duration without being stopped early.

Query Patterns:
    - User activity in a local day:
      WHERE user_id IN (...) AND counts_for_streak AND ends_at >= :start AND ends_at < :end
      → idx_sprints_user_ends_at
    - Circle participation in a UTC day:
      WHERE circle_id IN (...) AND counts_for_streak AND ends_at in range
      → idx_sprints_circle_ends_at
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from streak_engine.database import Base


class Sprint(Base):
    __tablename__ = "sprints"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # NULL for solo sprints not shared with a circle
    circle_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Always stored in UTC
    ends_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the sprint ended (UTC)",
    )

    counts_for_streak: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="True only when the sprint ran its full duration",
    )

    __table_args__ = (
        Index("idx_sprints_user_ends_at", "user_id", "ends_at"),
        Index("idx_sprints_circle_ends_at", "circle_id", "ends_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Sprint(id={self.id}, user_id={self.user_id}, circle_id={self.circle_id}, "
            f"ends_at='{self.ends_at}', counts_for_streak={self.counts_for_streak})>"
        )
