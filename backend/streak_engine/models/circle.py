"""
Streak Engine — Circle & Membership SQLAlchemy Models
=======================================================

What:  Study circles (group chats) and their many-to-many membership.
Who:   Circles are created by the app; the streak job owns only the
       current_streak / best_streak / last_streak_date columns.

member_count is informational: the job always recounts circle_members,
because the cached count drifts when members leave.

last_streak_date is the UTC day the circle was last evaluated. Without it a
second run on the same day would increment the circle streak twice.
"""

from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from streak_engine.database import Base


class Circle(Base):
    __tablename__ = "circles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    member_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    current_streak: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    best_streak: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    last_streak_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="UTC day last evaluated by the streak job",
    )

    __table_args__ = (
        CheckConstraint("best_streak >= current_streak", name="ck_circles_best_ge_current"),
        CheckConstraint(
            "current_streak >= 0 AND best_streak >= 0",
            name="ck_circles_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Circle(id={self.id}, current_streak={self.current_streak}, "
            f"best_streak={self.best_streak}, last='{self.last_streak_date}')>"
        )


class CircleMember(Base):
    __tablename__ = "circle_members"

    circle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("circles.id", ondelete="CASCADE"),
        primary_key=True,
    )

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    def __repr__(self) -> str:
        return f"<CircleMember(circle_id={self.circle_id}, user_id={self.user_id})>"
