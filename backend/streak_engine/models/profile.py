"""
Streak Engine — Profile SQLAlchemy Model
==========================================

What:  The slice of the `profiles` table the streak job reads.
Who:   Owned by the account subsystem; the job only reads user_id and timezone.

The timezone is an IANA zone name chosen on the device. It may be NULL for old
accounts or hold a name the server's tz database does not know; both cases fall
back to UTC when the job resolves the user's local day.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from streak_engine.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    timezone: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default="UTC",
        comment="IANA time-zone name used to resolve the user's local day",
    )

    def __repr__(self) -> str:
        return f"<Profile(user_id={self.user_id}, timezone='{self.timezone}')>"
