"""Create streak tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates profiles, sprints, streaks, circles and circle_members.
Why:   profiles, sprints, circles and circle_members belong to the app; they are
       created here so a standalone deployment has the full schema. streaks and
       the streak columns of circles are written only by the daily job.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "timezone",
            sa.String(64),
            nullable=True,
            comment="IANA time-zone name used to resolve the user's local day",
        ),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "sprints",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("circle_id", sa.String(36), nullable=True),
        sa.Column(
            "ends_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="When the sprint ended (UTC)",
        ),
        sa.Column(
            "counts_for_streak",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="True only when the sprint ran its full duration",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_sprints_user_ends_at", "sprints", ["user_id", "ends_at"])
    op.create_index("idx_sprints_circle_ends_at", "sprints", ["circle_id", "ends_at"])

    op.create_table(
        "streaks",
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("current_len", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("best_len", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("freeze_tokens", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "last_completed_local_date",
            sa.Date(),
            nullable=True,
            comment="Local calendar date of the most recent credited day",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint("best_len >= current_len", name="ck_streaks_best_ge_current"),
        sa.CheckConstraint(
            "current_len >= 0 AND best_len >= 0 AND freeze_tokens >= 0",
            name="ck_streaks_non_negative",
        ),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "circles",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(120), nullable=True),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "last_streak_date",
            sa.Date(),
            nullable=True,
            comment="UTC day last evaluated by the streak job",
        ),
        sa.CheckConstraint("best_streak >= current_streak", name="ck_circles_best_ge_current"),
        sa.CheckConstraint(
            "current_streak >= 0 AND best_streak >= 0",
            name="ck_circles_non_negative",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "circle_members",
        sa.Column("circle_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.ForeignKeyConstraint(["circle_id"], ["circles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("circle_id", "user_id"),
    )


def downgrade() -> None:
    op.drop_table("circle_members")
    op.drop_table("circles")
    op.drop_table("streaks")
    op.drop_index("idx_sprints_circle_ends_at", table_name="sprints")
    op.drop_index("idx_sprints_user_ends_at", table_name="sprints")
    op.drop_table("sprints")
    op.drop_table("profiles")
