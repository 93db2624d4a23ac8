"""progress ledger schema

Revision ID: 3b9e51c07d2a
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e51c07d2a"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "level", sa.String(length=32), nullable=False, server_default="beginner"
        ),
        sa.Column(
            "is_published", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("lesson_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.BigInteger(), nullable=True),
    )

    op.create_table(
        "lessons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column(
            "is_published", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "prerequisite_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lessons.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.UniqueConstraint("course_id", "order", name="uq_lessons_course_order"),
        sa.CheckConstraint('"order" > 0', name="ck_lessons_order_positive"),
    )

    op.create_table(
        "enrollments",
        sa.Column("user_id", sa.String(length=320), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            primary_key=True,
        ),
        sa.Column("enrolled_at", sa.BigInteger(), nullable=False),
        sa.Column(
            "completed_lessons", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("total_lessons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.Column("last_activity_at", sa.BigInteger(), nullable=True),
    )

    op.create_table(
        "lesson_progress",
        sa.Column("user_id", sa.String(length=320), primary_key=True),
        sa.Column(
            "lesson_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lessons.id", ondelete="RESTRICT"),
            primary_key=True,
        ),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column(
            "is_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("watch_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("watch_time >= 0", name="ck_lesson_progress_watch_time"),
        sa.CheckConstraint("last_position >= 0", name="ck_lesson_progress_position"),
    )
    op.create_index(
        "ix_lesson_progress_user_course",
        "lesson_progress",
        ["user_id", "course_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_lesson_progress_user_course", table_name="lesson_progress")
    op.drop_table("lesson_progress")
    op.drop_table("enrollments")
    op.drop_table("lessons")
    op.drop_table("courses")
