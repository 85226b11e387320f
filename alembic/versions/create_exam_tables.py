"""Create exam scheduling tables.

Revision ID: create_exam_tables
Revises:
Create Date: 2026-10-19

Reference tables (classes, subjects, batches, exam_categories) are created here
as well so the service can run standalone; deployments that share them with
the academic modules can stamp past this revision.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "create_exam_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


exam_status = sa.Enum(
    "DRAFT", "SCHEDULED", "ONGOING", "COMPLETED", "CANCELLED",
    name="examstatus",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def _reference_table(name: str, *extra: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        *extra,
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )


def upgrade() -> None:
    """Create reference, exam and exam child tables."""
    _reference_table("classes")
    _reference_table("subjects", sa.Column("code", sa.String(20), nullable=True))
    _reference_table("batches", sa.Column("session_year", sa.String(20), nullable=True))
    _reference_table("exam_categories")

    op.create_table(
        "exams",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("topic", sa.String(255), nullable=False),
        sa.Column("class_id", sa.BigInteger(), sa.ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("subject_id", sa.BigInteger(), sa.ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("category_id", sa.BigInteger(), sa.ForeignKey("exam_categories.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("exam_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_marks", sa.DECIMAL(10, 2), nullable=False, server_default="0"),
        sa.Column("show_marks_in_result", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("grading_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pass_marks_percentage", sa.DECIMAL(5, 2), nullable=True),
        sa.Column("status", exam_status, nullable=False, server_default="DRAFT"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("created_by", sa.BigInteger(), nullable=False),
        sa.Column("updated_by", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="ck_exam_window_order"),
        sa.UniqueConstraint("name", "class_id", "subject_id", name="uq_exam_name_class_subject"),
    )
    for column in ("name", "class_id", "subject_id", "category_id", "exam_date",
                   "start_time", "end_time", "status", "is_active", "created_by"):
        op.create_index(f"ix_exams_{column}", "exams", [column])

    op.create_table(
        "exam_batches",
        sa.Column("exam_id", sa.BigInteger(), sa.ForeignKey("exams.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_index("ix_exam_batches_batch_id", "exam_batches", ["batch_id"])

    op.create_table(
        "exam_mark_components",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("exam_id", sa.BigInteger(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("marks", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("pass_marks", sa.DECIMAL(10, 2), nullable=True),
    )
    op.create_index("ix_exam_mark_components_exam_id", "exam_mark_components", ["exam_id"])

    op.create_table(
        "exam_grade_bands",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("exam_id", sa.BigInteger(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(20), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("min_percentage", sa.DECIMAL(5, 2), nullable=False),
        sa.Column("max_percentage", sa.DECIMAL(5, 2), nullable=False),
        sa.Column("points", sa.DECIMAL(4, 2), nullable=True),
    )
    op.create_index("ix_exam_grade_bands_exam_id", "exam_grade_bands", ["exam_id"])


def downgrade() -> None:
    """Drop everything created in upgrade."""
    op.drop_table("exam_grade_bands")
    op.drop_table("exam_mark_components")
    op.drop_table("exam_batches")
    op.drop_table("exams")
    exam_status.drop(op.get_bind(), checkfirst=True)
    op.drop_table("exam_categories")
    op.drop_table("batches")
    op.drop_table("subjects")
    op.drop_table("classes")
