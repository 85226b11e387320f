"""Exam model with batch booking, marks breakdown and grading scheme."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_scheduler.core.database import Base
from exam_scheduler.models.academic import AcademicClass, Batch, ExamCategory, Subject
from exam_scheduler.models.base import IDMixin, TimestampMixin, UTCDateTime


class ExamStatus(str, enum.Enum):
    """Exam lifecycle status."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


exam_batches = Table(
    "exam_batches",
    Base.metadata,
    Column(
        "exam_id",
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "batch_id",
        BigInteger,
        ForeignKey("batches.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Exam(Base, IDMixin, TimestampMixin):
    """Scheduled exam for one class/subject across one or more batches."""

    __tablename__ = "exams"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)

    class_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("classes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    subject_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exam_categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Time window
    exam_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Marks
    total_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False, default=Decimal("0"))
    show_marks_in_result: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Grading
    grading_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pass_marks_percentage: Mapped[Decimal | None] = mapped_column(DECIMAL(5, 2), nullable=True)

    # Lifecycle
    status: Mapped[ExamStatus] = mapped_column(
        Enum(ExamStatus),
        default=ExamStatus.DRAFT,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit (users live in the auth service)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Relationships
    academic_class: Mapped[AcademicClass | None] = relationship(lazy="selectin")
    subject: Mapped[Subject | None] = relationship(lazy="selectin")
    category: Mapped[ExamCategory | None] = relationship(lazy="selectin")
    batches: Mapped[list[Batch]] = relationship(
        secondary=exam_batches,
        lazy="selectin",
        order_by=Batch.id,
    )
    mark_components: Mapped[list["ExamMarkComponent"]] = relationship(
        "ExamMarkComponent",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="ExamMarkComponent.position",
        lazy="selectin",
    )
    grade_bands: Mapped[list["ExamGradeBand"]] = relationship(
        "ExamGradeBand",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="ExamGradeBand.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_exam_window_order"),
        UniqueConstraint(
            "name", "class_id", "subject_id",
            name="uq_exam_name_class_subject",
        ),
    )

    @property
    def batch_ids(self) -> list[int]:
        return [batch.id for batch in self.batches]

    def __repr__(self) -> str:
        return f"<Exam(id={self.id}, name={self.name}, status={self.status})>"


class ExamMarkComponent(Base, IDMixin):
    """One itemized part of an exam's marks (MCQ, Written, ...)."""

    __tablename__ = "exam_mark_components"

    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    pass_marks: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)

    exam: Mapped[Exam] = relationship(back_populates="mark_components")

    def __repr__(self) -> str:
        return f"<ExamMarkComponent(title={self.title}, marks={self.marks})>"


class ExamGradeBand(Base, IDMixin):
    """Percentage band mapped to a grade label, stored in ascending order."""

    __tablename__ = "exam_grade_bands"

    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    min_percentage: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False)
    max_percentage: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False)
    points: Mapped[Decimal | None] = mapped_column(DECIMAL(4, 2), nullable=True)

    exam: Mapped[Exam] = relationship(back_populates="grade_bands")

    def __repr__(self) -> str:
        return f"<ExamGradeBand(label={self.label}, {self.min_percentage}-{self.max_percentage})>"
