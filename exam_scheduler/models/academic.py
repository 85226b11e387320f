"""Reference rows an exam points at: classes, subjects, batches, exam categories.

These tables are owned by the academic modules; the exam service only reads
them to confirm existence and to resolve display names.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from exam_scheduler.core.database import Base
from exam_scheduler.models.base import IDMixin, TimestampMixin


class AcademicClass(Base, IDMixin, TimestampMixin):
    """Class (grade level) model."""

    __tablename__ = "classes"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<AcademicClass(id={self.id}, name={self.name})>"


class Subject(Base, IDMixin, TimestampMixin):
    """Subject model."""

    __tablename__ = "subjects"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, name={self.name})>"


class Batch(Base, IDMixin, TimestampMixin):
    """Student batch model. Exams are booked per batch."""

    __tablename__ = "batches"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    session_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Batch(id={self.id}, name={self.name})>"


class ExamCategory(Base, IDMixin, TimestampMixin):
    """Exam category model (midterm, final, quiz, ...)."""

    __tablename__ = "exam_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<ExamCategory(id={self.id}, name={self.name})>"
