"""Database models package."""

from exam_scheduler.models.academic import AcademicClass, Batch, ExamCategory, Subject
from exam_scheduler.models.exam import (
    Exam,
    ExamGradeBand,
    ExamMarkComponent,
    ExamStatus,
    exam_batches,
)

__all__ = [
    # Academic references
    "AcademicClass",
    "Subject",
    "Batch",
    "ExamCategory",
    # Exam
    "Exam",
    "ExamStatus",
    "ExamMarkComponent",
    "ExamGradeBand",
    "exam_batches",
]
