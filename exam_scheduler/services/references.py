"""Existence checks for the foreign ids an exam points at."""

import enum
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from exam_scheduler.models.academic import AcademicClass, Batch, ExamCategory, Subject


class ReferenceKind(str, enum.Enum):
    """Kinds of foreign reference carried by an exam."""

    CLASS = "class"
    SUBJECT = "subject"
    BATCH = "batch"
    CATEGORY = "category"


class ReferenceValidator(Protocol):
    """Confirms that a referenced row exists."""

    def exists(self, kind: ReferenceKind, ref_id: int) -> bool:
        ...


class SqlReferenceValidator:
    """Reference validator backed by the academic tables."""

    MODELS = {
        ReferenceKind.CLASS: AcademicClass,
        ReferenceKind.SUBJECT: Subject,
        ReferenceKind.BATCH: Batch,
        ReferenceKind.CATEGORY: ExamCategory,
    }

    def __init__(self, db: Session):
        self.db = db

    def exists(self, kind: ReferenceKind, ref_id: int) -> bool:
        model = self.MODELS[kind]
        result = self.db.execute(select(model.id).where(model.id == ref_id))
        return result.scalar_one_or_none() is not None
