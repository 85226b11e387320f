"""Exam repository: the only place exam rows are read and written."""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exam_scheduler.core.exceptions import DuplicateExamError, NotFoundError
from exam_scheduler.models.academic import Batch
from exam_scheduler.models.exam import (
    Exam,
    ExamGradeBand,
    ExamMarkComponent,
    ExamStatus,
    exam_batches,
)
from exam_scheduler.schemas.exam import ExamCandidate, ExamSummary

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "name",
    "topic",
    "class_id",
    "subject_id",
    "category_id",
    "exam_date",
    "start_time",
    "end_time",
    "total_marks",
    "grading_enabled",
    "pass_marks_percentage",
    "status",
    "is_active",
    "show_marks_in_result",
    "instructions",
    "location",
)


class ExamRepository(Protocol):
    """Persistence operations the exam scheduler depends on."""

    def find_by_id(self, exam_id: int, for_update: bool = False) -> Exam | None:
        ...

    def find_upcoming(self, now: datetime, limit: int) -> list[Exam]:
        ...

    def find_by_class_and_subject(self, class_id: int, subject_id: int) -> list[Exam]:
        ...

    def find_conflicting(
        self,
        exclude_id: int | None,
        batch_ids: list[int],
        start_time: datetime,
        end_time: datetime,
    ) -> list[ExamSummary]:
        ...

    def find_duplicate_name(
        self,
        name: str,
        class_id: int,
        subject_id: int,
        exclude_id: int | None = None,
    ) -> Exam | None:
        ...

    def lock_batches(self, batch_ids: Iterable[int]) -> None:
        ...

    def insert(self, candidate: ExamCandidate, created_by: int) -> Exam:
        ...

    def update(self, exam_id: int, candidate: ExamCandidate, updated_by: int | None) -> Exam:
        ...

    def delete(self, exam: Exam) -> None:
        ...

    def find_refreshable(self) -> list[Exam]:
        ...

    def save_status(self, exam: Exam, status: ExamStatus, updated_by: int | None = None) -> Exam:
        ...

    def save_active(self, exam: Exam, is_active: bool, updated_by: int | None = None) -> Exam:
        ...


class SqlExamRepository:
    """SQLAlchemy implementation of the exam repository."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, exam_id: int, for_update: bool = False) -> Exam | None:
        """Load one exam.

        With ``for_update`` the row is locked until the transaction ends and
        re-read from the database even if the session already holds it, so a
        write path never works from a copy another transaction has changed.
        """
        query = select(Exam).where(Exam.id == exam_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = self.db.execute(query)
        return result.scalar_one_or_none()

    def find_upcoming(self, now: datetime, limit: int) -> list[Exam]:
        """Active draft or scheduled exams starting after ``now``, soonest first."""
        result = self.db.execute(
            select(Exam)
            .where(
                Exam.is_active.is_(True),
                Exam.status.in_([ExamStatus.DRAFT, ExamStatus.SCHEDULED]),
                Exam.start_time > now,
            )
            .order_by(Exam.exam_date, Exam.start_time, Exam.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    def find_by_class_and_subject(self, class_id: int, subject_id: int) -> list[Exam]:
        result = self.db.execute(
            select(Exam)
            .where(
                Exam.class_id == class_id,
                Exam.subject_id == subject_id,
                Exam.is_active.is_(True),
            )
            .order_by(Exam.exam_date, Exam.start_time, Exam.id)
        )
        return list(result.scalars().all())

    def find_conflicting(
        self,
        exclude_id: int | None,
        batch_ids: list[int],
        start_time: datetime,
        end_time: datetime,
    ) -> list[ExamSummary]:
        """Non-cancelled exams sharing a batch whose window intersects [start, end)."""
        if not batch_ids:
            return []

        sharing_batch = select(exam_batches.c.exam_id).where(
            exam_batches.c.batch_id.in_(batch_ids)
        )
        query = select(Exam).where(
            Exam.id.in_(sharing_batch),
            Exam.status != ExamStatus.CANCELLED,
            Exam.start_time < end_time,
            Exam.end_time > start_time,
        )
        if exclude_id is not None:
            query = query.where(Exam.id != exclude_id)

        result = self.db.execute(query.order_by(Exam.start_time, Exam.id))
        return [
            ExamSummary(
                id=exam.id,
                name=exam.name,
                start_time=exam.start_time,
                end_time=exam.end_time,
                status=exam.status,
                batch_ids=exam.batch_ids,
            )
            for exam in result.scalars().all()
        ]

    def find_duplicate_name(
        self,
        name: str,
        class_id: int,
        subject_id: int,
        exclude_id: int | None = None,
    ) -> Exam | None:
        query = select(Exam).where(
            Exam.name == name,
            Exam.class_id == class_id,
            Exam.subject_id == subject_id,
        )
        if exclude_id is not None:
            query = query.where(Exam.id != exclude_id)
        result = self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    def lock_batches(self, batch_ids: Iterable[int]) -> None:
        """Row-lock the given batches until the surrounding transaction ends.

        Locks are taken in id order so two writers touching overlapping batch
        sets cannot deadlock. SQLite ignores FOR UPDATE; it serializes writers
        at the database level instead.
        """
        ids = sorted(set(batch_ids))
        if not ids:
            return
        self.db.execute(
            select(Batch.id)
            .where(Batch.id.in_(ids))
            .order_by(Batch.id)
            .with_for_update()
        ).all()

    def insert(self, candidate: ExamCandidate, created_by: int) -> Exam:
        exam = Exam(created_by=created_by)
        self._apply(exam, candidate)
        self.db.add(exam)
        self._flush(candidate)
        self.db.refresh(exam)
        return exam

    def update(self, exam_id: int, candidate: ExamCandidate, updated_by: int | None) -> Exam:
        exam = self.find_by_id(exam_id)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))
        self._apply(exam, candidate)
        if updated_by is not None:
            exam.updated_by = updated_by
        self._flush(candidate)
        self.db.refresh(exam)
        return exam

    def delete(self, exam: Exam) -> None:
        self.db.delete(exam)
        self.db.flush()

    def find_refreshable(self) -> list[Exam]:
        """Exams whose status can still move with time."""
        result = self.db.execute(
            select(Exam).where(
                Exam.status.notin_([ExamStatus.CANCELLED, ExamStatus.COMPLETED])
            )
        )
        return list(result.scalars().all())

    def save_status(self, exam: Exam, status: ExamStatus, updated_by: int | None = None) -> Exam:
        """Write a status unless the stored row is already cancelled.

        The cancelled check runs in the UPDATE itself, so a cancellation
        committed after ``exam`` was loaded is never overwritten. The returned
        exam carries the status actually stored.
        """
        values: dict = {"status": status}
        if updated_by is not None:
            values["updated_by"] = updated_by

        query = update(Exam).where(Exam.id == exam.id)
        if status != ExamStatus.CANCELLED:
            query = query.where(Exam.status != ExamStatus.CANCELLED)
        result = self.db.execute(
            query.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(f"Exam {exam.id}: status {status.value} not written, exam is cancelled")

        self.db.refresh(exam)
        return exam

    def save_active(self, exam: Exam, is_active: bool, updated_by: int | None = None) -> Exam:
        exam.is_active = is_active
        if updated_by is not None:
            exam.updated_by = updated_by
        self.db.flush()
        return exam

    def _apply(self, exam: Exam, candidate: ExamCandidate) -> None:
        for field in SCALAR_FIELDS:
            setattr(exam, field, getattr(candidate, field))

        batches = self.db.execute(
            select(Batch).where(Batch.id.in_(candidate.batch_ids)).order_by(Batch.id)
        ).scalars().all()
        exam.batches = list(batches)

        exam.mark_components = [
            ExamMarkComponent(position=position, **component.model_dump())
            for position, component in enumerate(candidate.mark_components)
        ]
        exam.grade_bands = [
            ExamGradeBand(position=position, **band.model_dump())
            for position, band in enumerate(candidate.grade_bands)
        ]

    def _flush(self, candidate: ExamCandidate) -> None:
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            message = str(e.orig)
            if "uq_exam_name_class_subject" in message or "exams.name" in message:
                logger.warning(f"Duplicate exam name rejected by database: {candidate.name}")
                raise DuplicateExamError(candidate.name, candidate.class_id, candidate.subject_id) from e
            raise
