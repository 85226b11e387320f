"""Exam scheduling service: create, update and lifecycle operations."""

import logging
import math
from collections.abc import Callable
from datetime import datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from exam_scheduler.core.config import settings
from exam_scheduler.core.exceptions import (
    DuplicateExamError,
    NotFoundError,
    OverlapConflictError,
    ReferenceNotFoundError,
    ValidationError,
)
from exam_scheduler.models.base import utc_now
from exam_scheduler.models.exam import Exam, ExamStatus
from exam_scheduler.repositories.exam import ExamRepository, SqlExamRepository
from exam_scheduler.schemas.exam import (
    ExamCandidate,
    ExamCreate,
    ExamResponse,
    ExamUpdate,
    GradeBand,
    MarkComponent,
    make_reference,
)
from exam_scheduler.services.grading import validate_grading
from exam_scheduler.services.marks import reconcile_total_marks
from exam_scheduler.services.overlap import OverlapDetector
from exam_scheduler.services.references import (
    ReferenceKind,
    ReferenceValidator,
    SqlReferenceValidator,
)
from exam_scheduler.services.status import resolve_status

logger = logging.getLogger(__name__)

# Update fields that may be cleared by sending an explicit null
NULLABLE_UPDATE_FIELDS = {"pass_marks_percentage", "instructions", "location"}

# Fields whose change requires a duplicate-name check
NAME_KEY_FIELDS = {"name", "class_id", "subject_id"}


class ExamScheduler:
    """Exam scheduling and grading configuration service.

    Every write goes through the same pipeline: reference checks, duplicate
    name guard, marks reconciliation, grading validation, time window checks,
    batch lock plus overlap detection, then status resolution. The first
    failing step raises and nothing is written.
    """

    def __init__(
        self,
        repository: ExamRepository,
        references: ReferenceValidator,
        clock: Callable[[], datetime] = utc_now,
        exam_tz: ZoneInfo | None = None,
        enforce_exam_date_match: bool | None = None,
    ):
        self.repository = repository
        self.references = references
        self.overlap = OverlapDetector(repository)
        self.clock = clock
        self.exam_tz = exam_tz or settings.exam_tz
        if enforce_exam_date_match is None:
            enforce_exam_date_match = settings.ENFORCE_EXAM_DATE_MATCH
        self.enforce_exam_date_match = enforce_exam_date_match

    @classmethod
    def for_session(cls, db: Session, **kwargs: Any) -> "ExamScheduler":
        """Build a scheduler wired to SQL collaborators on one session."""
        return cls(SqlExamRepository(db), SqlReferenceValidator(db), **kwargs)

    # ==========================================
    # Create / Update
    # ==========================================

    def create(self, request: ExamCreate, created_by: int) -> Exam:
        """Validate and persist a new exam."""
        self._check_references(
            class_id=request.class_id,
            subject_id=request.subject_id,
            category_id=request.category_id,
            batch_ids=request.batch_ids,
        )
        self._check_duplicate_name(request.name, request.class_id, request.subject_id)

        candidate = ExamCandidate.model_validate(request.model_dump())
        candidate = self._prepare(candidate, exclude_id=None)

        exam = self.repository.insert(candidate, created_by)
        logger.info(
            f"Exam {exam.id} '{exam.name}' created for batches {exam.batch_ids} "
            f"with status {exam.status.value}"
        )
        return exam

    def update(self, exam_id: int, request: ExamUpdate, updated_by: int | None = None) -> Exam:
        """Merge a partial update onto an exam and revalidate the result."""
        exam = self.get_record(exam_id, for_update=True)

        changes = {
            field: value
            for field, value in request.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_UPDATE_FIELDS
        }

        self._check_references(
            class_id=changes.get("class_id"),
            subject_id=changes.get("subject_id"),
            category_id=changes.get("category_id"),
            batch_ids=changes.get("batch_ids"),
        )

        candidate = self._merge(exam, changes)

        if NAME_KEY_FIELDS.intersection(changes):
            self._check_duplicate_name(
                candidate.name,
                candidate.class_id,
                candidate.subject_id,
                exclude_id=exam.id,
            )

        candidate = self._prepare(candidate, exclude_id=exam.id)

        updated = self.repository.update(exam.id, candidate, updated_by)
        logger.info(
            f"Exam {updated.id} updated (fields: {sorted(changes)}), status {updated.status.value}"
        )
        return updated

    # ==========================================
    # Lifecycle
    # ==========================================

    def get_record(self, exam_id: int, for_update: bool = False) -> Exam:
        """Get exam by ID without touching its status.

        Write paths pass ``for_update`` to lock the row and read its latest
        committed state.
        """
        exam = self.repository.find_by_id(exam_id, for_update=for_update)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))
        return exam

    def get(self, exam_id: int) -> Exam:
        """Get exam by ID with its status brought up to date."""
        exam = self.get_record(exam_id)
        self._refresh_status(exam, self.clock())
        return exam

    def upcoming(self, limit: int = 10) -> list[Exam]:
        """Active draft or scheduled exams that have not started yet, soonest first."""
        return self.repository.find_upcoming(self.clock(), limit)

    def for_class_and_subject(self, class_id: int, subject_id: int) -> list[Exam]:
        """Active exams of one class/subject pair by date, statuses brought up to date."""
        now = self.clock()
        exams = self.repository.find_by_class_and_subject(class_id, subject_id)
        for exam in exams:
            self._refresh_status(exam, now)
        return exams

    def set_status(self, exam_id: int, status: ExamStatus, updated_by: int | None = None) -> Exam:
        """Apply a manually requested status.

        Only cancellation sticks. Any other request is recomputed from the
        time window, and a cancelled exam stays cancelled.
        """
        exam = self.get_record(exam_id, for_update=True)
        requested = ExamStatus.CANCELLED if status == ExamStatus.CANCELLED else exam.status
        resolved = resolve_status(requested, exam.start_time, exam.end_time, self.clock())
        if resolved != status:
            logger.info(
                f"Exam {exam.id}: requested status {status.value} resolved to {resolved.value}"
            )
        return self.repository.save_status(exam, resolved, updated_by)

    def toggle_active(self, exam_id: int, updated_by: int | None = None) -> Exam:
        """Flip the exam's soft-enable flag."""
        exam = self.get_record(exam_id, for_update=True)
        return self.repository.save_active(exam, not exam.is_active, updated_by)

    def delete(self, exam_id: int) -> None:
        """Hard-delete an exam."""
        exam = self.get_record(exam_id, for_update=True)
        self.repository.delete(exam)
        logger.info(f"Exam {exam_id} deleted")

    def refresh_statuses(self) -> int:
        """Re-resolve every exam whose status can still move; return how many changed."""
        now = self.clock()
        changed = 0
        for exam in self.repository.find_refreshable():
            if self._refresh_status(exam, now):
                changed += 1
        return changed

    # ==========================================
    # Responses
    # ==========================================

    def to_response(self, exam: Exam) -> ExamResponse:
        """Convert an Exam to its response schema with time-derived fields."""
        now = self.clock()
        exam_day_start = datetime.combine(exam.exam_date, time.min, tzinfo=self.exam_tz)
        days_remaining = math.ceil((exam_day_start - now).total_seconds() / 86400)

        return ExamResponse(
            id=exam.id,
            name=exam.name,
            topic=exam.topic,
            academic_class=make_reference(exam.class_id, exam.academic_class),
            subject=make_reference(exam.subject_id, exam.subject),
            category=make_reference(exam.category_id, exam.category),
            batches=[make_reference(batch.id, batch) for batch in exam.batches],
            exam_date=exam.exam_date,
            start_time=exam.start_time,
            end_time=exam.end_time,
            total_marks=exam.total_marks,
            mark_components=[MarkComponent.model_validate(c) for c in exam.mark_components],
            grading_enabled=exam.grading_enabled,
            grade_bands=[GradeBand.model_validate(b) for b in exam.grade_bands],
            pass_marks_percentage=exam.pass_marks_percentage,
            status=exam.status,
            is_active=exam.is_active,
            show_marks_in_result=exam.show_marks_in_result,
            instructions=exam.instructions,
            location=exam.location,
            created_by=exam.created_by,
            updated_by=exam.updated_by,
            created_at=exam.created_at,
            updated_at=exam.updated_at,
            duration_minutes=round((exam.end_time - exam.start_time).total_seconds() / 60),
            days_remaining=max(days_remaining, 0),
            is_upcoming=exam.start_time > now,
            is_ongoing=exam.start_time <= now <= exam.end_time,
            is_completed=exam.end_time < now,
        )

    # ==========================================
    # Validation pipeline
    # ==========================================

    def _prepare(self, candidate: ExamCandidate, exclude_id: int | None) -> ExamCandidate:
        """Run marks, grading, window, overlap and status rules on a candidate."""
        total_marks = reconcile_total_marks(candidate.total_marks, candidate.mark_components)

        grade_bands = candidate.grade_bands
        if candidate.grading_enabled:
            grade_bands = validate_grading(
                True,
                candidate.grade_bands,
                candidate.pass_marks_percentage,
            )

        self._validate_time_window(candidate)

        # A cancelled exam books nothing, so it cannot conflict
        if candidate.status != ExamStatus.CANCELLED:
            self.repository.lock_batches(candidate.batch_ids)
            conflict_id = self.overlap.find_conflict(
                exclude_id,
                candidate.batch_ids,
                candidate.start_time,
                candidate.end_time,
            )
            if conflict_id is not None:
                logger.warning(
                    f"Rejected window {candidate.start_time} - {candidate.end_time} for "
                    f"batches {candidate.batch_ids}: conflicts with exam {conflict_id}"
                )
                raise OverlapConflictError(conflict_id)

        status = resolve_status(
            candidate.status,
            candidate.start_time,
            candidate.end_time,
            self.clock(),
        )

        return candidate.model_copy(
            update={
                "total_marks": total_marks,
                "grade_bands": grade_bands,
                "status": status,
            }
        )

    def _validate_time_window(self, candidate: ExamCandidate) -> None:
        if candidate.start_time >= candidate.end_time:
            raise ValidationError(
                "Start time must be before end time",
                {
                    "start_time": candidate.start_time.isoformat(),
                    "end_time": candidate.end_time.isoformat(),
                },
            )
        if self.enforce_exam_date_match:
            start_date = candidate.start_time.astimezone(self.exam_tz).date()
            if start_date != candidate.exam_date:
                raise ValidationError(
                    "Exam date must match the start time date",
                    {
                        "exam_date": candidate.exam_date.isoformat(),
                        "start_date": start_date.isoformat(),
                    },
                )

    def _check_references(
        self,
        class_id: int | None = None,
        subject_id: int | None = None,
        category_id: int | None = None,
        batch_ids: list[int] | None = None,
    ) -> None:
        """Confirm each supplied foreign id exists; absent ones are skipped."""
        checks = [
            ("class_id", ReferenceKind.CLASS, class_id),
            ("subject_id", ReferenceKind.SUBJECT, subject_id),
            ("category_id", ReferenceKind.CATEGORY, category_id),
        ]
        for field, kind, ref_id in checks:
            if ref_id is not None and not self.references.exists(kind, ref_id):
                raise ReferenceNotFoundError(field, ref_id)

        for batch_id in batch_ids or []:
            if not self.references.exists(ReferenceKind.BATCH, batch_id):
                raise ReferenceNotFoundError("batch_ids", batch_id)

    def _check_duplicate_name(
        self,
        name: str,
        class_id: int,
        subject_id: int,
        exclude_id: int | None = None,
    ) -> None:
        existing = self.repository.find_duplicate_name(name, class_id, subject_id, exclude_id)
        if existing:
            raise DuplicateExamError(name, class_id, subject_id)

    def _merge(self, exam: Exam, changes: dict[str, Any]) -> ExamCandidate:
        """Overlay update fields on the stored exam to get the full candidate."""
        current = {
            "name": exam.name,
            "topic": exam.topic,
            "class_id": exam.class_id,
            "subject_id": exam.subject_id,
            "category_id": exam.category_id,
            "batch_ids": exam.batch_ids,
            "exam_date": exam.exam_date,
            "start_time": exam.start_time,
            "end_time": exam.end_time,
            "total_marks": exam.total_marks,
            "mark_components": [MarkComponent.model_validate(c) for c in exam.mark_components],
            "grading_enabled": exam.grading_enabled,
            "grade_bands": [GradeBand.model_validate(b) for b in exam.grade_bands],
            "pass_marks_percentage": exam.pass_marks_percentage,
            "status": exam.status,
            "is_active": exam.is_active,
            "show_marks_in_result": exam.show_marks_in_result,
            "instructions": exam.instructions,
            "location": exam.location,
        }

        merged = {**current, **changes}
        # Status from the caller is advisory except for cancellation
        if changes.get("status") != ExamStatus.CANCELLED:
            merged["status"] = exam.status
        return ExamCandidate.model_validate(merged)

    def _refresh_status(self, exam: Exam, now: datetime) -> bool:
        previous = exam.status
        resolved = resolve_status(previous, exam.start_time, exam.end_time, now)
        if resolved == previous:
            return False
        # save_status reloads the exam; a concurrent cancellation wins
        if self.repository.save_status(exam, resolved).status != resolved:
            return False
        logger.info(f"Exam {exam.id} status {previous.value} -> {resolved.value}")
        return True
