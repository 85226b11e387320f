from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from exam_scheduler.core.exceptions import (
    DuplicateExamError,
    GradingConfigError,
    NotFoundError,
    OverlapConflictError,
    ReferenceNotFoundError,
    ValidationError,
)
from exam_scheduler.models.academic import Subject
from exam_scheduler.models.exam import ExamStatus
from exam_scheduler.repositories.exam import SqlExamRepository
from exam_scheduler.schemas.exam import ExamUpdate, ResolvedReference
from exam_scheduler.services.exam import ExamScheduler
from exam_scheduler.services.references import SqlReferenceValidator


def on_25th(hour, minute=0):
    return datetime(2024, 12, 25, hour, minute, tzinfo=timezone.utc)


def christmas_exam(make_request, name, batch_ids, start, end):
    return make_request(
        name=name,
        batch_ids=batch_ids,
        exam_date=date(2024, 12, 25),
        start_time=start,
        end_time=end,
    )


class SpyRepository:
    """Delegates to a real repository and records call order."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if callable(attr):
            def wrapper(*args, **kwargs):
                self.calls.append(name)
                return attr(*args, **kwargs)
            return wrapper
        return attr


# ==========================================
# Create
# ==========================================

class TestCreate:
    def test_overlapping_window_on_shared_batch_is_rejected(self, scheduler, make_request, refs):
        first = scheduler.create(
            christmas_exam(make_request, "E1", [refs.batch_a], on_25th(9), on_25th(12)),
            created_by=1,
        )

        with pytest.raises(OverlapConflictError) as exc:
            scheduler.create(
                christmas_exam(make_request, "E2", [refs.batch_a], on_25th(11), on_25th(13)),
                created_by=1,
            )

        assert exc.value.conflicting_exam_id == first.id
        assert exc.value.message == "Exam overlaps with existing exam for selected batches"

    def test_disjoint_batch_is_accepted(self, scheduler, make_request, refs):
        scheduler.create(
            christmas_exam(make_request, "E1", [refs.batch_a], on_25th(9), on_25th(12)),
            created_by=1,
        )
        second = scheduler.create(
            christmas_exam(make_request, "E2", [refs.batch_b], on_25th(11), on_25th(13)),
            created_by=1,
        )

        assert second.batch_ids == [refs.batch_b]

    def test_touching_windows_are_accepted(self, scheduler, make_request, refs):
        scheduler.create(
            christmas_exam(make_request, "E1", [refs.batch_a], on_25th(9), on_25th(12)),
            created_by=1,
        )
        scheduler.create(
            christmas_exam(make_request, "E2", [refs.batch_a], on_25th(12), on_25th(13)),
            created_by=1,
        )

    def test_cancelled_exam_does_not_block_its_window(self, scheduler, make_request, refs):
        first = scheduler.create(
            christmas_exam(make_request, "E1", [refs.batch_a], on_25th(9), on_25th(12)),
            created_by=1,
        )
        scheduler.set_status(first.id, ExamStatus.CANCELLED)

        scheduler.create(
            christmas_exam(make_request, "E2", [refs.batch_a], on_25th(10), on_25th(11)),
            created_by=1,
        )

    def test_components_override_caller_total(self, scheduler, make_request):
        exam = scheduler.create(
            make_request(
                total_marks=1000,
                mark_components=[
                    {"title": "MCQ", "marks": 20},
                    {"title": "Written", "marks": 30},
                ],
            ),
            created_by=1,
        )

        assert exam.total_marks == Decimal("50")

    def test_grade_bands_stored_ascending(self, scheduler, make_request):
        exam = scheduler.create(
            make_request(
                grading_enabled=True,
                pass_marks_percentage=40,
                grade_bands=[
                    {"label": "A", "min_percentage": 80, "max_percentage": 100},
                    {"label": "B", "min_percentage": 60, "max_percentage": 79},
                    {"label": "C", "min_percentage": 0, "max_percentage": 59},
                ],
            ),
            created_by=1,
        )

        assert [b.label for b in exam.grade_bands] == ["C", "B", "A"]

    def test_invalid_grading_writes_nothing(self, scheduler, make_request, db):
        with pytest.raises(GradingConfigError):
            scheduler.create(
                make_request(
                    grading_enabled=True,
                    pass_marks_percentage=40,
                    grade_bands=[
                        {"label": "A", "min_percentage": 50, "max_percentage": 100},
                        {"label": "B", "min_percentage": 0, "max_percentage": 60},
                    ],
                ),
                created_by=1,
            )

        assert SqlExamRepository(db).find_refreshable() == []

    def test_future_exam_is_scheduled(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=7)

        assert exam.status == ExamStatus.SCHEDULED
        assert exam.created_by == 7

    def test_unknown_references(self, scheduler, make_request, refs):
        with pytest.raises(ReferenceNotFoundError) as exc:
            scheduler.create(make_request(class_id=999), created_by=1)
        assert exc.value.field == "class_id"

        with pytest.raises(ReferenceNotFoundError) as exc:
            scheduler.create(make_request(batch_ids=[refs.batch_a, 999]), created_by=1)
        assert exc.value.field == "batch_ids"
        assert exc.value.identifier == 999

    def test_duplicate_name_for_class_and_subject(self, scheduler, make_request, refs):
        scheduler.create(make_request(), created_by=1)

        with pytest.raises(DuplicateExamError):
            scheduler.create(
                make_request(
                    batch_ids=[refs.batch_b],
                    exam_date=date(2024, 12, 22),
                    start_time=datetime(2024, 12, 22, 9, tzinfo=timezone.utc),
                    end_time=datetime(2024, 12, 22, 10, tzinfo=timezone.utc),
                ),
                created_by=1,
            )

    def test_exam_date_must_match_start(self, scheduler, make_request):
        with pytest.raises(ValidationError, match="Exam date must match"):
            scheduler.create(make_request(exam_date=date(2024, 12, 22)), created_by=1)

    def test_exam_date_checked_in_configured_timezone(self, db, clock, make_request):
        # 2024-12-21 20:00 UTC is already the 22nd in Dhaka (UTC+6)
        scheduler = ExamScheduler.for_session(db, clock=clock, exam_tz=ZoneInfo("Asia/Dhaka"))
        exam = scheduler.create(
            make_request(
                exam_date=date(2024, 12, 22),
                start_time=datetime(2024, 12, 21, 20, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 21, 21, tzinfo=timezone.utc),
            ),
            created_by=1,
        )

        assert exam.exam_date == date(2024, 12, 22)

    def test_date_match_can_be_disabled(self, db, clock, make_request):
        scheduler = ExamScheduler.for_session(db, clock=clock, enforce_exam_date_match=False)
        exam = scheduler.create(make_request(exam_date=date(2024, 12, 30)), created_by=1)

        assert exam.exam_date == date(2024, 12, 30)

    def test_batch_lock_taken_before_conflict_query(self, db, clock, make_request):
        repo = SpyRepository(SqlExamRepository(db))
        scheduler = ExamScheduler(repo, SqlReferenceValidator(db), clock=clock)

        scheduler.create(make_request(), created_by=1)

        assert repo.calls.index("lock_batches") < repo.calls.index("find_conflicting")
        assert repo.calls[-1] == "insert"


# ==========================================
# Update
# ==========================================

class TestUpdate:
    def test_partial_update_keeps_other_fields(self, scheduler, make_request):
        exam = scheduler.create(make_request(location="Hall 1"), created_by=1)

        updated = scheduler.update(exam.id, ExamUpdate(topic="Optics"), updated_by=2)

        assert updated.topic == "Optics"
        assert updated.location == "Hall 1"
        assert updated.updated_by == 2

    def test_moving_own_window_does_not_conflict_with_itself(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        updated = scheduler.update(
            exam.id,
            ExamUpdate(end_time=datetime(2024, 12, 21, 11, tzinfo=timezone.utc)),
        )

        assert updated.end_time == datetime(2024, 12, 21, 11, tzinfo=timezone.utc)

    def test_moving_into_another_exam_is_rejected(self, scheduler, make_request, refs):
        first = scheduler.create(make_request(name="Morning"), created_by=1)
        second = scheduler.create(
            make_request(
                name="Noon",
                start_time=datetime(2024, 12, 21, 12, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 21, 13, tzinfo=timezone.utc),
            ),
            created_by=1,
        )

        with pytest.raises(OverlapConflictError) as exc:
            scheduler.update(
                second.id,
                ExamUpdate(start_time=datetime(2024, 12, 21, 9, 30, tzinfo=timezone.utc)),
            )
        assert exc.value.conflicting_exam_id == first.id

    def test_adding_a_batch_rechecks_overlap(self, scheduler, make_request, refs):
        scheduler.create(make_request(name="A only"), created_by=1)
        other = scheduler.create(make_request(name="B only", batch_ids=[refs.batch_b]), created_by=1)

        with pytest.raises(OverlapConflictError):
            scheduler.update(other.id, ExamUpdate(batch_ids=[refs.batch_b, refs.batch_a]))

    def test_new_components_recompute_total(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        updated = scheduler.update(
            exam.id,
            ExamUpdate(mark_components=[{"title": "Lab", "marks": 25}, {"title": "Viva", "marks": 15}]),
        )

        assert updated.total_marks == Decimal("40")
        assert [c.title for c in updated.mark_components] == ["Lab", "Viva"]

    def test_enabling_grading_without_bands_fails(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        with pytest.raises(GradingConfigError, match="bands required"):
            scheduler.update(exam.id, ExamUpdate(grading_enabled=True, pass_marks_percentage=40))

    def test_start_after_end_after_merge(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        with pytest.raises(ValidationError, match="Start time must be before end time"):
            scheduler.update(
                exam.id,
                ExamUpdate(start_time=datetime(2024, 12, 21, 10, 30, tzinfo=timezone.utc)),
            )

    def test_rename_onto_existing_name(self, scheduler, make_request, refs):
        scheduler.create(make_request(name="Taken"), created_by=1)
        exam = scheduler.create(make_request(name="Free", batch_ids=[refs.batch_b]), created_by=1)

        with pytest.raises(DuplicateExamError):
            scheduler.update(exam.id, ExamUpdate(name="Taken"))

    def test_unknown_category(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        with pytest.raises(ReferenceNotFoundError):
            scheduler.update(exam.id, ExamUpdate(category_id=999))

    def test_explicit_null_clears_optional_text(self, scheduler, make_request):
        exam = scheduler.create(make_request(location="Hall 1"), created_by=1)

        updated = scheduler.update(exam.id, ExamUpdate(location=None))

        assert updated.location is None

    def test_requested_status_other_than_cancelled_is_recomputed(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        updated = scheduler.update(exam.id, ExamUpdate(status=ExamStatus.COMPLETED))

        assert updated.status == ExamStatus.SCHEDULED

    def test_cancel_through_update_is_sticky(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        scheduler.update(exam.id, ExamUpdate(status=ExamStatus.CANCELLED))
        updated = scheduler.update(exam.id, ExamUpdate(status=ExamStatus.SCHEDULED))

        assert updated.status == ExamStatus.CANCELLED

    def test_missing_exam(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.update(999, ExamUpdate(topic="x"))


# ==========================================
# Lifecycle
# ==========================================

class TestLifecycle:
    def test_get_advances_status_with_the_clock(self, scheduler, make_request, clock):
        exam = scheduler.create(make_request(), created_by=1)
        assert exam.status == ExamStatus.SCHEDULED

        clock.now = datetime(2024, 12, 21, 9, 30, tzinfo=timezone.utc)
        assert scheduler.get(exam.id).status == ExamStatus.ONGOING

        clock.advance(hours=2)
        assert scheduler.get(exam.id).status == ExamStatus.COMPLETED

    def test_set_status_only_keeps_cancelled(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        assert scheduler.set_status(exam.id, ExamStatus.ONGOING).status == ExamStatus.SCHEDULED
        assert scheduler.set_status(exam.id, ExamStatus.CANCELLED, updated_by=3).status == ExamStatus.CANCELLED
        assert scheduler.set_status(exam.id, ExamStatus.SCHEDULED).status == ExamStatus.CANCELLED

    def test_toggle_active(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        assert scheduler.toggle_active(exam.id, updated_by=4).is_active is False
        assert scheduler.toggle_active(exam.id).is_active is True

    def test_delete(self, scheduler, make_request):
        exam = scheduler.create(make_request(), created_by=1)

        scheduler.delete(exam.id)

        with pytest.raises(NotFoundError):
            scheduler.get(exam.id)

    def test_refresh_statuses_counts_changes(self, scheduler, make_request, refs, clock):
        scheduler.create(make_request(name="Tomorrow"), created_by=1)
        later = scheduler.create(
            make_request(
                name="Next week",
                batch_ids=[refs.batch_b],
                exam_date=date(2024, 12, 27),
                start_time=datetime(2024, 12, 27, 9, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 27, 10, tzinfo=timezone.utc),
            ),
            created_by=1,
        )

        clock.now = datetime(2024, 12, 22, 8, tzinfo=timezone.utc)

        assert scheduler.refresh_statuses() == 1
        assert scheduler.get_record(later.id).status == ExamStatus.SCHEDULED
        assert scheduler.refresh_statuses() == 0

    def test_to_response_derived_fields(self, scheduler, make_request, refs):
        exam = scheduler.create(make_request(), created_by=1)

        response = scheduler.to_response(exam)

        assert response.duration_minutes == 60
        assert response.days_remaining == 1
        assert response.is_upcoming is True
        assert response.is_ongoing is False
        assert response.is_completed is False
        assert response.academic_class == ResolvedReference(id=refs.class_id, name="Class 9")
        assert [b.name for b in response.batches] == ["Batch A"]


# ==========================================
# Lookups
# ==========================================

class TestLookups:
    def test_upcoming_lists_future_open_exams_soonest_first(self, scheduler, make_request, refs):
        next_week = scheduler.create(
            make_request(
                name="Next week",
                exam_date=date(2024, 12, 27),
                start_time=datetime(2024, 12, 27, 9, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 27, 10, tzinfo=timezone.utc),
            ),
            created_by=1,
        )
        tomorrow = scheduler.create(make_request(name="Tomorrow"), created_by=1)
        scheduler.create(
            make_request(
                name="Yesterday",
                exam_date=date(2024, 12, 19),
                start_time=datetime(2024, 12, 19, 9, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 19, 10, tzinfo=timezone.utc),
            ),
            created_by=1,
        )
        cancelled = scheduler.create(
            make_request(name="Cancelled", batch_ids=[refs.batch_b]), created_by=1
        )
        scheduler.set_status(cancelled.id, ExamStatus.CANCELLED)
        inactive = scheduler.create(
            make_request(
                name="Inactive",
                batch_ids=[refs.batch_b],
                start_time=datetime(2024, 12, 21, 11, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 21, 12, tzinfo=timezone.utc),
            ),
            created_by=1,
        )
        scheduler.toggle_active(inactive.id)

        assert [e.id for e in scheduler.upcoming()] == [tomorrow.id, next_week.id]
        assert [e.id for e in scheduler.upcoming(limit=1)] == [tomorrow.id]

    def test_upcoming_drops_exams_once_started(self, scheduler, make_request, clock):
        scheduler.create(make_request(), created_by=1)

        clock.now = datetime(2024, 12, 21, 9, 30, tzinfo=timezone.utc)

        assert scheduler.upcoming() == []

    def test_for_class_and_subject(self, db, scheduler, make_request, refs, clock):
        chemistry = Subject(name="Chemistry")
        db.add(chemistry)
        db.flush()

        later = scheduler.create(
            make_request(
                name="Final",
                exam_date=date(2024, 12, 27),
                start_time=datetime(2024, 12, 27, 9, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 27, 10, tzinfo=timezone.utc),
            ),
            created_by=1,
        )
        first = scheduler.create(make_request(name="Midterm"), created_by=1)
        scheduler.create(
            make_request(name="Other subject", subject_id=chemistry.id, batch_ids=[refs.batch_b]),
            created_by=1,
        )
        hidden = scheduler.create(
            make_request(
                name="Hidden",
                batch_ids=[refs.batch_b],
                exam_date=date(2024, 12, 28),
                start_time=datetime(2024, 12, 28, 9, tzinfo=timezone.utc),
                end_time=datetime(2024, 12, 28, 10, tzinfo=timezone.utc),
            ),
            created_by=1,
        )
        scheduler.toggle_active(hidden.id)

        clock.now = datetime(2024, 12, 21, 9, 30, tzinfo=timezone.utc)
        exams = scheduler.for_class_and_subject(refs.class_id, refs.subject_id)

        assert [e.id for e in exams] == [first.id, later.id]
        assert exams[0].status == ExamStatus.ONGOING
        assert scheduler.for_class_and_subject(refs.class_id, 999) == []
