"""Exam scheduling endpoints."""

from fastapi import APIRouter, Query, status

from exam_scheduler.core.dependencies import CurrentUserId, Scheduler
from exam_scheduler.schemas.common import ErrorResponse
from exam_scheduler.schemas.exam import (
    ExamCreate,
    ExamResponse,
    ExamStatusUpdate,
    ExamUpdate,
)

router = APIRouter()

ERROR_RESPONSES = {
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=ExamResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def create_exam(
    request: ExamCreate,
    scheduler: Scheduler,
    user_id: CurrentUserId,
):
    """
    Create an exam.
    Rejects unknown references, duplicate names for the class/subject pair,
    invalid grading schemes and windows that double-book a batch.
    Total marks are recomputed from the marks breakdown when one is given.
    """
    exam = scheduler.create(request, created_by=user_id)
    return scheduler.to_response(exam)


@router.get("/upcoming", response_model=list[ExamResponse])
def list_upcoming_exams(
    scheduler: Scheduler,
    limit: int = Query(10, ge=1, le=100),
):
    """Active draft or scheduled exams that have not started yet, soonest first."""
    return [scheduler.to_response(exam) for exam in scheduler.upcoming(limit)]


@router.get(
    "/class/{class_id}/subject/{subject_id}",
    response_model=list[ExamResponse],
)
def list_exams_for_class_and_subject(
    class_id: int,
    subject_id: int,
    scheduler: Scheduler,
):
    """Active exams for a class and subject, ordered by exam date."""
    exams = scheduler.for_class_and_subject(class_id, subject_id)
    return [scheduler.to_response(exam) for exam in exams]


@router.get("/{exam_id}", response_model=ExamResponse, responses=ERROR_RESPONSES)
def get_exam(exam_id: int, scheduler: Scheduler):
    """Get an exam by ID. Status is brought up to date on read."""
    exam = scheduler.get(exam_id)
    return scheduler.to_response(exam)


@router.patch("/{exam_id}", response_model=ExamResponse, responses=ERROR_RESPONSES)
def update_exam(
    exam_id: int,
    request: ExamUpdate,
    scheduler: Scheduler,
    user_id: CurrentUserId,
):
    """
    Update an exam.
    Only sent fields change, but the merged exam is revalidated as a whole,
    including overlap detection against other exams.
    """
    exam = scheduler.update(exam_id, request, updated_by=user_id)
    return scheduler.to_response(exam)


@router.patch("/{exam_id}/status", response_model=ExamResponse, responses=ERROR_RESPONSES)
def update_exam_status(
    exam_id: int,
    request: ExamStatusUpdate,
    scheduler: Scheduler,
    user_id: CurrentUserId,
):
    """
    Change an exam's status.
    Only 'cancelled' is kept as sent; other values are recomputed from the
    exam's time window.
    """
    exam = scheduler.set_status(exam_id, request.status, updated_by=user_id)
    return scheduler.to_response(exam)


@router.patch("/{exam_id}/toggle-active", response_model=ExamResponse, responses=ERROR_RESPONSES)
def toggle_exam_active(
    exam_id: int,
    scheduler: Scheduler,
    user_id: CurrentUserId,
):
    """Toggle the exam's active flag."""
    exam = scheduler.toggle_active(exam_id, updated_by=user_id)
    return scheduler.to_response(exam)


@router.delete(
    "/{exam_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
def delete_exam(exam_id: int, scheduler: Scheduler, user_id: CurrentUserId):
    """Delete an exam."""
    scheduler.delete(exam_id)
