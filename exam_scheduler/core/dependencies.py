"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, Header

from exam_scheduler.core.database import DbSession
from exam_scheduler.services.exam import ExamScheduler


def get_current_user_id(
    x_user_id: Annotated[int, Header(description="Acting user, set by the auth gateway")],
) -> int:
    """Acting user id as forwarded by the upstream authentication layer."""
    return x_user_id


def get_exam_scheduler(db: DbSession) -> ExamScheduler:
    """Exam scheduler bound to the request's database session."""
    return ExamScheduler.for_session(db)


CurrentUserId = Annotated[int, Depends(get_current_user_id)]
Scheduler = Annotated[ExamScheduler, Depends(get_exam_scheduler)]
