"""Exam lifecycle status derivation."""

from datetime import datetime

from exam_scheduler.models.exam import ExamStatus


def resolve_status(
    current: ExamStatus,
    start_time: datetime | None,
    end_time: datetime | None,
    now: datetime,
) -> ExamStatus:
    """Derive an exam's status from its time window and ``now``.

    Cancelled is terminal and never overridden. Without a complete window the
    current status stands, which is how a draft stays a draft. Otherwise:
    before start is scheduled, within [start, end] is ongoing, after end is
    completed.
    """
    if current == ExamStatus.CANCELLED:
        return ExamStatus.CANCELLED
    if start_time is None or end_time is None:
        return current
    if start_time > now:
        return ExamStatus.SCHEDULED
    if start_time <= now <= end_time:
        return ExamStatus.ONGOING
    return ExamStatus.COMPLETED
