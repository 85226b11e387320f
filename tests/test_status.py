from datetime import datetime, timedelta, timezone

import pytest

from exam_scheduler.models.exam import ExamStatus
from exam_scheduler.services.status import resolve_status

START = datetime(2024, 12, 21, 9, 0, tzinfo=timezone.utc)
END = datetime(2024, 12, 21, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "now, expected",
    [
        (START - timedelta(days=1), ExamStatus.SCHEDULED),
        (START, ExamStatus.ONGOING),
        (START + timedelta(minutes=30), ExamStatus.ONGOING),
        (END, ExamStatus.ONGOING),
        (END + timedelta(seconds=1), ExamStatus.COMPLETED),
    ],
)
def test_status_follows_the_window(now, expected):
    assert resolve_status(ExamStatus.DRAFT, START, END, now) == expected


def test_cancelled_is_never_overridden():
    for now in (START - timedelta(days=1), START, END + timedelta(days=1)):
        assert resolve_status(ExamStatus.CANCELLED, START, END, now) == ExamStatus.CANCELLED


def test_completed_exam_moved_back_to_scheduled():
    now = datetime(2024, 12, 20, 8, 0, tzinfo=timezone.utc)
    assert resolve_status(ExamStatus.COMPLETED, START, END, now) == ExamStatus.SCHEDULED


def test_missing_window_keeps_current_status():
    now = datetime(2024, 12, 20, 8, 0, tzinfo=timezone.utc)
    assert resolve_status(ExamStatus.DRAFT, None, END, now) == ExamStatus.DRAFT
    assert resolve_status(ExamStatus.DRAFT, START, None, now) == ExamStatus.DRAFT


def test_same_inputs_same_output():
    now = START + timedelta(minutes=5)
    results = {resolve_status(ExamStatus.SCHEDULED, START, END, now) for _ in range(3)}
    assert results == {ExamStatus.ONGOING}
