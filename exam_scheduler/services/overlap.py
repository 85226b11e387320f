"""Batch double-booking detection."""

import logging
from collections.abc import Iterable
from datetime import datetime

from exam_scheduler.models.exam import ExamStatus
from exam_scheduler.repositories.exam import ExamRepository

logger = logging.getLogger(__name__)


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Strict intersection test for two time windows.

    Windows that only touch (one ends exactly when the other starts) do not
    overlap.
    """
    return start_a < end_b and start_b < end_a


class OverlapDetector:
    """Finds a non-cancelled exam that books a shared batch in the same window."""

    def __init__(self, repository: ExamRepository):
        self.repository = repository

    def find_conflict(
        self,
        exclude_id: int | None,
        batch_ids: Iterable[int],
        start_time: datetime,
        end_time: datetime,
    ) -> int | None:
        """Return the id of the first conflicting exam, or None."""
        batch_ids = list(batch_ids)
        candidates = self.repository.find_conflicting(exclude_id, batch_ids, start_time, end_time)
        wanted = set(batch_ids)
        for summary in candidates:
            if summary.id == exclude_id or summary.status == ExamStatus.CANCELLED:
                continue
            if not wanted.intersection(summary.batch_ids):
                continue
            if windows_overlap(start_time, end_time, summary.start_time, summary.end_time):
                logger.debug(f"Exam {summary.id} conflicts with window {start_time} - {end_time}")
                return summary.id
        return None
