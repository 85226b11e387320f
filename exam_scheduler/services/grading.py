"""Grading scheme validation."""

from collections.abc import Sequence
from decimal import Decimal

from exam_scheduler.core.exceptions import GradingConfigError
from exam_scheduler.schemas.exam import GradeBand

FULL_RANGE_MIN = Decimal("0")
FULL_RANGE_MAX = Decimal("100")


def validate_grading(
    enabled: bool,
    bands: Sequence[GradeBand],
    pass_marks_percentage: Decimal | None,
) -> list[GradeBand]:
    """Validate a grading scheme and return its bands in canonical order.

    Bands must be non-overlapping once sorted by ``min_percentage`` (adjacent
    values such as 59 and 60 are fine, a shared value is not) and must start
    at 0 and end at 100. The returned list is a sorted copy; the input is
    left untouched. When grading is disabled the bands are returned as given.
    """
    if not enabled:
        return list(bands)

    if not bands:
        raise GradingConfigError("bands required")

    if pass_marks_percentage is None or not (
        FULL_RANGE_MIN <= pass_marks_percentage <= FULL_RANGE_MAX
    ):
        raise GradingConfigError(
            "pass percentage required",
            {"pass_marks_percentage": None if pass_marks_percentage is None else str(pass_marks_percentage)},
        )

    ordered = sorted(bands, key=lambda band: band.min_percentage)

    for band in ordered:
        if band.min_percentage > band.max_percentage:
            raise GradingConfigError(
                f"Grade band '{band.label}' has min_percentage above max_percentage",
                {
                    "label": band.label,
                    "min_percentage": str(band.min_percentage),
                    "max_percentage": str(band.max_percentage),
                },
            )

    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max_percentage >= upper.min_percentage:
            raise GradingConfigError(
                "overlapping bands",
                {"bands": [lower.label, upper.label]},
            )

    if ordered[0].min_percentage != FULL_RANGE_MIN or ordered[-1].max_percentage != FULL_RANGE_MAX:
        raise GradingConfigError(
            "incomplete coverage",
            {
                "lowest_min_percentage": str(ordered[0].min_percentage),
                "highest_max_percentage": str(ordered[-1].max_percentage),
            },
        )

    return ordered
