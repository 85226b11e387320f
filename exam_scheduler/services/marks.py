"""Total-marks bookkeeping for an exam's marks breakdown."""

from collections.abc import Sequence
from decimal import Decimal

from exam_scheduler.core.exceptions import ValidationError
from exam_scheduler.schemas.exam import MarkComponent

# Largest value a DECIMAL(10, 2) total can hold
MAX_TOTAL_MARKS = Decimal("99999999.99")


def reconcile_total_marks(
    total_marks: Decimal,
    components: Sequence[MarkComponent],
) -> Decimal:
    """Return the total marks to store for an exam.

    With no components the caller's total stands. Otherwise the components
    are the more granular input and their sum replaces whatever total the
    caller sent. A sum too large to store raises ``ValidationError``.
    """
    if not components:
        return total_marks
    total = sum((component.marks for component in components), Decimal("0"))
    if total > MAX_TOTAL_MARKS:
        raise ValidationError(
            "Sum of mark components is too large",
            {"total_marks": str(total), "max_total_marks": str(MAX_TOTAL_MARKS)},
        )
    return total
