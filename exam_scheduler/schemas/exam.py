"""Exam schemas."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import Field, field_validator, model_validator

from exam_scheduler.models.exam import ExamStatus
from exam_scheduler.schemas.common import BaseSchema, TimestampSchema


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize an instant to UTC; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def unique_ids(values: list[int] | None) -> list[int] | None:
    """Drop repeated ids, keeping first-seen order."""
    if values is None:
        return None
    return list(dict.fromkeys(values))


# ==========================================
# Marks & Grading
# ==========================================

class MarkComponent(BaseSchema):
    """Itemized part of the exam's marks."""

    title: str = Field(..., min_length=1, max_length=100, examples=["MCQ"])
    marks: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    pass_marks: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def validate_pass_marks(self) -> "MarkComponent":
        if self.pass_marks is not None and self.pass_marks > self.marks:
            raise ValueError(
                f"pass_marks ({self.pass_marks}) exceeds marks ({self.marks}) for '{self.title}'"
            )
        return self


class GradeBand(BaseSchema):
    """Percentage range mapped to a grade label."""

    label: str = Field(..., min_length=1, max_length=20, examples=["A+"])
    description: str | None = Field(None, max_length=255)
    min_percentage: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    max_percentage: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    points: Decimal | None = Field(
        None, ge=0, max_digits=4, decimal_places=2, description="Grade point for GPA systems"
    )


# ==========================================
# Exam Requests
# ==========================================

class ExamCreate(BaseSchema):
    """Exam creation schema."""

    name: str = Field(..., min_length=1, max_length=200)
    topic: str = Field(..., min_length=1, max_length=255)
    class_id: int
    subject_id: int
    category_id: int
    batch_ids: list[int] = Field(..., min_length=1)
    exam_date: date
    start_time: datetime
    end_time: datetime
    total_marks: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    mark_components: list[MarkComponent] = []
    grading_enabled: bool = False
    grade_bands: list[GradeBand] = []
    pass_marks_percentage: Decimal | None = Field(None, ge=0, le=100, decimal_places=2)
    is_active: bool = True
    show_marks_in_result: bool = True
    instructions: str | None = None
    location: str | None = Field(None, max_length=255)

    @field_validator("batch_ids")
    @classmethod
    def dedupe_batches(cls, v: list[int]) -> list[int]:
        return unique_ids(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def validate_window(self) -> "ExamCreate":
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class ExamUpdate(BaseSchema):
    """Exam update schema. Only fields that are sent are applied."""

    name: str | None = Field(None, min_length=1, max_length=200)
    topic: str | None = Field(None, min_length=1, max_length=255)
    class_id: int | None = None
    subject_id: int | None = None
    category_id: int | None = None
    batch_ids: list[int] | None = Field(None, min_length=1)
    exam_date: date | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    total_marks: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    mark_components: list[MarkComponent] | None = None
    grading_enabled: bool | None = None
    grade_bands: list[GradeBand] | None = None
    pass_marks_percentage: Decimal | None = Field(None, ge=0, le=100, decimal_places=2)
    status: ExamStatus | None = Field(
        None,
        description="Only 'cancelled' is kept; any other value is recomputed from the time window",
    )
    is_active: bool | None = None
    show_marks_in_result: bool | None = None
    instructions: str | None = None
    location: str | None = Field(None, max_length=255)

    @field_validator("batch_ids")
    @classmethod
    def dedupe_batches(cls, v: list[int] | None) -> list[int] | None:
        return unique_ids(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class ExamStatusUpdate(BaseSchema):
    """Manual status change request."""

    status: ExamStatus


class ExamCandidate(BaseSchema):
    """Complete exam state about to be written.

    Built from a create request, or from an existing exam merged with an
    update request, and revalidated as a whole before every write.
    """

    name: str
    topic: str
    class_id: int
    subject_id: int
    category_id: int
    batch_ids: list[int]
    exam_date: date
    start_time: datetime
    end_time: datetime
    total_marks: Decimal = Decimal("0")
    mark_components: list[MarkComponent] = []
    grading_enabled: bool = False
    grade_bands: list[GradeBand] = []
    pass_marks_percentage: Decimal | None = None
    status: ExamStatus = ExamStatus.DRAFT
    is_active: bool = True
    show_marks_in_result: bool = True
    instructions: str | None = None
    location: str | None = None


class ExamSummary(BaseSchema):
    """Minimal view of an exam used for conflict reporting."""

    id: int
    name: str
    start_time: datetime
    end_time: datetime
    status: ExamStatus
    batch_ids: list[int]


# ==========================================
# References
# ==========================================

class UnresolvedReference(BaseSchema):
    """Foreign id whose target row was not loaded."""

    kind: Literal["unresolved"] = "unresolved"
    id: int


class ResolvedReference(BaseSchema):
    """Foreign id together with the display name of its target row."""

    kind: Literal["resolved"] = "resolved"
    id: int
    name: str


Reference = Annotated[
    Union[ResolvedReference, UnresolvedReference],
    Field(discriminator="kind"),
]


def make_reference(ref_id: int, row: Any | None) -> ResolvedReference | UnresolvedReference:
    """Pick the reference variant from whether the target row was loaded."""
    if row is None:
        return UnresolvedReference(id=ref_id)
    return ResolvedReference(id=ref_id, name=row.name)


# ==========================================
# Exam Responses
# ==========================================

class ExamResponse(TimestampSchema):
    """Exam response schema."""

    id: int
    name: str
    topic: str
    academic_class: Reference
    subject: Reference
    category: Reference
    batches: list[Reference]
    exam_date: date
    start_time: datetime
    end_time: datetime
    total_marks: Decimal
    mark_components: list[MarkComponent]
    grading_enabled: bool
    grade_bands: list[GradeBand]
    pass_marks_percentage: Decimal | None
    status: ExamStatus
    is_active: bool
    show_marks_in_result: bool
    instructions: str | None
    location: str | None
    created_by: int
    updated_by: int | None

    # Derived against the same instant used for status resolution
    duration_minutes: int
    days_remaining: int
    is_upcoming: bool
    is_ongoing: bool
    is_completed: bool
