"""Custom exception classes and error handling."""

from typing import Any


class AppException(Exception):
    """Base application exception.

    Carries a stable machine-readable ``code`` plus a human readable message.
    Mapping to transport status codes happens in ``exam_scheduler.main``.
    """

    code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            },
        }


class ValidationError(AppException):
    """Data validation failed."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class ReferenceNotFoundError(AppException):
    """A referenced class, subject, batch or category does not exist."""

    code = "REFERENCE_NOT_FOUND"

    def __init__(self, field: str, identifier: Any):
        self.field = field
        self.identifier = identifier
        super().__init__(
            f"Invalid {field}: {identifier} does not exist",
            {"field": field, "identifier": str(identifier)},
        )


class DuplicateExamError(AppException):
    """An exam with the same name already exists for the class and subject."""

    code = "DUPLICATE_EXAM"

    def __init__(self, name: str, class_id: int, subject_id: int):
        super().__init__(
            "Exam with this name already exists for this class and subject",
            {"name": name, "class_id": class_id, "subject_id": subject_id},
        )


class GradingConfigError(AppException):
    """Grading scheme is missing, inconsistent or does not cover 0-100%."""

    code = "GRADING_CONFIG_ERROR"

    def __init__(
        self,
        message: str = "Invalid grading configuration",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class OverlapConflictError(AppException):
    """Proposed window collides with another exam on a shared batch."""

    code = "OVERLAP_CONFLICT"

    def __init__(self, conflicting_exam_id: int):
        self.conflicting_exam_id = conflicting_exam_id
        super().__init__(
            "Exam overlaps with existing exam for selected batches",
            {"conflicting_exam_id": conflicting_exam_id},
        )


class NotFoundError(AppException):
    """Resource not found."""

    code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
    ):
        details = {}
        if identifier:
            details["identifier"] = identifier
        super().__init__(f"{resource} not found", details)
