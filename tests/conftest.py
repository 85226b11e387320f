"""Shared fixtures: in-memory SQLite database, seeded references, fixed clock."""

import os

# Must be set before exam_scheduler.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STATUS_REFRESH_ENABLED"] = "false"
os.environ["EXAM_TIMEZONE"] = "UTC"

from dataclasses import dataclass  # noqa: E402
from datetime import date, datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from exam_scheduler.core.database import Base, SessionLocal, engine  # noqa: E402
from exam_scheduler.core.dependencies import get_exam_scheduler  # noqa: E402
from exam_scheduler.main import app  # noqa: E402
from exam_scheduler.models import AcademicClass, Batch, ExamCategory, Subject  # noqa: E402
from exam_scheduler.schemas.exam import ExamCreate  # noqa: E402
from exam_scheduler.services.exam import ExamScheduler  # noqa: E402

NOW = datetime(2024, 12, 20, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class Refs:
    class_id: int
    subject_id: int
    category_id: int
    batch_a: int
    batch_b: int


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def refs(db) -> Refs:
    academic_class = AcademicClass(name="Class 9")
    subject = Subject(name="Physics", code="PHY")
    category = ExamCategory(name="Midterm")
    batch_a = Batch(name="Batch A", session_year="2024")
    batch_b = Batch(name="Batch B", session_year="2024")
    db.add_all([academic_class, subject, category, batch_a, batch_b])
    db.commit()
    return Refs(
        class_id=academic_class.id,
        subject_id=subject.id,
        category_id=category.id,
        batch_a=batch_a.id,
        batch_b=batch_b.id,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def scheduler(db, clock) -> ExamScheduler:
    return ExamScheduler.for_session(db, clock=clock)


@pytest.fixture
def make_request(refs):
    """Build an ExamCreate on 2024-12-21 09:00-10:00 UTC, overridable per field."""

    def _make(**overrides) -> ExamCreate:
        data = {
            "name": "Physics Midterm",
            "topic": "Mechanics",
            "class_id": refs.class_id,
            "subject_id": refs.subject_id,
            "category_id": refs.category_id,
            "batch_ids": [refs.batch_a],
            "exam_date": date(2024, 12, 21),
            "start_time": datetime(2024, 12, 21, 9, 0, tzinfo=timezone.utc),
            "end_time": datetime(2024, 12, 21, 10, 0, tzinfo=timezone.utc),
            "total_marks": 100,
        }
        data.update(overrides)
        return ExamCreate(**data)

    return _make


@pytest.fixture
def client(db, clock):
    app.dependency_overrides[get_exam_scheduler] = lambda: ExamScheduler.for_session(db, clock=clock)
    # Not used as a context manager, so the lifespan (and its scheduler) never starts
    yield TestClient(app)
    app.dependency_overrides.clear()
