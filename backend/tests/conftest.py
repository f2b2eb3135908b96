"""
Shared fixtures: a fresh in-memory SQLite database per test, a tutor with
one family of two students, and a TestClient bound to the same session.
"""

import os

os.environ.setdefault("IS_TESTING", "true")

from datetime import datetime  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Optional  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from tutordesk.api.dependencies.database import get_db  # noqa: E402
from tutordesk.core.enums import LessonStatus  # noqa: E402
from tutordesk.database import Base, build_engine  # noqa: E402
import tutordesk.models  # noqa: E402,F401
from tutordesk.models import Lesson, LessonSession, Parent, Student, TutorSettings  # noqa: E402

from tests._utils.clock import local_utc  # noqa: E402

TUTOR_ID = "01TUTOR00000000000000000AA"


@pytest.fixture
def engine():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tutor_id() -> str:
    return TUTOR_ID


@pytest.fixture
def family(db, tutor_id):
    """A parent with two students, Ava and Ben."""
    parent = Parent(tutor_id=tutor_id, name="Rivera", email="rivera@example.com")
    db.add(parent)
    db.flush()
    ava = Student(parent_id=parent.id, name="Ava Rivera")
    ben = Student(parent_id=parent.id, name="Ben Rivera")
    db.add_all([ava, ben])
    db.commit()
    return parent, ava, ben


@pytest.fixture
def math_rates(db, tutor_id):
    """Math at $35 per 30 minutes, piano $30/30min, reading $50/60min."""
    row = TutorSettings(
        tutor_id=tutor_id,
        default_rate=Decimal("45"),
        default_base_duration=60,
        subject_rates={
            "math": {"rate": 35, "base_duration": 30},
            "piano": {"rate": 30, "base_duration": 30},
            "reading": {"rate": 50, "base_duration": 60},
        },
        combined_session_rate=Decimal("40"),
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def make_lesson(db, tutor_id):
    def _make(
        student: Student,
        subject: str = "math",
        scheduled_at: Optional[datetime] = None,
        duration_min: int = 60,
        status: LessonStatus = LessonStatus.SCHEDULED,
        session: Optional[LessonSession] = None,
        override_amount: Optional[Decimal] = None,
    ) -> Lesson:
        lesson = Lesson(
            tutor_id=tutor_id,
            student_id=student.id,
            subject=subject,
            scheduled_at=scheduled_at or local_utc(2026, 4, 14),
            duration_min=duration_min,
            status=status.value,
            session_id=session.id if session else None,
            override_amount=override_amount,
        )
        db.add(lesson)
        db.commit()
        return lesson

    return _make


@pytest.fixture
def client(db):
    from tutordesk.main import app

    def _override_get_db():
        # Each request starts from committed state, as with a fresh session
        db.expire_all()
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers(tutor_id):
    return {"X-Tutor-Id": tutor_id}
