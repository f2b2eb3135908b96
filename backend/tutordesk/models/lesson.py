# backend/tutordesk/models/lesson.py
"""
Lesson models for the tutordesk platform.

A Lesson is one student taking one subject at one time. Lessons taught in
the same time block share a LessonSession; every member of a session has
the session's scheduled_at and session_id.

Timestamps are stored in UTC.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import LessonStatus
from ..core.timezone_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class LessonSession(Base):
    """
    A combined/group time block.

    duration_min is the block's nominal total duration. It is what the
    conflict checker treats as busy for the block.
    """

    __tablename__ = "lesson_sessions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_min = Column(Integer, nullable=False, default=60)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    lessons = relationship("Lesson", back_populates="session", order_by="Lesson.subject")

    __table_args__ = (
        CheckConstraint("duration_min > 0", name="check_session_duration_positive"),
    )

    @property
    def scheduled_at_utc(self) -> datetime:
        return ensure_utc(self.scheduled_at)

    def __repr__(self) -> str:
        return f"<LessonSession {self.id}: at={self.scheduled_at}, duration={self.duration_min}>"


class Lesson(Base):
    """A single scheduled lesson for one student and one subject."""

    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String(50), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_min = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True)
    session_id = Column(
        String(26), ForeignKey("lesson_sessions.id", ondelete="SET NULL"), nullable=True
    )
    override_amount = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("Student", back_populates="lessons")
    session = relationship("LessonSession", back_populates="lessons")
    payment_link = relationship("PaymentLesson", back_populates="lesson", uselist=False)

    __table_args__ = (
        CheckConstraint("duration_min > 0", name="check_lesson_duration_positive"),
        CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled')",
            name="ck_lessons_status",
        ),
        CheckConstraint(
            "override_amount IS NULL OR override_amount >= 0",
            name="check_override_non_negative",
        ),
        Index("idx_lessons_tutor_scheduled", "tutor_id", "scheduled_at"),
        Index("idx_lessons_session_id", "session_id"),
        Index("idx_lessons_student_scheduled", "student_id", "scheduled_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = LessonStatus.SCHEDULED.value

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id}: student={self.student_id}, subject={self.subject}, "
            f"at={self.scheduled_at}, duration={self.duration_min}, status={self.status}>"
        )

    @property
    def scheduled_at_utc(self) -> datetime:
        return ensure_utc(self.scheduled_at)

    def complete(self) -> None:
        """Mark lesson as completed."""
        self.status = LessonStatus.COMPLETED.value
        self.completed_at = datetime.now(timezone.utc)
        self.cancelled_at = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Cancel this lesson."""
        self.status = LessonStatus.CANCELLED.value
        self.cancelled_at = datetime.now(timezone.utc)
        if reason:
            self.notes = f"{self.notes}\n{reason}" if self.notes else reason

    def uncomplete(self) -> None:
        """Return a completed or cancelled lesson to scheduled."""
        self.status = LessonStatus.SCHEDULED.value
        self.completed_at = None
        self.cancelled_at = None
