# backend/tutordesk/models/availability.py
"""
Availability models for the tutordesk platform.

Both tables hold either a recurring weekly slot (day_of_week, 0=Sunday
through 6=Saturday) or a one-off slot on specific_date. Times are local
business wall-clock times.

Classes:
    TutorAvailability: When the tutor can be booked
    TutorBreak: Blocked time inside availability
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Index, Integer, String, Text, Time
from sqlalchemy.sql import func
import ulid

from ..database import Base

_SLOT_CONSTRAINTS = (
    "(day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6))",
    "(is_recurring AND day_of_week IS NOT NULL) OR (NOT is_recurring AND specific_date IS NOT NULL)",
)


class TutorAvailability(Base):
    __tablename__ = "tutor_availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False)
    day_of_week = Column(Integer, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=True)
    specific_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(_SLOT_CONSTRAINTS[0], name="check_availability_day_range"),
        CheckConstraint(_SLOT_CONSTRAINTS[1], name="check_availability_recurring_day"),
        Index("idx_tutor_availability_tutor_day", "tutor_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        when = self.specific_date if not self.is_recurring else f"dow={self.day_of_week}"
        return f"<TutorAvailability {when} {self.start_time}-{self.end_time}>"


class TutorBreak(Base):
    __tablename__ = "tutor_breaks"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False)
    day_of_week = Column(Integer, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=True)
    specific_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(_SLOT_CONSTRAINTS[0], name="check_break_day_range"),
        CheckConstraint(_SLOT_CONSTRAINTS[1], name="check_break_recurring_day"),
        Index("idx_tutor_breaks_tutor_day", "tutor_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        when = self.specific_date if not self.is_recurring else f"dow={self.day_of_week}"
        return f"<TutorBreak {when} {self.start_time}-{self.end_time}>"
