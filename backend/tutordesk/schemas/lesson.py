"""
Lesson and combined-session schemas.

Naive datetimes in requests are business-local wall-clock times; aware
datetimes are taken as given. Responses always carry UTC.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import LessonPaymentState, LessonStatus, RecurrenceRule, SessionScenario, Subject
from ..utils.time_utils import parse_time_str
from .base import Money, ORMModel, StandardizedModel, StrictModel


class LessonCreate(StrictModel):
    student_id: str
    subject: Subject
    scheduled_at: datetime
    duration_min: int = Field(..., gt=0, le=480)
    recurrence: RecurrenceRule = RecurrenceRule.NONE
    recurrence_end_date: Optional[date] = None
    notes: Optional[str] = None
    override_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    check_conflicts: bool = False


class SessionMemberInput(StrictModel):
    student_id: str
    subject: Subject


class SessionCreate(StrictModel):
    members: List[SessionMemberInput] = Field(..., min_length=1)
    scheduled_at: datetime
    duration_min: int = Field(..., gt=0, le=480)
    recurrence: RecurrenceRule = RecurrenceRule.NONE
    recurrence_end_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _distinct_members(self) -> "SessionCreate":
        pairs = [(m.student_id, m.subject) for m in self.members]
        if len(set(pairs)) != len(pairs):
            raise ValueError("each student/subject pair may appear only once in a session")
        return self


class SessionPlanRequest(StrictModel):
    """Preview the member durations of a combined booking without saving it."""

    members: List[SessionMemberInput] = Field(..., min_length=1)
    duration_min: int = Field(..., gt=0, le=480)


class LessonUpdate(StrictModel):
    student_id: Optional[str] = None
    subject: Optional[Subject] = None
    scheduled_at: Optional[datetime] = None
    duration_min: Optional[int] = Field(None, gt=0, le=480)
    notes: Optional[str] = None
    override_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    clear_override: bool = False


class SeriesUpdate(StrictModel):
    """Apply a new local time of day, duration or notes to a set of lessons."""

    lesson_ids: List[str] = Field(..., min_length=1)
    new_time: Optional[str] = Field(None, description="HH:MM in the business timezone")
    duration_min: Optional[int] = Field(None, gt=0, le=480)
    notes: Optional[str] = None

    @field_validator("new_time")
    @classmethod
    def _valid_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_time_str(value)
        return value


class SeriesDeleteRequest(StrictModel):
    lesson_ids: List[str] = Field(..., min_length=1)


class RescheduleRequest(StrictModel):
    scheduled_at: datetime
    duration_min: Optional[int] = Field(None, gt=0, le=480)


class StatusChangeRequest(StrictModel):
    notes: Optional[str] = None


class LessonResponse(ORMModel):
    id: str
    student_id: str
    subject: str
    scheduled_at: datetime
    duration_min: int
    status: LessonStatus
    session_id: Optional[str] = None
    override_amount: Optional[Money] = None
    notes: Optional[str] = None
    payment_state: LessonPaymentState = LessonPaymentState.NONE


class GroupedLessonResponse(StandardizedModel):
    """A session block (or a standalone lesson) as shown on the calendar."""

    session_id: Optional[str] = None
    scheduled_at: datetime
    duration_min: int
    status: LessonStatus
    is_combined: bool
    lessons: List[LessonResponse]


class SessionPlanMember(StandardizedModel):
    student_id: str
    subject: str
    duration_min: int


class SessionPlanResponse(StandardizedModel):
    scenario: SessionScenario
    total_duration_min: int
    members: List[SessionPlanMember]


class ScheduleResult(StandardizedModel):
    lessons: List[LessonResponse]
    session_ids: List[str] = Field(default_factory=list)
    occurrences: int
    warnings: List[str] = Field(default_factory=list)


class SeriesResponse(StandardizedModel):
    ids: List[str]
    count: int


class DeleteResult(StandardizedModel):
    deleted: int
