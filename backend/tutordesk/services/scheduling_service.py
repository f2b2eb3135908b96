# backend/tutordesk/services/scheduling_service.py
"""
Scheduling Service for the tutordesk platform.

Turns lesson requests into stored lessons and keeps them consistent:
recurring and combined bookings are materialized in one transaction,
status changes apply to a lesson or to every member of a session, and
moves are checked against the tutor's busy intervals.

Session members always share the session's start time.
"""

from collections import defaultdict
from datetime import date, datetime
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytz
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import LessonStatus, RecurrenceRule, SessionScenario
from ..core.exceptions import (
    BookingConflictException,
    LessonAlreadyInvoicedException,
    NotFoundException,
)
from ..core.timezone_utils import (
    business_day_bounds_utc,
    ensure_utc,
    from_business_input,
    localize_business_time,
    to_business_time,
)
from ..models.family import Student
from ..models.lesson import Lesson, LessonSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..schemas.lesson import (
    DeleteResult,
    GroupedLessonResponse,
    LessonCreate,
    LessonResponse,
    LessonUpdate,
    RescheduleRequest,
    ScheduleResult,
    SeriesResponse,
    SeriesUpdate,
    SessionCreate,
    SessionMemberInput,
    SessionPlanMember,
    SessionPlanResponse,
)
from ..utils.time_utils import parse_time_str
from .base import BaseService
from .conflict_checker import ConflictChecker
from .invoice_service import InvoiceService
from .monthly_summary_service import lesson_payment_state
from .rate_settings_service import RateSettingsService
from .recurrence import SessionPlan, expand, plan_session_lessons

logger = logging.getLogger(__name__)


def _series_key(start: datetime, tz_name: Optional[str]) -> Tuple[int, str]:
    """(local weekday, local HH:MM) of a stored start."""
    local = to_business_time(start, tz_name)
    return local.weekday(), local.strftime("%H:%M")


def _derived_status(lessons: Sequence[Lesson]) -> LessonStatus:
    statuses = {lesson.status for lesson in lessons}
    if LessonStatus.SCHEDULED.value in statuses:
        return LessonStatus.SCHEDULED
    if LessonStatus.COMPLETED.value in statuses:
        return LessonStatus.COMPLETED
    return LessonStatus.CANCELLED


class SchedulingService(BaseService):
    """
    Service for creating, moving and changing the status of lessons.

    Cancelling an invoiced lesson takes it off its invoice. Uncompleting or
    deleting an invoiced lesson is refused.
    """

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        super().__init__(db)
        self.tz_name = tz_name or settings.business_timezone
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.family_repository = RepositoryFactory.create_family_repository(db)
        self.rate_settings_service = RateSettingsService(db)
        self.conflict_checker = ConflictChecker(db, self.tz_name)
        self.invoice_service = InvoiceService(db, self.tz_name)

    # Lookups

    def _get_lesson(self, tutor_id: str, lesson_id: str) -> Lesson:
        lesson = self.lesson_repository.get_lesson_for_tutor(tutor_id, lesson_id)
        if lesson is None:
            raise NotFoundException(
                "Lesson not found", code="LESSON_NOT_FOUND", details={"lesson_id": lesson_id}
            )
        return lesson

    def _get_session(self, tutor_id: str, session_id: str) -> LessonSession:
        session = self.lesson_repository.get_session_for_tutor(tutor_id, session_id)
        if session is None:
            raise NotFoundException(
                "Session not found", code="SESSION_NOT_FOUND", details={"session_id": session_id}
            )
        return session

    def _get_lessons(self, tutor_id: str, lesson_ids: Sequence[str]) -> List[Lesson]:
        lessons = self.lesson_repository.get_lessons_by_ids(tutor_id, lesson_ids)
        missing = sorted(set(lesson_ids) - {lesson.id for lesson in lessons})
        if missing:
            raise NotFoundException(
                "Lesson not found", code="LESSON_NOT_FOUND", details={"lesson_ids": missing}
            )
        return lessons

    def _check_students(self, tutor_id: str, student_ids: Iterable[str]) -> Dict[str, Student]:
        wanted = sorted(set(student_ids))
        students = {
            s.id: s
            for s in self.family_repository.get_students_by_ids(wanted)
            if s.parent is not None and s.parent.tutor_id == tutor_id
        }
        missing = [sid for sid in wanted if sid not in students]
        if missing:
            raise NotFoundException(
                "Student not found", code="STUDENT_NOT_FOUND", details={"student_ids": missing}
            )
        return students

    def _reject_invoiced(self, lessons: Sequence[Lesson], action: str) -> None:
        invoiced = self.invoice_service.invoiced_lesson_ids([lesson.id for lesson in lessons])
        if invoiced:
            raise LessonAlreadyInvoicedException(
                f"Invoiced lessons cannot be {action}; delete or adjust the invoice first",
                lesson_ids=sorted(invoiced),
            )

    def _occurrences(
        self, scheduled_at: datetime, rule: RecurrenceRule, end_date: Optional[date]
    ) -> Tuple[List[datetime], List[str]]:
        start_utc = from_business_input(scheduled_at, self.tz_name)
        occurrences = expand(start_utc, rule, end_date, tz_name=self.tz_name)
        warnings = []
        if rule is not RecurrenceRule.NONE and len(occurrences) >= settings.recurrence_max_instances:
            warnings.append(
                f"Recurrence stopped after {settings.recurrence_max_instances} lessons"
            )
        return occurrences, warnings

    def _raise_conflict(self, operation: str, start_utc: datetime, conflicts) -> None:
        prometheus_metrics.inc_booking_conflict(operation)
        self.logger.info(f"Booking conflict on {operation} at {start_utc.isoformat()}")
        raise BookingConflictException(
            details={
                "scheduled_at": start_utc.isoformat(),
                "conflicts": [
                    row.model_dump(mode="json") for row in self.conflict_checker.to_responses(conflicts)
                ],
            }
        )

    def _cleanup_empty_sessions(self, session_ids: Iterable[str]) -> None:
        for session in self.lesson_repository.get_sessions_by_ids(list(set(session_ids))):
            self.db.refresh(session, ["lessons"])
            if not session.lessons:
                self.lesson_repository.delete_session_row(session)

    def to_response(self, lesson: Lesson) -> LessonResponse:
        state, _ = lesson_payment_state(lesson)
        return LessonResponse(
            id=lesson.id,
            student_id=lesson.student_id,
            subject=lesson.subject,
            scheduled_at=lesson.scheduled_at_utc,
            duration_min=lesson.duration_min,
            status=lesson.status,
            session_id=lesson.session_id,
            override_amount=lesson.override_amount,
            notes=lesson.notes,
            payment_state=state,
        )

    # Creation

    @BaseService.measure_operation("create_lessons")
    def create_lessons(self, tutor_id: str, payload: LessonCreate) -> ScheduleResult:
        """
        Create a lesson, or every lesson of a recurring series, atomically.

        Raises:
            NotFoundException: The student does not belong to this tutor
            BookingConflictException: check_conflicts was set and an
                occurrence overlaps a busy interval
        """
        self._check_students(tutor_id, [payload.student_id])
        occurrences, warnings = self._occurrences(
            payload.scheduled_at, payload.recurrence, payload.recurrence_end_date
        )

        if payload.check_conflicts:
            for start_utc in occurrences:
                conflicts = self.conflict_checker.check_slot(tutor_id, start_utc, payload.duration_min)
                if conflicts:
                    self._raise_conflict("create", start_utc, conflicts)

        rows = [
            {
                "tutor_id": tutor_id,
                "student_id": payload.student_id,
                "subject": payload.subject.value,
                "scheduled_at": start_utc,
                "duration_min": payload.duration_min,
                "status": LessonStatus.SCHEDULED.value,
                "override_amount": payload.override_amount,
                "notes": payload.notes,
            }
            for start_utc in occurrences
        ]
        with self.transaction():
            lessons = self.lesson_repository.bulk_create(rows)

        kind = "single" if len(lessons) == 1 else "recurring"
        prometheus_metrics.inc_lessons_created(kind, len(lessons))
        self.logger.info(
            f"Created {len(lessons)} {payload.subject.value} lessons for student {payload.student_id}"
        )
        return ScheduleResult(
            lessons=[self.to_response(lesson) for lesson in lessons],
            occurrences=len(occurrences),
            warnings=warnings,
        )

    def plan_session(
        self, tutor_id: str, members: Sequence[SessionMemberInput], duration_min: int
    ) -> SessionPlan:
        return plan_session_lessons(
            [(m.student_id, m.subject) for m in members],
            duration_min,
            self.rate_settings_service.load(tutor_id),
        )

    @BaseService.measure_operation("preview_session_plan")
    def preview_session_plan(
        self, tutor_id: str, members: Sequence[SessionMemberInput], duration_min: int
    ) -> SessionPlanResponse:
        plan = self.plan_session(tutor_id, members, duration_min)
        return SessionPlanResponse(
            scenario=plan.scenario,
            total_duration_min=plan.total_duration_min,
            members=[
                SessionPlanMember(student_id=m.student_id, subject=m.subject, duration_min=m.duration_min)
                for m in plan.members
            ],
        )

    @BaseService.measure_operation("create_sessions")
    def create_sessions(self, tutor_id: str, payload: SessionCreate) -> ScheduleResult:
        """
        Create a combined booking: one session row plus its member lessons
        for every recurrence date, all in one transaction.
        """
        self._check_students(tutor_id, [m.student_id for m in payload.members])
        plan = self.plan_session(tutor_id, payload.members, payload.duration_min)
        occurrences, warnings = self._occurrences(
            payload.scheduled_at, payload.recurrence, payload.recurrence_end_date
        )
        if plan.scenario is SessionScenario.MULTI_SUBJECT:
            if len({m.student_id for m in plan.members}) > 1:
                warnings.append(
                    "A student with several subjects was booked with other students; "
                    "every lesson uses its subject's base duration"
                )
            if plan.total_duration_min != payload.duration_min:
                warnings.append(
                    f"Session length set to {plan.total_duration_min} minutes from subject base durations"
                )

        lessons: List[Lesson] = []
        session_ids: List[str] = []
        with self.transaction():
            for start_utc in occurrences:
                session = self.lesson_repository.create_session(
                    tutor_id=tutor_id,
                    scheduled_at=start_utc,
                    duration_min=plan.total_duration_min,
                    notes=payload.notes,
                )
                session_ids.append(session.id)
                lessons.extend(
                    self.lesson_repository.bulk_create(
                        [
                            {
                                "tutor_id": tutor_id,
                                "student_id": member.student_id,
                                "subject": member.subject,
                                "scheduled_at": start_utc,
                                "duration_min": member.duration_min,
                                "status": LessonStatus.SCHEDULED.value,
                                "session_id": session.id,
                                "notes": payload.notes,
                            }
                            for member in plan.members
                        ]
                    )
                )

        prometheus_metrics.inc_lessons_created("session", len(lessons))
        self.logger.info(
            f"Created {len(session_ids)} {plan.scenario.value} sessions with {len(lessons)} lessons"
        )
        return ScheduleResult(
            lessons=[self.to_response(lesson) for lesson in lessons],
            session_ids=session_ids,
            occurrences=len(occurrences),
            warnings=warnings,
        )

    # Status changes

    def _complete(self, lessons: Sequence[Lesson], notes: Optional[str]) -> None:
        for lesson in lessons:
            lesson.complete()
            if notes:
                lesson.notes = notes

    def _cancel(self, lessons: Sequence[Lesson], notes: Optional[str]) -> None:
        for lesson in lessons:
            if lesson.payment_link is not None:
                self.invoice_service.release_cancelled_lesson(lesson.payment_link)
                self.db.expire(lesson, ["payment_link"])
            lesson.cancel(notes)

    @BaseService.measure_operation("complete_lesson")
    def complete_lesson(self, tutor_id: str, lesson_id: str, notes: Optional[str] = None) -> LessonResponse:
        with self.transaction():
            lesson = self._get_lesson(tutor_id, lesson_id)
            self._complete([lesson], notes)
        return self.to_response(lesson)

    @BaseService.measure_operation("cancel_lesson")
    def cancel_lesson(self, tutor_id: str, lesson_id: str, notes: Optional[str] = None) -> LessonResponse:
        """Cancel a lesson. An invoiced lesson is taken off its invoice."""
        with self.transaction():
            lesson = self._get_lesson(tutor_id, lesson_id)
            self._cancel([lesson], notes)
        return self.to_response(lesson)

    @BaseService.measure_operation("uncomplete_lesson")
    def uncomplete_lesson(self, tutor_id: str, lesson_id: str) -> LessonResponse:
        lesson = self._get_lesson(tutor_id, lesson_id)
        self._reject_invoiced([lesson], "uncompleted")
        with self.transaction():
            lesson.uncomplete()
        return self.to_response(lesson)

    @BaseService.measure_operation("complete_session")
    def complete_session(
        self, tutor_id: str, session_id: str, notes: Optional[str] = None
    ) -> List[LessonResponse]:
        with self.transaction():
            session = self._get_session(tutor_id, session_id)
            self._complete(session.lessons, notes)
        return [self.to_response(lesson) for lesson in session.lessons]

    @BaseService.measure_operation("cancel_session")
    def cancel_session(
        self, tutor_id: str, session_id: str, notes: Optional[str] = None
    ) -> List[LessonResponse]:
        with self.transaction():
            session = self._get_session(tutor_id, session_id)
            self._cancel(session.lessons, notes)
        return [self.to_response(lesson) for lesson in session.lessons]

    @BaseService.measure_operation("uncomplete_session")
    def uncomplete_session(self, tutor_id: str, session_id: str) -> List[LessonResponse]:
        session = self._get_session(tutor_id, session_id)
        self._reject_invoiced(session.lessons, "uncompleted")
        with self.transaction():
            for lesson in session.lessons:
                lesson.uncomplete()
        return [self.to_response(lesson) for lesson in session.lessons]

    # Edits and moves

    def _move(self, lesson: Lesson, start_utc: datetime) -> List[Lesson]:
        """Move a lesson, or its whole session when it has one."""
        if lesson.session is None:
            lesson.scheduled_at = start_utc
            return [lesson]
        lesson.session.scheduled_at = start_utc
        for member in lesson.session.lessons:
            member.scheduled_at = start_utc
        return list(lesson.session.lessons)

    @BaseService.measure_operation("update_lesson")
    def update_lesson(self, tutor_id: str, lesson_id: str, payload: LessonUpdate) -> LessonResponse:
        """
        Edit a lesson's fields.

        A new start on a session member moves the whole session. Invoice
        amounts already frozen are not affected.
        """
        lesson = self._get_lesson(tutor_id, lesson_id)
        if payload.student_id is not None:
            self._check_students(tutor_id, [payload.student_id])

        with self.transaction():
            if payload.student_id is not None:
                lesson.student_id = payload.student_id
            if payload.subject is not None:
                lesson.subject = payload.subject.value
            if payload.duration_min is not None:
                lesson.duration_min = payload.duration_min
            if payload.notes is not None:
                lesson.notes = payload.notes
            if payload.clear_override:
                lesson.override_amount = None
            elif payload.override_amount is not None:
                lesson.override_amount = payload.override_amount
            if payload.scheduled_at is not None:
                self._move(lesson, from_business_input(payload.scheduled_at, self.tz_name))

        return self.to_response(lesson)

    @BaseService.measure_operation("update_series")
    def update_series(self, tutor_id: str, payload: SeriesUpdate) -> SeriesResponse:
        """
        Apply a new local time of day, duration or notes to a set of lessons.

        Each lesson keeps its own local date; only the wall-clock time changes.
        """
        lessons = self._get_lessons(tutor_id, payload.lesson_ids)
        new_time = parse_time_str(payload.new_time) if payload.new_time else None

        with self.transaction():
            for lesson in lessons:
                if new_time is not None:
                    local_day = to_business_time(lesson.scheduled_at_utc, self.tz_name).date()
                    start_utc = localize_business_time(local_day, new_time, self.tz_name).astimezone(
                        pytz.UTC
                    )
                    self._move(lesson, start_utc)
                if payload.duration_min is not None:
                    lesson.duration_min = payload.duration_min
                if payload.notes is not None:
                    lesson.notes = payload.notes

        self.logger.info(f"Updated series of {len(lessons)} lessons for tutor {tutor_id}")
        return SeriesResponse(ids=[lesson.id for lesson in lessons], count=len(lessons))

    @BaseService.measure_operation("reschedule_lesson")
    def reschedule_lesson(
        self, tutor_id: str, lesson_id: str, payload: RescheduleRequest
    ) -> List[LessonResponse]:
        """
        Move a lesson (or its whole session) to a new start.

        Raises:
            BookingConflictException: The new slot overlaps a busy interval
                other than the lesson's own
        """
        lesson = self._get_lesson(tutor_id, lesson_id)
        start_utc = from_business_input(payload.scheduled_at, self.tz_name)
        session = lesson.session
        if payload.duration_min is not None:
            duration = payload.duration_min
        elif session is not None:
            duration = session.duration_min
        else:
            duration = lesson.duration_min

        conflicts = self.conflict_checker.check_slot(
            tutor_id,
            start_utc,
            duration,
            exclude_lesson_id=lesson.id,
            exclude_session_id=lesson.session_id,
        )
        if conflicts:
            self._raise_conflict("reschedule", start_utc, conflicts)

        with self.transaction():
            moved = self._move(lesson, start_utc)
            if payload.duration_min is not None:
                if session is not None:
                    session.duration_min = payload.duration_min
                else:
                    lesson.duration_min = payload.duration_min

        self.logger.info(f"Rescheduled {len(moved)} lessons to {start_utc.isoformat()}")
        return [self.to_response(member) for member in moved]

    # Deletion

    @BaseService.measure_operation("delete_lesson")
    def delete_lesson(self, tutor_id: str, lesson_id: str) -> DeleteResult:
        return self.delete_series(tutor_id, [lesson_id])

    @BaseService.measure_operation("delete_series")
    def delete_series(self, tutor_id: str, lesson_ids: Sequence[str]) -> DeleteResult:
        """Delete lessons. Sessions left without members are removed too."""
        lessons = self._get_lessons(tutor_id, lesson_ids)
        self._reject_invoiced(lessons, "deleted")
        session_ids = [lesson.session_id for lesson in lessons if lesson.session_id]
        with self.transaction():
            deleted = self.lesson_repository.delete_lessons(lessons)
            self._cleanup_empty_sessions(session_ids)
        self.logger.info(f"Deleted {deleted} lessons for tutor {tutor_id}")
        return DeleteResult(deleted=deleted)

    @BaseService.measure_operation("delete_session")
    def delete_session(self, tutor_id: str, session_id: str) -> DeleteResult:
        session = self._get_session(tutor_id, session_id)
        members = list(session.lessons)
        self._reject_invoiced(members, "deleted")
        with self.transaction():
            deleted = self.lesson_repository.delete_lessons(members)
            self.db.expire(session, ["lessons"])
            self.lesson_repository.delete_session_row(session)
        self.logger.info(f"Deleted session {session_id} with {deleted} lessons")
        return DeleteResult(deleted=deleted)

    # Series lookup and calendar grouping

    @BaseService.measure_operation("find_series")
    def find_series(self, tutor_id: str, lesson_id: str) -> SeriesResponse:
        """
        Standalone lessons recurring with this one: same student, subject and
        duration on the same local weekday and time.
        """
        lesson = self._get_lesson(tutor_id, lesson_id)
        if lesson.session_id:
            return SeriesResponse(ids=[lesson.id], count=1)
        key = _series_key(lesson.scheduled_at_utc, self.tz_name)
        candidates = self.lesson_repository.get_standalone_series_candidates(
            tutor_id, lesson.student_id, lesson.subject, lesson.duration_min
        )
        ids = [c.id for c in candidates if _series_key(c.scheduled_at_utc, self.tz_name) == key]
        return SeriesResponse(ids=ids, count=len(ids))

    @BaseService.measure_operation("find_session_series")
    def find_session_series(self, tutor_id: str, session_id: str) -> SeriesResponse:
        """Sessions with the same local weekday, time and student/subject pairs."""

        def signature(session: LessonSession):
            pairs = frozenset(f"{m.student_id}:{m.subject}" for m in session.lessons)
            return _series_key(session.scheduled_at_utc, self.tz_name), pairs

        target = self._get_session(tutor_id, session_id)
        key = signature(target)
        ids = [
            s.id
            for s in self.lesson_repository.get_tutor_sessions_with_members(tutor_id)
            if signature(s) == key
        ]
        return SeriesResponse(ids=ids, count=len(ids))

    @BaseService.measure_operation("group_lessons_by_session")
    def group_lessons_by_session(
        self, tutor_id: str, start_date: date, end_date: date
    ) -> List[GroupedLessonResponse]:
        """
        Calendar rows for local dates start_date..end_date inclusive.

        Session members collapse into one row with the session's start and
        duration and a status derived from the members.
        """
        start_utc, _ = business_day_bounds_utc(start_date, self.tz_name)
        _, end_utc = business_day_bounds_utc(end_date, self.tz_name)
        lessons = self.lesson_repository.get_tutor_lessons_in_range(
            tutor_id, start_utc, end_utc, include_cancelled=True
        )

        rows: List[GroupedLessonResponse] = []
        by_session: Dict[str, List[Lesson]] = defaultdict(list)
        for lesson in lessons:
            if lesson.session_id:
                by_session[lesson.session_id].append(lesson)
                continue
            rows.append(
                GroupedLessonResponse(
                    scheduled_at=lesson.scheduled_at_utc,
                    duration_min=lesson.duration_min,
                    status=lesson.status,
                    is_combined=False,
                    lessons=[self.to_response(lesson)],
                )
            )

        stored = {
            s.id: s for s in self.lesson_repository.get_sessions_by_ids(list(by_session))
        }
        for session_id, members in by_session.items():
            if session_id in stored:
                start, duration = stored[session_id].scheduled_at_utc, stored[session_id].duration_min
            else:
                start, duration = ConflictChecker.synthesize_session_block(members)
            rows.append(
                GroupedLessonResponse(
                    session_id=session_id,
                    scheduled_at=ensure_utc(start),
                    duration_min=duration,
                    status=_derived_status(members),
                    is_combined=True,
                    lessons=[self.to_response(m) for m in members],
                )
            )

        rows.sort(key=lambda row: row.scheduled_at)
        return rows
