"""Tests for ConflictChecker: busy intervals and candidate starts from the store."""

from datetime import date, time

import pytest

from tutordesk.core.enums import BusySlotType, LessonStatus
from tutordesk.models import Lesson, LessonSession, TutorAvailability, TutorBreak
from tutordesk.services.conflict_checker import ConflictChecker

from tests._utils.clock import local_utc

TZ = "America/Los_Angeles"
TUESDAY = date(2026, 4, 14)


@pytest.fixture
def checker(db) -> ConflictChecker:
    return ConflictChecker(db, TZ)


@pytest.fixture
def tuesday(db, tutor_id, family, make_lesson):
    """Tuesday 09:00-12:00 availability with a lesson, a break and a session."""
    _, ava, ben = family
    db.add(TutorAvailability(tutor_id=tutor_id, day_of_week=2, start_time=time(9), end_time=time(12)))
    db.add(
        TutorBreak(
            tutor_id=tutor_id,
            is_recurring=False,
            specific_date=TUESDAY,
            start_time=time(10, 30),
            end_time=time(11),
            notes="coffee",
        )
    )
    session = LessonSession(tutor_id=tutor_id, scheduled_at=local_utc(2026, 4, 14, 11), duration_min=60)
    db.add(session)
    db.commit()
    lesson = make_lesson(ava, "math", local_utc(2026, 4, 14, 9), 30)
    make_lesson(ava, "math", local_utc(2026, 4, 14, 11), 30, session=session)
    make_lesson(ben, "math", local_utc(2026, 4, 14, 11), 30, session=session)
    make_lesson(ben, "piano", local_utc(2026, 4, 14, 9, 30), 30, LessonStatus.CANCELLED)
    return lesson, session


class TestBusyIntervals:
    def test_lessons_sessions_and_breaks(self, checker, tutor_id, tuesday):
        lesson, session = tuesday

        busy = checker.get_busy_intervals(tutor_id, TUESDAY)

        assert [(b.start, b.end, b.type) for b in busy] == [
            ("09:00", "09:30", BusySlotType.LESSON),
            (time(10, 30), time(11), BusySlotType.BREAK),
            ("11:00", "12:00", BusySlotType.SESSION),
        ]
        assert busy[0].source_id == lesson.id
        assert busy[2].source_id == session.id

    def test_previous_evening_lesson_running_past_midnight(self, checker, tutor_id, family, make_lesson):
        _, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 13, 23, 30), 60)

        busy = checker.get_busy_intervals(tutor_id, TUESDAY)

        assert [(b.start, b.end) for b in busy] == [("00:00", "00:30")]

    def test_other_tutors_are_ignored(self, checker, tuesday):
        assert checker.get_busy_intervals("01OTHERTUTOR0000000000000A", TUESDAY) == []

    def test_check_slot_excludes_the_moving_lesson(self, checker, tutor_id, tuesday):
        lesson, _ = tuesday
        start = local_utc(2026, 4, 14, 9, 15)

        assert len(checker.check_slot(tutor_id, start, 30)) == 1
        assert checker.check_slot(tutor_id, start, 30, exclude_lesson_id=lesson.id) == []

    def test_check_slot_excludes_the_moving_session(self, checker, tutor_id, tuesday):
        _, session = tuesday
        start = local_utc(2026, 4, 14, 11, 30)

        assert checker.check_slot(tutor_id, start, 30, exclude_session_id=session.id) == []

    def test_excluding_a_member_lesson_excludes_its_session(self, db, checker, tutor_id, tuesday):
        _, session = tuesday
        member = db.query(Lesson).filter(Lesson.session_id == session.id).first()
        start = local_utc(2026, 4, 14, 11, 30)

        assert [b.type for b in checker.check_slot(tutor_id, start, 60)] == [BusySlotType.SESSION]
        assert checker.check_slot(tutor_id, start, 60, exclude_lesson_id=member.id) == []

    def test_slot_running_past_midnight_sees_next_day(self, checker, tutor_id, family, make_lesson):
        _, ava, _ = family
        early = make_lesson(ava, "math", local_utc(2026, 4, 15, 0, 0), 30)

        conflicts = checker.check_slot(tutor_id, local_utc(2026, 4, 14, 23, 30), 60)

        assert [b.source_id for b in conflicts] == [early.id]
        assert checker.check_slot(tutor_id, local_utc(2026, 4, 14, 23, 0), 60) == []


class TestDescribeDay:
    def test_starts_are_tagged_not_dropped(self, checker, tutor_id, tuesday):
        day = checker.describe_day(tutor_id, TUESDAY, 30, 30)

        assert day.timezone == TZ
        assert [(w.start, w.end) for w in day.windows] == [("09:00", "12:00")]
        assert [(b.start, b.end, b.type) for b in day.busy] == [
            ("09:00", "09:30", "lesson"),
            ("10:30", "11:00", "break"),
            ("11:00", "12:00", "session"),
        ]
        assert [(s.time, s.is_busy) for s in day.starts] == [
            ("09:00", True),
            ("09:30", False),
            ("10:00", False),
            ("10:30", True),
            ("11:00", True),
            ("11:30", True),
        ]

    def test_no_availability_means_no_starts(self, checker, tutor_id, tuesday):
        day = checker.describe_day(tutor_id, date(2026, 4, 15), 30)

        assert day.windows == []
        assert day.starts == []


class TestSynthesizedSessionBlock:
    def test_same_subject_uses_longest_member(self):
        members = [
            Lesson(subject="math", scheduled_at=local_utc(2026, 4, 14), duration_min=45),
            Lesson(subject="math", scheduled_at=local_utc(2026, 4, 14), duration_min=60),
        ]
        start, duration = ConflictChecker.synthesize_session_block(members)
        assert (start, duration) == (local_utc(2026, 4, 14), 60)

    def test_mixed_subjects_run_back_to_back(self):
        members = [
            Lesson(subject="piano", scheduled_at=local_utc(2026, 4, 14), duration_min=30),
            Lesson(subject="reading", scheduled_at=local_utc(2026, 4, 14), duration_min=60),
        ]
        _, duration = ConflictChecker.synthesize_session_block(members)
        assert duration == 90
