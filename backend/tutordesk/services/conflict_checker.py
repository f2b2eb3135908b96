# backend/tutordesk/services/conflict_checker.py
"""
Conflict Checker Service for the tutordesk platform.

Two layers:
- Pure detection (is_busy, list_free_starts) over minutes since local
  midnight. Intervals are half-open, so touching boundaries never conflict.
  Anything that cannot be normalized counts as busy.
- ConflictChecker, which builds the busy intervals for a tutor's date from
  lessons, combined sessions and breaks, and the availability windows that
  candidate start times are offered from.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MINUTES_PER_DAY
from ..core.enums import BusySlotType
from ..core.timezone_utils import (
    business_day_bounds_utc,
    ensure_utc,
    get_business_timezone,
    to_business_time,
)
from ..models.lesson import Lesson, LessonSession
from ..repositories import RepositoryFactory
from ..schemas.scheduling import (
    AvailabilityWindow,
    AvailabilityWindowResponse,
    BusyInterval,
    BusyIntervalResponse,
    DayScheduleResponse,
    FreeStart,
    FreeStartResponse,
    TimeLike,
)
from ..utils.time_utils import minutes_to_time_str, parse_time_str, time_to_minutes
from .base import BaseService

logger = logging.getLogger(__name__)


def to_local_minutes(
    value: TimeLike, *, is_end_time: bool = False, tz_name: Optional[str] = None
) -> Optional[int]:
    """
    Minutes since local business midnight for a time-shaped value.

    Accepts "HH:MM[:SS]" strings and time objects (already local), and
    datetimes or ISO datetime strings (naive means UTC). Returns None when the
    value cannot be read.
    """
    if isinstance(value, datetime):
        local = to_business_time(value, tz_name)
        return time_to_minutes(local.time(), is_end_time=is_end_time)
    if isinstance(value, time):
        return time_to_minutes(value, is_end_time=is_end_time)
    if isinstance(value, str):
        text = value.strip()
        try:
            return time_to_minutes(parse_time_str(text), is_end_time=is_end_time)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_local_minutes(parsed, is_end_time=is_end_time, tz_name=tz_name)
    return None


def _interval_minutes(
    interval: BusyInterval, tz_name: Optional[str]
) -> Optional[tuple]:
    start = to_local_minutes(interval.start, tz_name=tz_name)
    end = to_local_minutes(interval.end, is_end_time=True, tz_name=tz_name)
    if start is None or end is None:
        return None
    if end <= start:
        # Runs past midnight; on this date it occupies the rest of the day
        end = MINUTES_PER_DAY
    return start, end


def find_conflicts(
    candidate_start: TimeLike,
    duration_min: int,
    busy_intervals: Iterable[BusyInterval],
    *,
    tz_name: Optional[str] = None,
) -> List[BusyInterval]:
    """
    Busy intervals that overlap [candidate_start, candidate_start + duration).

    Unreadable intervals are always reported as conflicts.
    """
    intervals = list(busy_intervals)
    start = to_local_minutes(candidate_start, tz_name=tz_name)
    if start is None or not isinstance(duration_min, int) or duration_min <= 0:
        logger.warning(
            "Unreadable candidate slot %r/%r; treating as busy", candidate_start, duration_min
        )
        return intervals or [BusyInterval(start="00:00", end="24:00", label="invalid request")]

    end = start + duration_min
    conflicts: List[BusyInterval] = []
    for interval in intervals:
        bounds = _interval_minutes(interval, tz_name)
        if bounds is None:
            logger.warning("Unreadable busy interval %r; treating as busy", interval)
            conflicts.append(interval)
            continue
        busy_start, busy_end = bounds
        if start < busy_end and end > busy_start:
            conflicts.append(interval)
    return conflicts


def is_busy(
    candidate_start: TimeLike,
    duration_min: int,
    busy_intervals: Iterable[BusyInterval],
    *,
    tz_name: Optional[str] = None,
) -> bool:
    """True when the candidate slot overlaps any busy interval."""
    return bool(find_conflicts(candidate_start, duration_min, busy_intervals, tz_name=tz_name))


def list_free_starts(
    window: AvailabilityWindow,
    busy_intervals: Iterable[BusyInterval],
    required_duration: int,
    step_minutes: int = 30,
    *,
    tz_name: Optional[str] = None,
) -> List[FreeStart]:
    """
    Every step-aligned start inside the window, tagged with its busy state.

    Starts run from the window start while strictly before the window end.
    Busy starts are kept so callers can render them disabled.
    """
    if not isinstance(step_minutes, int) or step_minutes <= 0:
        step_minutes = settings.free_start_step_minutes
    window_start = to_local_minutes(window.start, tz_name=tz_name)
    window_end = to_local_minutes(window.end, is_end_time=True, tz_name=tz_name)
    if window_start is None or window_end is None:
        logger.warning("Unreadable availability window %r; offering no starts", window)
        return []

    intervals = list(busy_intervals)
    starts: List[FreeStart] = []
    minutes = window_start
    while minutes < window_end and minutes < MINUTES_PER_DAY:
        label = minutes_to_time_str(minutes)
        starts.append(
            FreeStart(
                time=label,
                minutes=minutes,
                is_busy=is_busy(label, required_duration, intervals, tz_name=tz_name),
            )
        )
        minutes += step_minutes
    return starts


def _to_response(interval: BusyInterval, tz_name: Optional[str]) -> BusyIntervalResponse:
    bounds = _interval_minutes(interval, tz_name)
    if bounds is None:
        start, end = str(interval.start), str(interval.end)
    else:
        start, end = minutes_to_time_str(bounds[0]), minutes_to_time_str(bounds[1])
    return BusyIntervalResponse(
        start=start, end=end, type=interval.type, label=interval.label, source_id=interval.source_id
    )


class ConflictChecker(BaseService):
    """
    Service for building busy intervals and checking slots against them.

    All wall-clock work happens in the business timezone.
    """

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.tz_name = tz_name or settings.business_timezone
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)

    def _block(
        self,
        start_utc: datetime,
        duration_min: int,
        target_date: date,
        slot_type: BusySlotType,
        label: str,
        source_id: str,
    ) -> Optional[BusyInterval]:
        """A UTC block clipped to the local target date, or None if it misses the date."""
        local_start = to_business_time(start_utc, self.tz_name)
        local_end = to_business_time(start_utc + timedelta(minutes=duration_min), self.tz_name)
        if local_start.date() > target_date or local_end.date() < target_date:
            return None
        start_min = 0 if local_start.date() < target_date else time_to_minutes(local_start.time())
        if local_end.date() > target_date:
            end_min = MINUTES_PER_DAY
        else:
            end_min = time_to_minutes(local_end.time())
        if end_min <= start_min:
            return None
        return BusyInterval(
            start=minutes_to_time_str(start_min),
            end=minutes_to_time_str(end_min),
            type=slot_type,
            label=label,
            source_id=source_id,
        )

    @staticmethod
    def synthesize_session_block(members: Sequence[Lesson]) -> tuple:
        """
        (start, duration) for session members with no stored session row.

        Same-subject members are taught together, so the block lasts as long
        as the longest member; otherwise they run back to back.
        """
        start = min(ensure_utc(m.scheduled_at) for m in members)
        if len({m.subject for m in members}) == 1:
            duration = max(m.duration_min for m in members)
        else:
            duration = sum(m.duration_min for m in members)
        return start, duration

    @BaseService.measure_operation("get_busy_intervals")
    def get_busy_intervals(
        self,
        tutor_id: str,
        target_date: date,
        *,
        exclude_lesson_id: Optional[str] = None,
        exclude_session_id: Optional[str] = None,
    ) -> List[BusyInterval]:
        """
        Busy intervals on a local business date.

        Includes non-cancelled standalone lessons, session blocks and breaks.
        Lessons from the previous evening that run past midnight are included.
        """
        day_start, day_end = business_day_bounds_utc(target_date, self.tz_name)
        lessons = self.lesson_repository.get_tutor_lessons_in_range(
            tutor_id, day_start - timedelta(days=1), day_end
        )

        intervals: List[BusyInterval] = []
        session_members: Dict[str, List[Lesson]] = defaultdict(list)
        for lesson in lessons:
            if lesson.session_id:
                if lesson.session_id != exclude_session_id:
                    session_members[lesson.session_id].append(lesson)
                continue
            if lesson.id == exclude_lesson_id:
                continue
            block = self._block(
                ensure_utc(lesson.scheduled_at),
                lesson.duration_min,
                target_date,
                BusySlotType.LESSON,
                f"{lesson.subject} lesson",
                lesson.id,
            )
            if block:
                intervals.append(block)

        stored_sessions: Dict[str, LessonSession] = {
            s.id: s for s in self.lesson_repository.get_sessions_by_ids(list(session_members))
        }
        for session_id, members in session_members.items():
            stored = stored_sessions.get(session_id)
            if stored is not None:
                start, duration = ensure_utc(stored.scheduled_at), stored.duration_min
            else:
                start, duration = self.synthesize_session_block(members)
            block = self._block(
                start,
                duration,
                target_date,
                BusySlotType.SESSION,
                f"combined session ({len(members)} lessons)",
                session_id,
            )
            if block:
                intervals.append(block)

        for slot in self.availability_repository.get_breaks_for_date(tutor_id, target_date):
            intervals.append(
                BusyInterval(
                    start=slot.start_time,
                    end=slot.end_time,
                    type=BusySlotType.BREAK,
                    label=slot.notes or "break",
                    source_id=slot.id,
                )
            )

        intervals.sort(key=lambda i: to_local_minutes(i.start, tz_name=self.tz_name) or 0)
        return intervals

    @BaseService.measure_operation("get_availability_windows")
    def get_availability_windows(self, tutor_id: str, target_date: date) -> List[AvailabilityWindow]:
        """Recurring weekly slots plus date-specific slots for the date."""
        return [
            AvailabilityWindow(start=slot.start_time, end=slot.end_time)
            for slot in self.availability_repository.get_availability_for_date(tutor_id, target_date)
        ]

    def check_slot(
        self,
        tutor_id: str,
        start_utc: datetime,
        duration_min: int,
        *,
        exclude_lesson_id: Optional[str] = None,
        exclude_session_id: Optional[str] = None,
    ) -> List[BusyInterval]:
        """
        Busy intervals a proposed slot would overlap.

        A slot that runs past local midnight is also checked against the
        following dates. Excluding a session member excludes its whole
        session, since moving a member moves the session.
        """
        if exclude_lesson_id and not exclude_session_id:
            excluded = self.lesson_repository.get_lesson_for_tutor(tutor_id, exclude_lesson_id)
            if excluded is not None and excluded.session_id:
                exclude_session_id = excluded.session_id

        local_start = to_business_time(start_utc, self.tz_name)
        local_end = to_business_time(ensure_utc(start_utc) + timedelta(minutes=duration_min), self.tz_name)
        busy = self.get_busy_intervals(
            tutor_id,
            local_start.date(),
            exclude_lesson_id=exclude_lesson_id,
            exclude_session_id=exclude_session_id,
        )
        conflicts = find_conflicts(local_start.time(), duration_min, busy, tz_name=self.tz_name)

        day = local_start.date() + timedelta(days=1)
        while day <= local_end.date():
            minutes = (
                time_to_minutes(local_end.time()) if day == local_end.date() else MINUTES_PER_DAY
            )
            if minutes > 0:
                next_busy = self.get_busy_intervals(
                    tutor_id,
                    day,
                    exclude_lesson_id=exclude_lesson_id,
                    exclude_session_id=exclude_session_id,
                )
                conflicts.extend(find_conflicts(time(0, 0), minutes, next_busy, tz_name=self.tz_name))
            day += timedelta(days=1)

        # A block spanning midnight shows up once per date it touches
        unique: List[BusyInterval] = []
        seen = set()
        for interval in conflicts:
            key = (interval.type, interval.source_id) if interval.source_id else interval
            if key not in seen:
                seen.add(key)
                unique.append(interval)
        return unique

    @BaseService.measure_operation("list_free_starts_for_date")
    def list_free_starts_for_date(
        self,
        tutor_id: str,
        target_date: date,
        required_duration: int,
        step_minutes: Optional[int] = None,
    ) -> List[FreeStart]:
        """Candidate starts across every availability window on the date."""
        step = step_minutes or settings.free_start_step_minutes
        busy = self.get_busy_intervals(tutor_id, target_date)
        seen: Dict[int, FreeStart] = {}
        for window in self.get_availability_windows(tutor_id, target_date):
            for start in list_free_starts(window, busy, required_duration, step, tz_name=self.tz_name):
                seen.setdefault(start.minutes, start)
        return [seen[key] for key in sorted(seen)]

    def describe_day(
        self, tutor_id: str, target_date: date, required_duration: int, step_minutes: Optional[int] = None
    ) -> DayScheduleResponse:
        windows = self.get_availability_windows(tutor_id, target_date)
        busy = self.get_busy_intervals(tutor_id, target_date)
        starts = self.list_free_starts_for_date(tutor_id, target_date, required_duration, step_minutes)
        window_rows = []
        for window in windows:
            start = to_local_minutes(window.start, tz_name=self.tz_name)
            end = to_local_minutes(window.end, is_end_time=True, tz_name=self.tz_name)
            if start is None or end is None:
                continue
            window_rows.append(
                AvailabilityWindowResponse(
                    start=minutes_to_time_str(start), end=minutes_to_time_str(end)
                )
            )
        return DayScheduleResponse(
            day=target_date,
            timezone=str(get_business_timezone(self.tz_name)),
            windows=window_rows,
            busy=[_to_response(i, self.tz_name) for i in busy],
            starts=[FreeStartResponse(time=s.time, is_busy=s.is_busy) for s in starts],
        )

    def to_responses(self, intervals: Iterable[BusyInterval]) -> List[BusyIntervalResponse]:
        return [_to_response(i, self.tz_name) for i in intervals]
