"""
Recurrence expansion and combined-session duration planning.

expand() turns one lesson request into its dated instances. Steps are taken
on the business-timezone wall clock, so a 16:00 weekly lesson stays at
16:00 across DST changes. Monthly steps are anchored to the start's day of
month and clamp to the last day of shorter months.
"""

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import List, Optional, Sequence, Tuple, Union

from ..core.config import settings as app_settings
from ..core.enums import RecurrenceRule, SessionScenario, Subject
from ..core.timezone_utils import ensure_utc, get_business_timezone, to_business_time
from ..schemas.rates import RateSettings
from .rate_resolver import get_subject_rate_config

logger = logging.getLogger(__name__)

_STEP_DAYS = {RecurrenceRule.WEEKLY: 7, RecurrenceRule.BIWEEKLY: 14}


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _coerce_rule(rule: Union[RecurrenceRule, str, None]) -> Optional[RecurrenceRule]:
    if isinstance(rule, RecurrenceRule):
        return rule
    if rule is None:
        return RecurrenceRule.NONE
    try:
        return RecurrenceRule(str(rule).strip().lower())
    except ValueError:
        return None


def expand(
    start: datetime,
    rule: Union[RecurrenceRule, str, None],
    end: Optional[Union[date, datetime]] = None,
    *,
    max_instances: Optional[int] = None,
    tz_name: Optional[str] = None,
) -> List[datetime]:
    """
    Expand a start instant into its recurrence instances.

    Args:
        start: First instance. Naive values are treated as UTC.
        rule: none, weekly, biweekly or monthly
        end: Inclusive bound. A date covers that whole local business day;
            a datetime is compared as an instant. Defaults to one year
            (recurrence_default_horizon_months) after start.
        max_instances: Hard cap on the list length

    Returns:
        Strictly increasing instants. The first element is ``start`` itself.
        Later elements carry start's tzinfo (UTC when start was naive).
    """
    limit = max_instances or app_settings.recurrence_max_instances
    parsed_rule = _coerce_rule(rule)
    if parsed_rule is None:
        logger.warning("Unknown recurrence rule %r; producing a single instance", rule)
        return [start]
    if parsed_rule is RecurrenceRule.NONE or limit <= 1:
        return [start]

    tz = get_business_timezone(tz_name)
    start_utc = ensure_utc(start)
    local_start = to_business_time(start_utc, tz_name).replace(tzinfo=None)

    if end is None:
        horizon = add_months(local_start, app_settings.recurrence_default_horizon_months)
        end_utc = tz.localize(horizon).astimezone(start_utc.tzinfo)

        def within(candidate_local: datetime, candidate_utc: datetime) -> bool:
            return candidate_utc <= end_utc

    elif isinstance(end, datetime):
        end_utc = ensure_utc(end)

        def within(candidate_local: datetime, candidate_utc: datetime) -> bool:
            return candidate_utc <= end_utc

    else:
        end_day = end

        def within(candidate_local: datetime, candidate_utc: datetime) -> bool:
            return candidate_local.date() <= end_day

    def step(index: int) -> datetime:
        if parsed_rule is RecurrenceRule.MONTHLY:
            return add_months(local_start, index)
        return local_start + timedelta(days=_STEP_DAYS[parsed_rule] * index)

    instances: List[datetime] = [start]
    last_utc = start_utc
    index = 1
    while len(instances) < limit:
        candidate_local = step(index)
        index += 1
        candidate_utc = tz.normalize(tz.localize(candidate_local)).astimezone(start_utc.tzinfo)
        if not within(candidate_local, candidate_utc):
            break
        if candidate_utc <= last_utc:
            continue
        last_utc = candidate_utc
        if start.tzinfo is None:
            instances.append(candidate_utc.replace(tzinfo=None))
        else:
            instances.append(candidate_utc.astimezone(start.tzinfo))
    else:
        logger.warning("Recurrence expansion capped at %d instances", limit)

    return instances


# Combined-session duration planning


@dataclass(frozen=True)
class SessionMemberPlan:
    student_id: str
    subject: str
    duration_min: int


@dataclass(frozen=True)
class SessionPlan:
    scenario: SessionScenario
    members: Tuple[SessionMemberPlan, ...]
    total_duration_min: int


def classify_session(pairs: Sequence[Tuple[str, str]]) -> SessionScenario:
    """
    Work out which duration policy a combined booking falls under.

    Multi-subject (one student with several subjects) takes precedence over
    everything else for the whole request.
    """
    if len(pairs) <= 1:
        return SessionScenario.SINGLE
    per_student = Counter(student_id for student_id, _ in pairs)
    if any(count > 1 for count in per_student.values()):
        return SessionScenario.MULTI_SUBJECT
    if len({subject for _, subject in pairs}) == 1:
        return SessionScenario.GROUP
    return SessionScenario.SEQUENTIAL


def plan_session_lessons(
    pairs: Sequence[Tuple[str, Union[Subject, str]]],
    duration_min: int,
    rate_settings: Optional[RateSettings] = None,
) -> SessionPlan:
    """
    Assign a duration to every member of a combined booking.

    - single: the one lesson gets the full duration
    - group (same subject): every member gets the full duration
    - sequential (different subjects): the block is split evenly, floored
      to whole minutes and never below one minute
    - multi_subject: each lesson gets its subject's configured base
      duration and the block becomes their sum, whatever was entered

    Raises:
        ValueError: If no members are given
    """
    if not pairs:
        raise ValueError("a session needs at least one student/subject pair")

    normalized = [
        (student_id, subject.value if isinstance(subject, Subject) else str(subject))
        for student_id, subject in pairs
    ]
    scenario = classify_session(normalized)

    if scenario is SessionScenario.MULTI_SUBJECT:
        durations = [
            get_subject_rate_config(rate_settings, subject).config.base_duration
            for _, subject in normalized
        ]
        total = sum(durations)
        if len({student_id for student_id, _ in normalized}) > 1:
            logger.warning(
                "Combined booking mixes a multi-subject student with other students; "
                "per-subject base durations applied to all %d lessons",
                len(normalized),
            )
    elif scenario is SessionScenario.SEQUENTIAL:
        per_lesson = max(1, duration_min // len(normalized))
        durations = [per_lesson] * len(normalized)
        total = duration_min
    else:
        durations = [duration_min] * len(normalized)
        total = duration_min

    members = tuple(
        SessionMemberPlan(student_id=student_id, subject=subject, duration_min=minutes)
        for (student_id, subject), minutes in zip(normalized, durations)
    )
    return SessionPlan(scenario=scenario, members=members, total_duration_min=total)
