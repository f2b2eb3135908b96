"""Unit tests for recurrence expansion and combined-session duration planning."""

from datetime import date, datetime

import pytest

from tutordesk.core.enums import RecurrenceRule, SessionScenario
from tutordesk.core.timezone_utils import to_business_time
from tutordesk.schemas.rates import RateSettings
from tutordesk.services.recurrence import add_months, classify_session, expand, plan_session_lessons

from tests._utils.clock import local_utc

TZ = "America/Los_Angeles"


def _local_dates(instances):
    return [to_business_time(value, TZ).date() for value in instances]


class TestExpand:
    def test_none_returns_only_start(self):
        start = local_utc(2026, 4, 14)
        assert expand(start, RecurrenceRule.NONE, tz_name=TZ) == [start]
        assert expand(start, None, tz_name=TZ) == [start]

    def test_weekly_until_inclusive_end_date(self):
        start = local_utc(2026, 4, 14)
        result = expand(start, "weekly", date(2026, 5, 5), tz_name=TZ)

        assert _local_dates(result) == [
            date(2026, 4, 14),
            date(2026, 4, 21),
            date(2026, 4, 28),
            date(2026, 5, 5),
        ]
        assert result[0] == start

    def test_biweekly_steps_fourteen_days(self):
        result = expand(local_utc(2026, 4, 14), RecurrenceRule.BIWEEKLY, date(2026, 5, 11), tz_name=TZ)

        assert _local_dates(result) == [date(2026, 4, 14), date(2026, 4, 28)]

    def test_monthly_from_jan_31_clamps_without_drifting(self):
        result = expand(local_utc(2026, 1, 31), "monthly", date(2026, 5, 31), tz_name=TZ)

        assert _local_dates(result) == [
            date(2026, 1, 31),
            date(2026, 2, 28),
            date(2026, 3, 31),
            date(2026, 4, 30),
            date(2026, 5, 31),
        ]

    def test_weekly_keeps_wall_clock_time_across_dst(self):
        # US DST starts 2026-03-08
        result = expand(local_utc(2026, 3, 2, 16, 0), "weekly", date(2026, 3, 16), tz_name=TZ)

        local_times = [to_business_time(value, TZ) for value in result]
        assert [t.hour for t in local_times] == [16, 16, 16]
        assert result[0].hour != result[1].hour  # the UTC offset changed

    def test_results_strictly_increase(self):
        result = expand(local_utc(2026, 1, 31), "monthly", date(2027, 1, 31), tz_name=TZ)
        assert all(a < b for a, b in zip(result, result[1:]))

    def test_default_horizon_is_one_year(self):
        result = expand(local_utc(2026, 4, 14), "weekly", tz_name=TZ)

        assert len(result) == 53
        assert _local_dates(result)[-1] == date(2027, 4, 13)

    def test_end_instant_is_inclusive(self):
        start = local_utc(2026, 4, 14)
        result = expand(start, "weekly", local_utc(2026, 4, 28), tz_name=TZ)
        assert len(result) == 3

    def test_instance_cap(self):
        result = expand(local_utc(2026, 4, 14), "weekly", date(2100, 1, 1), max_instances=10, tz_name=TZ)
        assert len(result) == 10

    def test_unknown_rule_yields_single_instance(self):
        start = local_utc(2026, 4, 14)
        assert expand(start, "fortnightly", tz_name=TZ) == [start]

    def test_naive_start_returns_naive_utc(self):
        start = datetime(2026, 4, 14, 23, 0)
        result = expand(start, "weekly", date(2026, 4, 21), tz_name=TZ)

        assert result == [start, datetime(2026, 4, 21, 23, 0)]

    def test_end_before_start_still_returns_start(self):
        start = local_utc(2026, 4, 14)
        assert expand(start, "weekly", date(2026, 1, 1), tz_name=TZ) == [start]


class TestAddMonths:
    def test_clamps_to_leap_day(self):
        assert add_months(datetime(2028, 1, 31, 9), 1) == datetime(2028, 2, 29, 9)

    def test_crosses_year_boundary(self):
        assert add_months(datetime(2026, 11, 30), 3) == datetime(2027, 2, 28)


@pytest.fixture
def rates() -> RateSettings:
    return RateSettings.from_raw(
        subject_rates={
            "piano": {"rate": 30, "base_duration": 30},
            "reading": {"rate": 50, "base_duration": 60},
            "math": {"rate": 35, "base_duration": 45},
        }
    )


class TestPlanSessionLessons:
    def test_single_pair_gets_full_duration(self, rates):
        plan = plan_session_lessons([("s1", "math")], 50, rates)

        assert plan.scenario is SessionScenario.SINGLE
        assert [m.duration_min for m in plan.members] == [50]

    def test_group_lesson_gives_everyone_full_duration(self, rates):
        plan = plan_session_lessons([("s1", "math"), ("s2", "math")], 60, rates)

        assert plan.scenario is SessionScenario.GROUP
        assert [m.duration_min for m in plan.members] == [60, 60]
        assert plan.total_duration_min == 60

    def test_sequential_lesson_splits_and_floors(self, rates):
        plan = plan_session_lessons([("s1", "math"), ("s2", "reading"), ("s3", "piano")], 100, rates)

        assert plan.scenario is SessionScenario.SEQUENTIAL
        assert [m.duration_min for m in plan.members] == [33, 33, 33]
        assert plan.total_duration_min == 100

    def test_sequential_split_never_below_one_minute(self, rates):
        plan = plan_session_lessons([("s1", "math"), ("s2", "reading")], 1, rates)
        assert [m.duration_min for m in plan.members] == [1, 1]

    def test_multi_subject_student_uses_base_durations(self, rates):
        plan = plan_session_lessons([("s1", "piano"), ("s1", "reading")], 45, rates)

        assert plan.scenario is SessionScenario.MULTI_SUBJECT
        assert {m.subject: m.duration_min for m in plan.members} == {"piano": 30, "reading": 60}
        assert plan.total_duration_min == 90

    def test_multi_subject_takes_precedence_for_whole_request(self, rates):
        plan = plan_session_lessons(
            [("s1", "piano"), ("s1", "reading"), ("s2", "math"), ("s3", "math")], 60, rates
        )

        assert plan.scenario is SessionScenario.MULTI_SUBJECT
        assert [m.duration_min for m in plan.members] == [30, 60, 45, 45]
        assert plan.total_duration_min == 180

    def test_unconfigured_subject_uses_default_base(self):
        plan = plan_session_lessons([("s1", "speech"), ("s1", "english")], 20)
        assert [m.duration_min for m in plan.members] == [60, 60]

    def test_empty_request_is_rejected(self):
        with pytest.raises(ValueError):
            plan_session_lessons([], 60)

    def test_classify_by_subjects(self):
        assert classify_session([("a", "math"), ("b", "math")]) is SessionScenario.GROUP
        assert classify_session([("a", "math"), ("a", "piano")]) is SessionScenario.MULTI_SUBJECT
        assert classify_session([("a", "math"), ("b", "piano")]) is SessionScenario.SEQUENTIAL
