"""
Unit tests for WorkingCalendar and the YAML configuration models
"""
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from grievance_sla.core import CalendarConfigException
from grievance_sla.escalation.domain import (
    CalendarConfig,
    EscalationConfig,
    EscalationRule,
    WorkingCalendar,
)
from grievance_sla.escalation.domain.value_objects import normalize_weekday


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestWorkingCalendarPredicates:

    def test_sunday_is_not_a_working_day(self, calendar):
        assert calendar.is_working_day(date(2024, 1, 7)) is False
        assert calendar.is_working_day(date(2024, 1, 6)) is True

    def test_holiday_is_not_a_working_day(self, calendar):
        holiday_calendar = calendar.reconfigured(holidays=frozenset({date(2024, 1, 2)}))

        assert holiday_calendar.is_holiday(utc(2024, 1, 2, 12))
        assert holiday_calendar.is_working_day(utc(2024, 1, 2, 12)) is False
        assert holiday_calendar.is_working_day(utc(2024, 1, 3, 12)) is True

    def test_holiday_entries_normalized_to_dates(self):
        cal = WorkingCalendar(holidays=frozenset({datetime(2024, 1, 2, 15, 30)}))
        assert cal.holidays == frozenset({date(2024, 1, 2)})

    def test_working_hours_window_is_half_open(self, calendar):
        assert calendar.is_within_working_hours(utc(2024, 1, 1, 9, 0))
        assert calendar.is_within_working_hours(utc(2024, 1, 1, 16, 59))
        assert not calendar.is_within_working_hours(utc(2024, 1, 1, 17, 0))
        assert not calendar.is_within_working_hours(utc(2024, 1, 1, 8, 59))

    def test_working_time_needs_working_day_and_hours(self, calendar):
        assert calendar.is_working_time(utc(2024, 1, 1, 10))
        assert not calendar.is_working_time(utc(2024, 1, 7, 10))
        assert not calendar.is_working_time(utc(2024, 1, 1, 20))

    def test_day_boundaries(self, calendar):
        instant = utc(2024, 1, 3, 13, 45)
        assert calendar.start_of_working_day(instant) == utc(2024, 1, 3, 9)
        assert calendar.end_of_working_day(instant) == utc(2024, 1, 3, 17)

    def test_working_day_hours_follow_window(self):
        cal = WorkingCalendar(daily_start=time(10, 0), daily_end=time(14, 30))
        assert cal.working_day_hours == 4.5


class TestNextWorkingPeriodStart:

    def test_skips_weekly_off_day(self, calendar):
        assert calendar.next_working_period_start(utc(2024, 1, 6, 18)) == utc(2024, 1, 8, 9)

    def test_is_strictly_after_the_instants_date(self, calendar):
        """Even before opening time, the next period is the following day."""
        assert calendar.next_working_period_start(utc(2024, 1, 1, 7)) == utc(2024, 1, 2, 9)

    def test_skips_holiday_after_weekend(self, weekend_calendar):
        cal = weekend_calendar.reconfigured(holidays=frozenset({date(2024, 1, 8)}))
        assert cal.next_working_period_start(utc(2024, 1, 5, 16)) == utc(2024, 1, 9, 9)

    def test_raises_when_no_working_day_within_a_year(self):
        sundays = frozenset(date(2024, 1, 7) + timedelta(weeks=k) for k in range(60))
        cal = WorkingCalendar(off_days=frozenset({0, 1, 2, 3, 4, 5}), holidays=sundays)

        with pytest.raises(CalendarConfigException):
            cal.next_working_period_start(datetime(2024, 1, 1, 12))


class TestWorkingCalendarValidation:

    def test_rejects_inverted_window(self):
        with pytest.raises(CalendarConfigException):
            WorkingCalendar(daily_start=time(17, 0), daily_end=time(9, 0))

    def test_rejects_empty_window(self):
        with pytest.raises(CalendarConfigException):
            WorkingCalendar(daily_start=time(9, 0), daily_end=time(9, 0))

    def test_rejects_all_days_off(self):
        with pytest.raises(CalendarConfigException):
            WorkingCalendar(off_days=frozenset(range(7)))

    def test_weekday_names_are_normalized(self):
        cal = WorkingCalendar(off_days=frozenset({"Saturday", "sun"}))
        assert cal.off_days == frozenset({5, 6})

    @pytest.mark.parametrize("value", [7, -1, "funday"])
    def test_unknown_weekday_rejected(self, value):
        with pytest.raises(CalendarConfigException):
            normalize_weekday(value)

    def test_reconfigured_revalidates(self, calendar):
        with pytest.raises(CalendarConfigException):
            calendar.reconfigured(daily_end=time(8, 0))


class TestTimezoneHandling:

    def test_aware_instants_are_viewed_in_organization_timezone(self):
        cal = WorkingCalendar(timezone=ZoneInfo("Asia/Kolkata"))
        # 03:30 UTC is 09:00 in Kolkata
        assert cal.is_within_working_hours(utc(2024, 1, 1, 3, 30))
        assert not cal.is_within_working_hours(utc(2024, 1, 1, 12, 0))

    def test_naive_instants_are_local_time(self):
        cal = WorkingCalendar(timezone=ZoneInfo("Asia/Kolkata"))
        localized = cal.localize(datetime(2024, 1, 1, 9, 0))
        assert localized.utcoffset() == timedelta(hours=5, minutes=30)
        assert localized.hour == 9


class TestConfigModels:

    def test_calendar_config_builds_calendar(self):
        config = CalendarConfig(
            daily_start="08:30",
            daily_end="16:30",
            off_days=["saturday", 6],
            holidays=[{"date": "2025-01-26", "name": "Republic Day"}],
        )
        cal = config.to_calendar(timezone.utc)

        assert cal.daily_start == time(8, 30)
        assert cal.off_days == frozenset({5, 6})
        assert cal.is_holiday(date(2025, 1, 26))
        assert config.holiday_name(date(2025, 1, 26)) == "Republic Day"
        assert config.holiday_name(date(2025, 1, 27)) is None

    def test_calendar_config_defaults_to_sunday_off(self):
        cal = CalendarConfig().to_calendar(timezone.utc)
        assert cal.off_days == frozenset({6})
        assert cal.working_day_hours == 8.0

    def test_calendar_config_rejects_inverted_window(self):
        with pytest.raises(ValidationError):
            CalendarConfig(daily_start="18:00", daily_end="09:00")

    def test_rule_level_is_capped(self):
        rule = EscalationRule(id="r", role="x", escalation_level=5, notify_to_role="super_admin")
        assert rule.target_level == 2

    def test_rule_level_must_be_positive(self):
        with pytest.raises(ValidationError):
            EscalationRule(id="r", role="x", escalation_level=0, notify_to_role="hr_admin")

    def test_duplicate_rule_ids_rejected(self):
        rule = {"id": "dup", "role": "x", "escalation_level": 1, "notify_to_role": "hr_admin"}
        with pytest.raises(ValidationError):
            EscalationConfig(escalation_rules=[rule, rule])

    def test_get_rule(self):
        config = EscalationConfig(escalation_rules=[
            {"id": "a", "role": "x", "escalation_level": 1, "notify_to_role": "hr_admin"},
        ])
        assert config.get_rule("a").notify_to_role == "hr_admin"
        assert config.get_rule("missing") is None
