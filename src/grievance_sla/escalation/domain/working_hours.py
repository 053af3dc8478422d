"""
Working Hours Calculation
==========================

Business-time arithmetic over a WorkingCalendar.

Everything here is a pure function of its arguments: no clock reads,
no shared state. Unusable timestamps degrade to zero elapsed time and
are logged rather than raised.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from grievance_sla.escalation.domain.value_objects import (
    WorkingCalendar,
    MAX_CALENDAR_SCAN_DAYS,
)
from grievance_sla.core import CalendarConfigException

logger = logging.getLogger(__name__)

InstantLike = Union[datetime, str, None]


def parse_instant(value: InstantLike) -> Optional[datetime]:
    """
    Coerce a datetime or ISO-8601 string to a datetime.

    Returns:
        The datetime, or None when the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _overlap(start: datetime, end: datetime, window_start: datetime, window_end: datetime) -> timedelta:
    lower = max(start, window_start)
    upper = min(end, window_end)
    if upper <= lower:
        return timedelta(0)
    return upper - lower


class WorkingHoursCalculator:
    """
    Pure functions for working-time calculations.

    Stateless utility class: all business-time logic in one place.
    """

    @staticmethod
    def working_duration(
        start: InstantLike,
        end: InstantLike,
        calendar: WorkingCalendar
    ) -> timedelta:
        """
        Working time between two instants as a timedelta.

        See compute_working_hours for the counting rules.
        """
        start_dt = parse_instant(start)
        end_dt = parse_instant(end)
        if start_dt is None or end_dt is None:
            logger.warning(
                "Invalid timestamp for working hours calculation, treating as zero",
                extra={"start": str(start), "end": str(end)}
            )
            return timedelta(0)

        start_dt = calendar.localize(start_dt)
        end_dt = calendar.localize(end_dt)

        if end_dt <= start_dt:
            return timedelta(0)

        first_day = start_dt.date()
        last_day = end_dt.date()

        # Single calendar day
        if first_day == last_day:
            if not calendar.is_working_day(first_day):
                return timedelta(0)
            return _overlap(
                start_dt, end_dt,
                calendar.at(first_day, calendar.daily_start),
                calendar.at(first_day, calendar.daily_end),
            )

        total = timedelta(0)

        # First (possibly partial) day
        if calendar.is_working_day(first_day):
            total += _overlap(
                start_dt, calendar.at(first_day, calendar.daily_end),
                calendar.at(first_day, calendar.daily_start),
                calendar.at(first_day, calendar.daily_end),
            )

        # Full days strictly between
        full_day = calendar.working_day_length
        day = first_day + timedelta(days=1)
        while day < last_day:
            if calendar.is_working_day(day):
                total += full_day
            day += timedelta(days=1)

        # Last (possibly partial) day
        if calendar.is_working_day(last_day):
            total += _overlap(
                calendar.at(last_day, calendar.daily_start), end_dt,
                calendar.at(last_day, calendar.daily_start),
                calendar.at(last_day, calendar.daily_end),
            )

        return total

    @staticmethod
    def compute_working_hours(
        start: InstantLike,
        end: InstantLike,
        calendar: WorkingCalendar
    ) -> float:
        """
        Elapsed working hours between two instants.

        Args:
            start: Interval start (datetime or ISO string)
            end: Interval end (datetime or ISO string)
            calendar: Working calendar to count against

        Returns:
            Hours >= 0. Zero when end <= start or a timestamp is unusable.

        Counting rules:
            - first day: overlap of [start, end of day] with the window
            - each full day strictly between: one full window if it is a
              working day
            - last day: overlap of [window start, end] with the window
        """
        duration = WorkingHoursCalculator.working_duration(start, end, calendar)
        return duration.total_seconds() / 3600

    @staticmethod
    def add_working_hours(
        start: datetime,
        hours: float,
        calendar: WorkingCalendar
    ) -> datetime:
        """
        Instant reached after spending `hours` of working time from `start`.

        A start outside working time begins counting at the next window.
        The result is in the organization timezone.

        Raises:
            CalendarConfigException: no working day found within the scan
                bound while time remains
        """
        current = calendar.localize(start)
        remaining = timedelta(hours=hours)
        if remaining <= timedelta(0):
            return current

        idle_days = 0
        while True:
            day = current.date()
            window_start = calendar.at(day, calendar.daily_start)
            window_end = calendar.at(day, calendar.daily_end)

            if calendar.is_working_day(day) and current < window_end:
                begin = max(current, window_start)
                available = window_end - begin
                if remaining <= available:
                    return begin + remaining
                remaining -= available
                idle_days = 0
            else:
                idle_days += 1
                if idle_days > MAX_CALENDAR_SCAN_DAYS:
                    raise CalendarConfigException(
                        f"No working day within {MAX_CALENDAR_SCAN_DAYS} days of {day.isoformat()}"
                    )

            current = calendar.at(day + timedelta(days=1), calendar.daily_start)

