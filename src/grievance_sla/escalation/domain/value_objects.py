"""
Escalation Value Objects
=========================

Immutable value objects for the escalation domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import FrozenSet, List, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from grievance_sla.config import MAX_ESCALATION_LEVEL
from grievance_sla.core import CalendarConfigException


DateLike = Union[date, datetime]

# Bound on day-by-day scans so a calendar with no working days fails loudly
MAX_CALENDAR_SCAN_DAYS = 366

WEEKDAY_NAMES = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
    "mon": 0, "tue": 1, "wed": 2, "thu": 3,
    "fri": 4, "sat": 5, "sun": 6,
}


def normalize_weekday(day: Union[int, str]) -> int:
    """
    Convert a weekday name or number to Python's weekday number.

    Args:
        day: 0-6 (Monday=0) or an English day name, full or abbreviated

    Returns:
        Weekday number (0=Monday, 6=Sunday)
    """
    if isinstance(day, int):
        if 0 <= day <= 6:
            return day
        raise CalendarConfigException(f"Weekday out of range: {day}")

    number = WEEKDAY_NAMES.get(str(day).strip().lower())
    if number is None:
        raise CalendarConfigException(f"Unknown weekday: {day!r}")
    return number


@dataclass(frozen=True)
class WorkingCalendar:
    """
    Immutable working-time calendar for the whole organization.

    Instants are always viewed in the organization timezone: aware
    datetimes are converted, naive ones are taken as local time.
    Holidays are kept at date granularity.
    """

    daily_start: time = time(9, 0)
    daily_end: time = time(17, 0)
    off_days: FrozenSet[int] = frozenset({6})
    holidays: FrozenSet[date] = frozenset()
    timezone: tzinfo = field(default_factory=lambda: ZoneInfo("UTC"))

    def __post_init__(self):
        if self.daily_start >= self.daily_end:
            raise CalendarConfigException(
                "daily_start must be before daily_end",
                {"daily_start": self.daily_start.isoformat(), "daily_end": self.daily_end.isoformat()}
            )

        off_days = frozenset(normalize_weekday(d) for d in self.off_days)
        if len(off_days) == 7:
            raise CalendarConfigException("Every day of the week is an off-day")

        holidays = frozenset(
            h.date() if isinstance(h, datetime) else h
            for h in self.holidays
        )

        # Frozen dataclass, so normalized values go through object.__setattr__
        object.__setattr__(self, "off_days", off_days)
        object.__setattr__(self, "holidays", holidays)

    # ========== Conversions ==========

    def localize(self, instant: datetime) -> datetime:
        """View an instant in the organization timezone."""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self.timezone)
        return instant.astimezone(self.timezone)

    def at(self, day: date, moment: time) -> datetime:
        """Organization-local datetime for a date and time of day."""
        return datetime.combine(day, moment, tzinfo=self.timezone)

    @property
    def working_day_hours(self) -> float:
        """Length of one full working window in hours."""
        return self.working_day_length.total_seconds() / 3600

    @property
    def working_day_length(self) -> timedelta:
        reference = date(2000, 1, 3)
        return datetime.combine(reference, self.daily_end) - datetime.combine(reference, self.daily_start)

    # ========== Predicates ==========

    def is_holiday(self, day: DateLike) -> bool:
        """Date-only match against the holiday set."""
        if isinstance(day, datetime):
            day = self.localize(day).date()
        return day in self.holidays

    def is_working_day(self, instant: DateLike) -> bool:
        """True when the day is neither a weekly off-day nor a holiday."""
        if isinstance(instant, datetime):
            day = self.localize(instant).date()
        else:
            day = instant
        return day.weekday() not in self.off_days and not self.is_holiday(day)

    def is_within_working_hours(self, instant: datetime) -> bool:
        """True when the time of day falls in [daily_start, daily_end)."""
        moment = self.localize(instant).time()
        return self.daily_start <= moment < self.daily_end

    def is_working_time(self, instant: datetime) -> bool:
        """Working day and within working hours."""
        return self.is_working_day(instant) and self.is_within_working_hours(instant)

    # ========== Boundaries ==========

    def start_of_working_day(self, instant: datetime) -> datetime:
        return self.at(self.localize(instant).date(), self.daily_start)

    def end_of_working_day(self, instant: datetime) -> datetime:
        return self.at(self.localize(instant).date(), self.daily_end)

    def next_working_period_start(self, instant: datetime) -> datetime:
        """
        Opening time of the first working day after the instant's date.

        Raises:
            CalendarConfigException: no working day within the scan bound
        """
        day = self.localize(instant).date()
        for offset in range(1, MAX_CALENDAR_SCAN_DAYS + 1):
            candidate = day + timedelta(days=offset)
            if self.is_working_day(candidate):
                return self.at(candidate, self.daily_start)

        raise CalendarConfigException(
            f"No working day within {MAX_CALENDAR_SCAN_DAYS} days of {day.isoformat()}",
            {"from": day.isoformat(), "holidays": len(self.holidays)}
        )

    def reconfigured(self, **changes) -> "WorkingCalendar":
        """Copy with some attributes replaced; validation runs again."""
        values = {
            "daily_start": self.daily_start,
            "daily_end": self.daily_end,
            "off_days": self.off_days,
            "holidays": self.holidays,
            "timezone": self.timezone,
        }
        values.update(changes)
        return WorkingCalendar(**values)


# ========== YAML configuration models ==========

class HolidayEntry(BaseModel):
    """A named holiday from the calendar config."""
    date: date
    name: str = Field(default="", description="Display name")


class CalendarConfig(BaseModel):
    """
    Calendar section of the escalation config file.

    Example:
        calendar:
          daily_start: "09:00"
          daily_end: "17:00"
          off_days: [sunday]
          holidays:
            - {date: 2025-01-26, name: Republic Day}
    """
    daily_start: time = Field(default=time(9, 0), description="Opening time")
    daily_end: time = Field(default=time(17, 0), description="Closing time")
    off_days: List[Union[int, str]] = Field(
        default_factory=lambda: ["sunday"],
        description="Weekly off-days (names or 0=Monday..6=Sunday)"
    )
    holidays: List[HolidayEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_window(self) -> "CalendarConfig":
        if self.daily_start >= self.daily_end:
            raise ValueError("daily_start must be before daily_end")
        return self

    def to_calendar(self, timezone: tzinfo) -> WorkingCalendar:
        """Build the immutable calendar used by the engine."""
        return WorkingCalendar(
            daily_start=self.daily_start,
            daily_end=self.daily_end,
            off_days=frozenset(normalize_weekday(d) for d in self.off_days),
            holidays=frozenset(h.date for h in self.holidays),
            timezone=timezone,
        )

    def holiday_name(self, day: date) -> Optional[str]:
        for holiday in self.holidays:
            if holiday.date == day:
                return holiday.name
        return None


class EscalationRule(BaseModel):
    """
    Manual escalation rule.

    escalation_level is the absolute level a manual escalation moves the
    ticket to; values above the maximum level are capped.
    """
    id: str = Field(..., min_length=1)
    role: str = Field(..., description="Role the rule applies to")
    threshold_minutes: int = Field(default=0, ge=0)
    escalation_level: int = Field(..., ge=1)
    notify_to_role: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @property
    def target_level(self) -> int:
        return min(self.escalation_level, MAX_ESCALATION_LEVEL)


class EscalationConfig(BaseModel):
    """Full escalation config file: calendar plus manual rules."""
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    escalation_rules: List[EscalationRule] = Field(default_factory=list)

    @field_validator("escalation_rules")
    @classmethod
    def validate_unique_ids(cls, v: List[EscalationRule]) -> List[EscalationRule]:
        seen = set()
        for rule in v:
            if rule.id in seen:
                raise ValueError(f"duplicate escalation rule id: {rule.id}")
            seen.add(rule.id)
        return v

    def get_rule(self, rule_id: str) -> Optional[EscalationRule]:
        for rule in self.escalation_rules:
            if rule.id == rule_id:
                return rule
        return None
