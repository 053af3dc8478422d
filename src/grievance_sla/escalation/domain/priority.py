"""
Priority Classification
========================

Derives a ticket's priority from elapsed working time and its attributes,
and evaluates working-hours SLA targets.

Priority is recomputed from scratch on every call and never cached:
the result depends on `now`.
"""

from datetime import datetime
from typing import Optional

from grievance_sla.config import Priority, TicketStatus, SLAStatus, PRIORITY_RANK, FINAL_STATUSES
from grievance_sla.escalation.domain.value_objects import WorkingCalendar
from grievance_sla.escalation.domain.working_hours import (
    WorkingHoursCalculator,
    InstantLike,
    parse_instant,
)


# Categories that are always at least high priority
HIGH_PRIORITY_CATEGORIES = ("health", "insurance", "advance", "esi", "medical")
FACILITY_CATEGORY = "facility"

# Working-hours thresholds on age since creation
CRITICAL_AFTER_HOURS = 40
HIGH_AFTER_HOURS = 24
MEDIUM_AFTER_HOURS = 16
FACILITY_CRITICAL_AFTER_HOURS = 24

# Working-hours thresholds on time since the last update
IN_PROGRESS_STALE_HOURS = 12
ASSIGNED_STALE_HOURS = 8

# Working-hours resolution targets per priority
SLA_TARGET_HOURS = {
    Priority.LOW: 4,
    Priority.MEDIUM: 24,
    Priority.HIGH: 72,
    Priority.CRITICAL: 72,
}
SLA_AT_RISK_FRACTION = 0.8


def severity(priority: str) -> int:
    """Rank of a priority (low=0 .. critical=3); unknown values rank lowest."""
    return PRIORITY_RANK.get(priority, -1)


def matches_category(type_id: Optional[str], *keywords: str) -> bool:
    """Case-insensitive substring match of the ticket type against keywords."""
    if not type_id:
        return False
    lowered = type_id.lower()
    return any(keyword in lowered for keyword in keywords)


class PriorityClassifier:
    """
    Pure priority rules evaluated in a fixed order.

    Earlier rules are stricter; the first rule that fires wins.
    """

    @staticmethod
    def classify(
        created_at: InstantLike,
        updated_at: InstantLike,
        status: str,
        type_id: Optional[str],
        assigned_to: Optional[str],
        now: datetime,
        calendar: WorkingCalendar
    ) -> str:
        """
        Classify a ticket.

        Args:
            created_at: Ticket creation time
            updated_at: Last update time (falls back to created_at)
            status: Ticket status
            type_id: Ticket category identifier
            assigned_to: Assignee, if any
            now: Evaluation instant
            calendar: Working calendar

        Returns:
            Priority. Resolved and closed tickets get Priority.LOW as a
            sentinel; callers must not present it as a real priority.
        """
        if status in FINAL_STATUSES:
            return Priority.LOW

        elapsed = WorkingHoursCalculator.compute_working_hours(created_at, now, calendar)
        reserved = matches_category(type_id, *HIGH_PRIORITY_CATEGORIES)

        if elapsed >= CRITICAL_AFTER_HOURS:
            return Priority.CRITICAL

        if elapsed >= HIGH_AFTER_HOURS:
            return Priority.HIGH

        if elapsed >= MEDIUM_AFTER_HOURS:
            # A reserved category is already high; aging must not lower it
            return Priority.HIGH if reserved else Priority.MEDIUM

        if reserved:
            return Priority.HIGH

        # Facility SLAs are kept as their own guard so they can diverge later
        if matches_category(type_id, FACILITY_CATEGORY) and elapsed > FACILITY_CRITICAL_AFTER_HOURS:
            return Priority.CRITICAL

        last_touch = updated_at if parse_instant(updated_at) is not None else created_at
        since_update = WorkingHoursCalculator.compute_working_hours(last_touch, now, calendar)

        if status == TicketStatus.IN_PROGRESS and since_update > IN_PROGRESS_STALE_HOURS:
            return Priority.MEDIUM

        if assigned_to and since_update > ASSIGNED_STALE_HOURS:
            return Priority.MEDIUM

        return Priority.LOW


class SLAEvaluator:
    """Working-hours SLA targets, deadlines and status."""

    @staticmethod
    def target_hours(priority: str) -> int:
        return SLA_TARGET_HOURS.get(priority, SLA_TARGET_HOURS[Priority.MEDIUM])

    @staticmethod
    def deadline(created_at: datetime, priority: str, calendar: WorkingCalendar) -> datetime:
        """Resolution deadline in working hours from creation."""
        return WorkingHoursCalculator.add_working_hours(
            created_at, SLAEvaluator.target_hours(priority), calendar
        )

    @staticmethod
    def status(
        created_at: InstantLike,
        resolved_at: InstantLike,
        priority: str,
        ticket_status: str,
        now: datetime,
        calendar: WorkingCalendar
    ) -> str:
        """
        SLA status for a ticket.

        Closed tickets with a resolution time are on_time or breached.
        Open tickets are breached past the target, at_risk past 80% of it,
        pending otherwise.
        """
        target = SLAEvaluator.target_hours(priority)

        if ticket_status == TicketStatus.CLOSED and parse_instant(resolved_at) is not None:
            taken = WorkingHoursCalculator.compute_working_hours(created_at, resolved_at, calendar)
            return SLAStatus.ON_TIME if taken <= target else SLAStatus.BREACHED

        age = WorkingHoursCalculator.compute_working_hours(created_at, now, calendar)
        if age > target:
            return SLAStatus.BREACHED
        if age > target * SLA_AT_RISK_FRACTION:
            return SLAStatus.AT_RISK
        return SLAStatus.PENDING
