"""
Escalation Policies
====================

Wall-clock policies (automatic escalation thresholds, reopen window) and
notification recipient rules.

These deliberately measure plain elapsed time, not working hours; the
working-hours view lives in working_hours.py.

Naive datetimes are read in the `zone` argument, which callers set to the
organization timezone so they agree with WorkingCalendar.localize. UTC is
only the fallback for callers without a calendar.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from grievance_sla.config import Priority, NotifyRole, PRIORITY_RANK
from grievance_sla.escalation.domain.working_hours import InstantLike, parse_instant

logger = logging.getLogger(__name__)


AUTO_ESCALATION_THRESHOLD_HOURS = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 24,
    Priority.MEDIUM: 48,
    Priority.LOW: 72,
}
REOPEN_WINDOW = timedelta(hours=72)


def _comparable(first: datetime, second: datetime, zone: tzinfo) -> tuple[datetime, datetime]:
    """Give naive and aware datetimes a common footing; naive ones are in `zone`."""
    if (first.tzinfo is None) != (second.tzinfo is None):
        if first.tzinfo is None:
            first = first.replace(tzinfo=zone)
        else:
            second = second.replace(tzinfo=zone)
    return first, second


class WallClockPolicy:
    """Automatic escalation thresholds in wall-clock hours."""

    @staticmethod
    def threshold(priority: str) -> timedelta:
        hours = AUTO_ESCALATION_THRESHOLD_HOURS.get(priority, AUTO_ESCALATION_THRESHOLD_HOURS[Priority.LOW])
        return timedelta(hours=hours)

    @staticmethod
    def elapsed(since: datetime, now: datetime, zone: tzinfo = timezone.utc) -> timedelta:
        since, now = _comparable(since, now, zone)
        return now - since

    @staticmethod
    def is_due(priority: str, since: datetime, now: datetime, zone: tzinfo = timezone.utc) -> bool:
        """True once the wall-clock time since `since` reaches the threshold."""
        return WallClockPolicy.elapsed(since, now, zone) >= WallClockPolicy.threshold(priority)

    @staticmethod
    def time_until_due(
        priority: str,
        since: datetime,
        now: datetime,
        zone: tzinfo = timezone.utc
    ) -> timedelta:
        """Remaining time before automatic escalation; zero when overdue."""
        remaining = WallClockPolicy.threshold(priority) - WallClockPolicy.elapsed(since, now, zone)
        return max(remaining, timedelta(0))


class ReopenWindowPolicy:
    """A closed ticket may be reopened for 72 hours, boundary inclusive."""

    @staticmethod
    def reopenable_until(closed_at: datetime) -> datetime:
        return closed_at + REOPEN_WINDOW

    @staticmethod
    def is_reopenable(closed_at: InstantLike, now: datetime, zone: tzinfo = timezone.utc) -> bool:
        closed = parse_instant(closed_at)
        if closed is None:
            if closed_at is not None:
                logger.warning("Invalid closed_at timestamp", extra={"closed_at": str(closed_at)})
            return False
        closed, now = _comparable(closed, now, zone)
        return now - closed <= REOPEN_WINDOW


class NotificationPolicy:
    """Who hears about escalations and priority changes."""

    @staticmethod
    def recipients_for(priority: str, assigned_to: Optional[str] = None) -> List[str]:
        """
        Recipients for an escalating transition at the given priority.

        - medium and above: HR admin
        - high and critical: also the assignee and the super admin
        """
        recipients: List[str] = []
        rank = PRIORITY_RANK.get(priority, 0)

        if rank >= PRIORITY_RANK[Priority.MEDIUM]:
            recipients.append(NotifyRole.HR_ADMIN)

        if rank >= PRIORITY_RANK[Priority.HIGH]:
            if assigned_to:
                recipients.append(assigned_to)
            recipients.append(NotifyRole.SUPER_ADMIN)

        return recipients

    @staticmethod
    def should_notify_priority_change(old_priority: Optional[str], new_priority: str) -> bool:
        """True when priority changed to medium or above."""
        return (
            old_priority != new_priority
            and PRIORITY_RANK.get(new_priority, 0) >= PRIORITY_RANK[Priority.MEDIUM]
        )
