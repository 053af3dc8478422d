"""
Shared fixtures for the escalation engine tests.

Reference dates: 2024-01-01 is a Monday, 2024-01-05 a Friday,
2024-01-07 a Sunday.
"""
from datetime import datetime, time, timezone

import pytest

from grievance_sla.config import Priority, TicketStatus
from grievance_sla.escalation.application import (
    EscalationService,
    IEscalationRuleProvider,
    INotifier,
)
from grievance_sla.escalation.domain import EscalationRule, Ticket, WorkingCalendar
from grievance_sla.escalation.infrastructure import InMemoryTicketStore


MONDAY_9AM = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingNotifier(INotifier):
    """Notifier that keeps every call for assertions."""

    def __init__(self):
        self.calls = []

    async def notify(self, recipients, ticket_id, escalation_level, reason):
        self.calls.append({
            "recipients": list(recipients),
            "ticket_id": ticket_id,
            "escalation_level": escalation_level,
            "reason": reason,
        })


class StaticRuleProvider(IEscalationRuleProvider):
    def __init__(self, rules):
        self._rules = {rule.id: rule for rule in rules}

    def get_rule(self, rule_id):
        return self._rules.get(rule_id)


@pytest.fixture
def calendar():
    """09:00-17:00, Sunday off, no holidays, UTC."""
    return WorkingCalendar(
        daily_start=time(9, 0),
        daily_end=time(17, 0),
        off_days=frozenset({6}),
        timezone=timezone.utc,
    )


@pytest.fixture
def weekend_calendar():
    """09:00-17:00, Saturday and Sunday off, UTC."""
    return WorkingCalendar(off_days=frozenset({5, 6}), timezone=timezone.utc)


@pytest.fixture
def make_ticket():
    def factory(**overrides) -> Ticket:
        values = {
            "id": "GRV-001",
            "type_id": "general",
            "status": TicketStatus.OPEN,
            "priority": Priority.LOW,
            "created_at": MONDAY_9AM,
            "updated_at": MONDAY_9AM,
        }
        values.update(overrides)
        return Ticket(**values)
    return factory


@pytest.fixture
def rules():
    return [
        EscalationRule(
            id="hr-review", role="hr_admin", threshold_minutes=240,
            escalation_level=1, notify_to_role="hr_admin",
        ),
        EscalationRule(
            id="super-review", role="super_admin", threshold_minutes=1440,
            escalation_level=2, notify_to_role="super_admin",
        ),
        EscalationRule(
            id="overreach", role="super_admin", threshold_minutes=0,
            escalation_level=5, notify_to_role="super_admin",
        ),
    ]


@pytest.fixture
def store():
    return InMemoryTicketStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_service(rules, notifier, calendar):
    """Service over any store; the clock is pinned to Monday 09:00."""
    def factory(ticket_store, **kwargs) -> EscalationService:
        return EscalationService(
            store=ticket_store,
            rule_provider=StaticRuleProvider(rules),
            notifier=notifier,
            calendar=calendar,
            clock=lambda: MONDAY_9AM,
            **kwargs
        )
    return factory


@pytest.fixture
def service(make_service, store):
    return make_service(store)
