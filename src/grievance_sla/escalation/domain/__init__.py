"""
Escalation Domain Layer
========================

Domain layer for the working-hours SLA and escalation module.

Contains:
- Entities: Ticket snapshots and EscalationRecord audit events
- Value Objects: WorkingCalendar and the YAML configuration models
- Domain Services: WorkingHoursCalculator, PriorityClassifier,
  SLAEvaluator and the wall-clock / notification policies

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from grievance_sla.escalation.domain.entities import Ticket, EscalationRecord
from grievance_sla.escalation.domain.value_objects import (
    WorkingCalendar,
    CalendarConfig,
    HolidayEntry,
    EscalationRule,
    EscalationConfig,
)
from grievance_sla.escalation.domain.working_hours import WorkingHoursCalculator, parse_instant
from grievance_sla.escalation.domain.priority import PriorityClassifier, SLAEvaluator, severity
from grievance_sla.escalation.domain.policies import (
    WallClockPolicy,
    ReopenWindowPolicy,
    NotificationPolicy,
)

__all__ = [
    # Entities
    "Ticket",
    "EscalationRecord",
    # Value Objects
    "WorkingCalendar",
    "CalendarConfig",
    "HolidayEntry",
    "EscalationRule",
    "EscalationConfig",
    # Domain Services
    "WorkingHoursCalculator",
    "PriorityClassifier",
    "SLAEvaluator",
    "WallClockPolicy",
    "ReopenWindowPolicy",
    "NotificationPolicy",
    "parse_instant",
    "severity",
]
