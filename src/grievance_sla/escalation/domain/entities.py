"""
Escalation Domain Entities
===========================

Pure Python domain entities for ticket escalation.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Tickets are
snapshots: every change produces a new Ticket, and the store decides
whether it may replace the persisted one.
"""

from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from typing import Optional
from uuid import uuid4

from grievance_sla.config import (
    TicketStatus, OPEN_STATUSES, FINAL_STATUSES, VALID_STATUSES, VALID_PRIORITIES,
    MIN_ESCALATION_LEVEL, MAX_ESCALATION_LEVEL, SYSTEM_ACTOR
)


@dataclass(frozen=True)
class Ticket:
    """
    Snapshot of a grievance ticket as read from the store.

    `version` is the optimistic-lock counter the store compares on save.
    """

    # Core attributes
    id: str
    type_id: str
    status: str
    priority: str

    # Timestamps
    created_at: datetime
    updated_at: datetime

    closed_at: Optional[datetime] = None
    assigned_to: Optional[str] = None

    # Escalation state
    escalation_level: int = 0
    escalated_at: Optional[datetime] = None

    version: int = 0

    def __post_init__(self):
        """Validate ticket on initialization."""
        if not MIN_ESCALATION_LEVEL <= self.escalation_level <= MAX_ESCALATION_LEVEL:
            raise ValueError(
                f"escalation_level must be between {MIN_ESCALATION_LEVEL} and {MAX_ESCALATION_LEVEL}"
            )
        if self.status not in VALID_STATUSES:
            raise ValueError(f"Unknown ticket status: {self.status!r}")
        if self.priority not in VALID_PRIORITIES:
            raise ValueError(f"Unknown ticket priority: {self.priority!r}")

    @property
    def is_open(self) -> bool:
        """Check if ticket is still open."""
        return self.status in OPEN_STATUSES

    @property
    def is_frozen(self) -> bool:
        """Resolved and closed tickets accept no further escalation changes."""
        return self.status in FINAL_STATUSES

    @property
    def can_auto_escalate(self) -> bool:
        return self.is_open and self.escalation_level < MAX_ESCALATION_LEVEL

    @property
    def escalation_clock_start(self) -> datetime:
        """Instant the automatic escalation threshold is measured from."""
        return self.escalated_at or self.created_at

    def in_zone(self, zone: tzinfo) -> "Ticket":
        """Same ticket with naive timestamps read as local time in `zone`."""
        def attach(value: Optional[datetime]) -> Optional[datetime]:
            if not isinstance(value, datetime) or value.tzinfo is not None:
                return value
            return value.replace(tzinfo=zone)

        return replace(
            self,
            created_at=attach(self.created_at),
            updated_at=attach(self.updated_at),
            closed_at=attach(self.closed_at),
            escalated_at=attach(self.escalated_at),
        )

    def with_escalation(self, level: int, at: datetime) -> "Ticket":
        return replace(self, escalation_level=level, escalated_at=at)

    def with_priority(self, priority: str) -> "Ticket":
        return replace(self, priority=priority)

    def with_final_status(self, status: str, at: datetime) -> "Ticket":
        closed_at = at if status == TicketStatus.CLOSED else self.closed_at
        return replace(self, status=status, closed_at=closed_at, updated_at=at)


@dataclass(frozen=True)
class EscalationRecord:
    """
    Audit event for one escalation level change.

    Never mutated or deleted once created. `delta` is negative for
    de-escalations.
    """

    id: str
    ticket_id: str
    escalated_at: datetime
    escalation_level: int
    previous_level: int
    escalated_by: str = SYSTEM_ACTOR
    reason: Optional[str] = None
    escalated_to: Optional[str] = None

    @property
    def delta(self) -> int:
        return self.escalation_level - self.previous_level

    @classmethod
    def create(
        cls,
        ticket: Ticket,
        level: int,
        at: datetime,
        escalated_by: str = SYSTEM_ACTOR,
        reason: Optional[str] = None,
        escalated_to: Optional[str] = None
    ) -> "EscalationRecord":
        """New record for a transition of `ticket` to `level`."""
        return cls(
            id=str(uuid4()),
            ticket_id=ticket.id,
            escalated_at=at,
            escalation_level=level,
            previous_level=ticket.escalation_level,
            escalated_by=escalated_by,
            reason=reason,
            escalated_to=escalated_to,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logs and API responses."""
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "escalated_at": self.escalated_at.isoformat(),
            "escalation_level": self.escalation_level,
            "previous_level": self.previous_level,
            "delta": self.delta,
            "escalated_by": self.escalated_by,
            "reason": self.reason,
            "escalated_to": self.escalated_to,
        }
