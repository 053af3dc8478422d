"""
Escalation Application DTOs
============================

Data Transfer Objects returned across the escalation service boundary.

Service operations never raise for expected failures; they return these
typed results so the calling layer can map error codes to messages.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from grievance_sla.core import ApplicationException
from grievance_sla.escalation.domain import EscalationRecord, Ticket


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]
TicketStatusStr = Literal["open", "in_progress", "resolved", "closed"]
SLAStatusStr = Literal["on_time", "at_risk", "breached", "pending"]

INTERNAL_ERROR = "internal_error"


# ========== Errors ==========

class EngineError(BaseModel):
    """Machine-readable failure of one engine operation."""
    code: str = Field(..., description="Stable error code, e.g. invalid_state")
    message: str = Field(..., description="Human-readable message")
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: Exception) -> "EngineError":
        """Typed error for any exception; unexpected ones become internal_error."""
        if isinstance(exc, ApplicationException):
            return cls(code=exc.code, message=exc.message, details=exc.details)
        return cls(
            code=INTERNAL_ERROR,
            message=str(exc) or type(exc).__name__,
            details={"exception": type(exc).__name__}
        )


# ========== Response DTOs ==========

class EscalationRecordResponse(BaseModel):
    """Response model for one escalation audit record."""
    id: str
    ticket_id: str
    escalated_at: datetime
    escalation_level: int = Field(..., ge=0, le=2)
    previous_level: int = Field(..., ge=0, le=2)
    delta: int = Field(..., description="Negative for de-escalations")
    escalated_by: str
    reason: Optional[str] = None
    escalated_to: Optional[str] = None

    @classmethod
    def from_record(cls, record: EscalationRecord) -> "EscalationRecordResponse":
        return cls(
            id=record.id,
            ticket_id=record.ticket_id,
            escalated_at=record.escalated_at,
            escalation_level=record.escalation_level,
            previous_level=record.previous_level,
            delta=record.delta,
            escalated_by=record.escalated_by,
            reason=record.reason,
            escalated_to=record.escalated_to,
        )


class TicketStateResponse(BaseModel):
    """Ticket escalation state after a successful transition."""
    ticket_id: str
    status: TicketStatusStr
    priority: PriorityStr
    escalation_level: int = Field(..., ge=0, le=2)
    escalated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    version: int

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketStateResponse":
        return cls(
            ticket_id=ticket.id,
            status=ticket.status,
            priority=ticket.priority,
            escalation_level=ticket.escalation_level,
            escalated_at=ticket.escalated_at,
            closed_at=ticket.closed_at,
            version=ticket.version,
        )


class EscalationResult(BaseModel):
    """
    Outcome of a manual or automatic transition.

    Exactly one of `error` or the success fields is meaningful. A success
    without a record means nothing was due (automatic escalation only) or
    the transition does not produce audit records (resolve/close).
    """
    record: Optional[EscalationRecordResponse] = None
    ticket: Optional[TicketStateResponse] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        record: Optional[EscalationRecord] = None,
        ticket: Optional[Ticket] = None
    ) -> "EscalationResult":
        return cls(
            record=EscalationRecordResponse.from_record(record) if record else None,
            ticket=TicketStateResponse.from_ticket(ticket) if ticket else None,
        )

    @classmethod
    def failure(cls, exc: Exception) -> "EscalationResult":
        return cls(error=EngineError.from_exception(exc))


class TickFailure(BaseModel):
    """A ticket the automatic tick could not evaluate."""
    ticket_id: str
    error: EngineError


class TickReport(BaseModel):
    """Summary of one automatic escalation tick."""
    started_at: datetime
    evaluated: int = Field(default=0, description="Open tickets looked at")
    records: List[EscalationRecordResponse] = Field(default_factory=list)
    priority_changes: int = Field(default=0, description="Tickets whose stored priority was refreshed")
    failures: List[TickFailure] = Field(default_factory=list)

    @property
    def escalated(self) -> int:
        return len(self.records)


class SLAStatusResponse(BaseModel):
    """Working-hours SLA view of one ticket."""
    ticket_id: str
    priority: PriorityStr
    target_hours: float
    deadline: datetime
    elapsed_working_hours: float
    status: SLAStatusStr
