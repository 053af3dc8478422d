"""
Escalation Application Layer
=============================

Application layer for the escalation module.

Contains:
- Services: EscalationService orchestrating transitions over the ticket store
- DTOs: typed results returned across the service boundary
- Concurrency: per-ticket lock registry

This layer depends on the domain layer and port interfaces,
but not on concrete infrastructure implementations.
"""

from grievance_sla.escalation.application.dto import (
    EngineError,
    EscalationRecordResponse,
    TicketStateResponse,
    EscalationResult,
    TickFailure,
    TickReport,
    SLAStatusResponse,
)
from grievance_sla.escalation.application.services import (
    EscalationService,
    ITicketStore,
    IEscalationRuleProvider,
    INotifier,
)
from grievance_sla.escalation.application.concurrency import TicketLockRegistry

__all__ = [
    # DTOs
    "EngineError",
    "EscalationRecordResponse",
    "TicketStateResponse",
    "EscalationResult",
    "TickFailure",
    "TickReport",
    "SLAStatusResponse",
    # Services
    "EscalationService",
    "TicketLockRegistry",
    # Port Interfaces
    "ITicketStore",
    "IEscalationRuleProvider",
    "INotifier",
]
