"""
Escalation Infrastructure Layer
================================

Infrastructure implementations for the escalation engine:
- Models: SQLAlchemy ORM models
- Repositories: ticket stores and the rule provider
- External: config watcher, notifier and scheduler
"""

from grievance_sla.escalation.infrastructure.models import TicketModel, EscalationRecordModel
from grievance_sla.escalation.infrastructure.external import (
    AUTO_ESCALATION_JOB_ID,
    ConfigFileHandler,
    EscalationConfigManager,
    LoggingNotifier,
    EscalationScheduler,
)
from grievance_sla.escalation.infrastructure.repositories import (
    InMemoryTicketStore,
    SQLAlchemyTicketStore,
    ConfigRuleProvider,
)

__all__ = [
    "TicketModel",
    "EscalationRecordModel",
    "AUTO_ESCALATION_JOB_ID",
    "ConfigFileHandler",
    "EscalationConfigManager",
    "LoggingNotifier",
    "EscalationScheduler",
    "InMemoryTicketStore",
    "SQLAlchemyTicketStore",
    "ConfigRuleProvider",
]
