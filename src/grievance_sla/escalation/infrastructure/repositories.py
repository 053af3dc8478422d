"""
Escalation Infrastructure Repositories
=======================================

Concrete implementations of the ticket store and rule provider ports.

This layer contains the data access logic - how we store and retrieve
tickets and escalation records.

Timestamps are stored in UTC. A naive datetime handed to the SQL store is
read in the organization timezone, the same way WorkingCalendar reads it.
"""

from dataclasses import replace
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grievance_sla.config import OPEN_STATUSES
from grievance_sla.core import RepositoryException, VersionConflictException
from grievance_sla.escalation.application import ITicketStore, IEscalationRuleProvider
from grievance_sla.escalation.domain import Ticket, EscalationRecord, EscalationRule
from grievance_sla.escalation.infrastructure.external import EscalationConfigManager
from grievance_sla.escalation.infrastructure.models import TicketModel, EscalationRecordModel


def _to_db(value: Optional[datetime], zone: tzinfo) -> Optional[datetime]:
    if value is None:
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive values even for timezone-aware columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class InMemoryTicketStore(ITicketStore):
    """
    Process-local ticket store.

    Used by tests and by the worker when no database is configured.
    Every method completes without awaiting, so each call is atomic
    with respect to other coroutines.
    """

    def __init__(self, tickets: Optional[List[Ticket]] = None):
        self._tickets: Dict[str, Ticket] = {}
        self._records: Dict[str, List[EscalationRecord]] = {}
        for ticket in tickets or []:
            self.add_ticket(ticket)

    def add_ticket(self, ticket: Ticket) -> None:
        """Seed or overwrite a ticket without a version check."""
        self._tickets[ticket.id] = ticket

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    async def save_transition(
        self,
        ticket: Ticket,
        expected_version: int,
        record: Optional[EscalationRecord] = None
    ) -> Ticket:
        current = self._tickets.get(ticket.id)
        if current is None:
            raise RepositoryException(f"Ticket {ticket.id} not found", {"ticket_id": ticket.id})
        if current.version != expected_version:
            raise VersionConflictException(ticket.id, expected_version, current.version)

        stored = replace(ticket, version=expected_version + 1)
        # Record first: the ticket is only replaced once its record is in
        if record is not None:
            await self.append_escalation_record(record)
        self._tickets[ticket.id] = stored
        return stored

    async def append_escalation_record(self, record: EscalationRecord) -> None:
        self._records.setdefault(record.ticket_id, []).append(record)

    async def list_open_tickets(self) -> List[Ticket]:
        return [t for t in self._tickets.values() if t.status in OPEN_STATUSES]

    async def list_escalation_records(self, ticket_id: str) -> List[EscalationRecord]:
        return sorted(self._records.get(ticket_id, []), key=lambda r: r.escalated_at)


class SQLAlchemyTicketStore(ITicketStore):
    """
    SQLAlchemy implementation of the ticket store.

    Each call runs in its own session and transaction. save_transition is
    a conditional UPDATE on (id, version) plus the audit row insert, in
    one transaction.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        zone: tzinfo = timezone.utc
    ):
        self._session_maker = session_maker
        self._zone = zone

    async def add_ticket(self, ticket: Ticket) -> None:
        """Insert a new ticket row."""
        async with self._session_maker() as session:
            async with session.begin():
                session.add(TicketModel(
                    id=ticket.id,
                    version=ticket.version,
                    **self._columns(ticket)
                ))

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            return self._to_entity(model) if model else None

    async def save_transition(
        self,
        ticket: Ticket,
        expected_version: int,
        record: Optional[EscalationRecord] = None
    ) -> Ticket:
        """Conditional update; zero matched rows means someone else saved first."""
        async with self._session_maker() as session:
            async with session.begin():
                stmt = (
                    update(TicketModel)
                    .where(TicketModel.id == ticket.id, TicketModel.version == expected_version)
                    .values(version=expected_version + 1, **self._columns(ticket))
                )
                result = await session.execute(stmt)

                if result.rowcount == 0:
                    actual = await session.scalar(
                        select(TicketModel.version).where(TicketModel.id == ticket.id)
                    )
                    if actual is None:
                        raise RepositoryException(
                            f"Ticket {ticket.id} not found", {"ticket_id": ticket.id}
                        )
                    raise VersionConflictException(ticket.id, expected_version, actual)

                if record is not None:
                    session.add(self._record_model(record))

        return replace(ticket, version=expected_version + 1)

    async def append_escalation_record(self, record: EscalationRecord) -> None:
        """Insert an audit row on its own, without touching the ticket."""
        async with self._session_maker() as session:
            async with session.begin():
                session.add(self._record_model(record))

    async def list_open_tickets(self) -> List[Ticket]:
        """Tickets in open or in_progress status, oldest first."""
        async with self._session_maker() as session:
            stmt = (
                select(TicketModel)
                .where(TicketModel.status.in_(OPEN_STATUSES))
                .order_by(TicketModel.created_at.asc())
            )
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def list_escalation_records(self, ticket_id: str) -> List[EscalationRecord]:
        """Audit records of one ticket, oldest first."""
        async with self._session_maker() as session:
            stmt = (
                select(EscalationRecordModel)
                .where(EscalationRecordModel.ticket_id == ticket_id)
                .order_by(EscalationRecordModel.escalated_at.asc())
            )
            result = await session.execute(stmt)
            return [
                EscalationRecord(
                    id=m.id,
                    ticket_id=m.ticket_id,
                    escalated_at=_from_db(m.escalated_at),
                    escalation_level=m.escalation_level,
                    previous_level=m.previous_level,
                    escalated_by=m.escalated_by,
                    reason=m.reason,
                    escalated_to=m.escalated_to,
                )
                for m in result.scalars().all()
            ]

    def _record_model(self, record: EscalationRecord) -> EscalationRecordModel:
        return EscalationRecordModel(
            id=record.id,
            ticket_id=record.ticket_id,
            escalated_at=_to_db(record.escalated_at, self._zone),
            escalation_level=record.escalation_level,
            previous_level=record.previous_level,
            escalated_by=record.escalated_by,
            reason=record.reason,
            escalated_to=record.escalated_to,
        )

    def _columns(self, ticket: Ticket) -> dict:
        return {
            "type_id": ticket.type_id,
            "status": ticket.status,
            "priority": ticket.priority,
            "assigned_to": ticket.assigned_to,
            "created_at": _to_db(ticket.created_at, self._zone),
            "updated_at": _to_db(ticket.updated_at, self._zone),
            "closed_at": _to_db(ticket.closed_at, self._zone),
            "escalation_level": ticket.escalation_level,
            "escalated_at": _to_db(ticket.escalated_at, self._zone),
        }

    @staticmethod
    def _to_entity(model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            type_id=model.type_id,
            status=model.status,
            priority=model.priority,
            created_at=_from_db(model.created_at),
            updated_at=_from_db(model.updated_at),
            closed_at=_from_db(model.closed_at),
            assigned_to=model.assigned_to,
            escalation_level=model.escalation_level,
            escalated_at=_from_db(model.escalated_at),
            version=model.version,
        )


class ConfigRuleProvider(IEscalationRuleProvider):
    """
    Escalation rules read from the YAML-backed config manager.

    Always consults the manager's current config, so a reload is picked up
    by the next lookup.
    """

    def __init__(self, config_manager: EscalationConfigManager):
        self._config_manager = config_manager

    def get_rule(self, rule_id: str) -> Optional[EscalationRule]:
        """Get rule by ID, or None."""
        return self._config_manager.config.get_rule(rule_id)
