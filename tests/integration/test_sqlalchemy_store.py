"""
Integration tests for SQLAlchemyTicketStore against SQLite (aiosqlite)
"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from grievance_sla.config import Priority, TicketStatus
from grievance_sla.core import RepositoryException, VersionConflictException
from grievance_sla.escalation.domain import EscalationRecord
from grievance_sla.escalation.infrastructure import SQLAlchemyTicketStore
from grievance_sla.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)


FRIDAY_CLOSE = datetime(2024, 1, 5, 17, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'grievances.db'}")
    await create_tables()
    try:
        yield SQLAlchemyTicketStore(get_session_maker())
    finally:
        await close_database()


class TestTicketPersistence:

    @pytest.mark.asyncio
    async def test_roundtrip_keeps_instants(self, sql_store, make_ticket):
        created = datetime(2024, 1, 1, 14, 30, tzinfo=ZoneInfo("Asia/Kolkata"))
        await sql_store.add_ticket(make_ticket(created_at=created, updated_at=created, assigned_to="emp-7"))

        ticket = await sql_store.get_ticket("GRV-001")

        assert ticket.created_at == created
        assert ticket.created_at.tzinfo is not None
        assert ticket.assigned_to == "emp-7"
        assert ticket.version == 0

    @pytest.mark.asyncio
    async def test_missing_ticket(self, sql_store):
        assert await sql_store.get_ticket("GRV-404") is None

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, sql_store, make_ticket):
        await sql_store.add_ticket(make_ticket())
        ticket = await sql_store.get_ticket("GRV-001")

        saved = await sql_store.save_ticket(
            ticket.with_escalation(1, FRIDAY_CLOSE), expected_version=ticket.version
        )

        stored = await sql_store.get_ticket("GRV-001")
        assert saved.version == stored.version == 1
        assert stored.escalation_level == 1
        assert stored.escalated_at == FRIDAY_CLOSE

    @pytest.mark.asyncio
    async def test_stale_save_is_a_conflict(self, sql_store, make_ticket):
        await sql_store.add_ticket(make_ticket())
        ticket = await sql_store.get_ticket("GRV-001")
        await sql_store.save_ticket(ticket.with_priority(Priority.HIGH), expected_version=0)

        with pytest.raises(VersionConflictException) as exc_info:
            await sql_store.save_ticket(ticket.with_escalation(1, FRIDAY_CLOSE), expected_version=0)

        assert exc_info.value.actual_version == 1
        assert (await sql_store.get_ticket("GRV-001")).escalation_level == 0

    @pytest.mark.asyncio
    async def test_save_unknown_ticket(self, sql_store, make_ticket):
        with pytest.raises(RepositoryException) as exc_info:
            await sql_store.save_ticket(make_ticket(id="GRV-404"), expected_version=0)

        assert not isinstance(exc_info.value, VersionConflictException)

    @pytest.mark.asyncio
    async def test_list_open_tickets(self, sql_store, make_ticket):
        start = datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
        await sql_store.add_ticket(make_ticket(id="GRV-002", created_at=start + timedelta(hours=2)))
        await sql_store.add_ticket(make_ticket(id="GRV-001", status=TicketStatus.IN_PROGRESS))
        await sql_store.add_ticket(make_ticket(id="GRV-003", status=TicketStatus.RESOLVED))
        await sql_store.add_ticket(make_ticket(
            id="GRV-004", status=TicketStatus.CLOSED, closed_at=FRIDAY_CLOSE
        ))

        tickets = await sql_store.list_open_tickets()

        assert [t.id for t in tickets] == ["GRV-001", "GRV-002"]


    @pytest.mark.asyncio
    async def test_naive_timestamps_are_organization_local(self, sql_store, make_ticket):
        local_store = SQLAlchemyTicketStore(get_session_maker(), zone=ZoneInfo("Asia/Kolkata"))
        created = datetime(2024, 1, 1, 9, 0)
        await local_store.add_ticket(make_ticket(created_at=created, updated_at=created))

        ticket = await local_store.get_ticket("GRV-001")

        assert ticket.created_at == datetime(2024, 1, 1, 3, 30, tzinfo=timezone.utc)


class TestEscalationRecords:

    @pytest.mark.asyncio
    async def test_records_come_back_in_time_order(self, sql_store, make_ticket):
        ticket = make_ticket()
        await sql_store.add_ticket(ticket)
        first = EscalationRecord.create(ticket, 1, FRIDAY_CLOSE, escalated_by="hr-1", reason="late")
        escalated = replace(ticket, escalation_level=1, escalated_at=FRIDAY_CLOSE)
        second = EscalationRecord.create(
            escalated, 2, FRIDAY_CLOSE + timedelta(microseconds=1), escalated_by="hr-1", reason="later"
        )
        await sql_store.append_escalation_record(second)
        await sql_store.append_escalation_record(first)

        records = await sql_store.list_escalation_records("GRV-001")

        assert [r.id for r in records] == [first.id, second.id]
        assert records[1].escalated_at == FRIDAY_CLOSE + timedelta(microseconds=1)
        assert records[1].previous_level == 1
        assert records[0].reason == "late"

    @pytest.mark.asyncio
    async def test_no_records(self, sql_store):
        assert await sql_store.list_escalation_records("GRV-001") == []


class TestAtomicSave:

    @pytest.mark.asyncio
    async def test_ticket_and_record_commit_together(self, sql_store, make_ticket):
        ticket = make_ticket()
        await sql_store.add_ticket(ticket)
        record = EscalationRecord.create(ticket, 1, FRIDAY_CLOSE, escalated_by="hr-1", reason="late")

        saved = await sql_store.save_transition(ticket.with_escalation(1, FRIDAY_CLOSE), 0, record)

        assert saved.version == 1
        assert [r.id for r in await sql_store.list_escalation_records("GRV-001")] == [record.id]

    @pytest.mark.asyncio
    async def test_failed_record_insert_rolls_back_ticket(self, sql_store, make_ticket):
        ticket = make_ticket()
        await sql_store.add_ticket(ticket)
        record = EscalationRecord.create(ticket, 1, FRIDAY_CLOSE, escalated_by="hr-1", reason="late")
        await sql_store.append_escalation_record(record)

        # Same record id again violates the primary key
        with pytest.raises(IntegrityError):
            await sql_store.save_transition(ticket.with_escalation(1, FRIDAY_CLOSE), 0, record)

        stored = await sql_store.get_ticket("GRV-001")
        assert stored.escalation_level == 0
        assert stored.version == 0
        assert len(await sql_store.list_escalation_records("GRV-001")) == 1

    @pytest.mark.asyncio
    async def test_conflict_writes_no_record(self, sql_store, make_ticket):
        ticket = make_ticket()
        await sql_store.add_ticket(ticket)
        await sql_store.save_ticket(ticket.with_priority(Priority.HIGH), expected_version=0)
        record = EscalationRecord.create(ticket, 1, FRIDAY_CLOSE)

        with pytest.raises(VersionConflictException):
            await sql_store.save_transition(ticket.with_escalation(1, FRIDAY_CLOSE), 0, record)

        assert await sql_store.list_escalation_records("GRV-001") == []


class TestServiceOverDatabase:

    @pytest.mark.asyncio
    async def test_escalate_then_close(self, sql_store, make_service, make_ticket, notifier):
        await sql_store.add_ticket(make_ticket())
        service = make_service(sql_store)

        report = await service.run_auto_escalation_tick(now=FRIDAY_CLOSE)
        await service.drain_notifications()
        closed = await service.resolve_or_close("GRV-001", TicketStatus.CLOSED, now=FRIDAY_CLOSE + timedelta(hours=1))
        second = await service.run_auto_escalation_tick(now=FRIDAY_CLOSE + timedelta(days=3))

        assert report.escalated == 1
        assert closed.ok
        assert second.evaluated == 0

        ticket = await sql_store.get_ticket("GRV-001")
        assert ticket.status == TicketStatus.CLOSED
        assert ticket.priority == Priority.CRITICAL
        assert ticket.escalation_level == 1
        assert ticket.version == 2

        history = await service.escalation_history("GRV-001")
        assert [h.escalation_level for h in history] == [1]
        assert notifier.calls[0]["ticket_id"] == "GRV-001"
