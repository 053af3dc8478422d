"""
Unit tests for EscalationScheduler
"""
from datetime import timedelta

import pytest

from grievance_sla.escalation.infrastructure import AUTO_ESCALATION_JOB_ID, EscalationScheduler


async def tick():
    return None


class TestEscalationScheduler:

    @pytest.mark.asyncio
    async def test_start_registers_single_instance_job(self):
        scheduler = EscalationScheduler(interval_seconds=60)

        await scheduler.start(tick)
        try:
            job = scheduler.get_job()
            assert scheduler.is_running
            assert job.id == AUTO_ESCALATION_JOB_ID
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.trigger.interval == timedelta(seconds=60)
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_second_start_is_ignored(self):
        scheduler = EscalationScheduler(interval_seconds=60)

        await scheduler.start(tick)
        first = scheduler._scheduler
        await scheduler.start(tick)
        try:
            assert scheduler._scheduler is first
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        scheduler = EscalationScheduler()
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.get_job() is None
