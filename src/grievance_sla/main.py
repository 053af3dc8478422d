"""
Grievance SLA - Escalation Worker
==================================

Background worker for the working-hours SLA and escalation engine.

Clean Architecture Layers:
- Application: EscalationService and DTOs
- Domain: calendar, working-hours arithmetic, priority and policies
- Infrastructure: database, YAML config watcher, notifier, scheduler

Run with `grievance-sla-worker` or `python -m grievance_sla.main`.
"""

import asyncio
import signal
from typing import Optional

# Configuration and Core
from grievance_sla.config import Settings, settings
from grievance_sla.core import ApplicationException

# Infrastructure
from grievance_sla.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# Escalation Module
from grievance_sla.escalation.application import EscalationService, ITicketStore, TickReport
from grievance_sla.escalation.domain import EscalationConfig
from grievance_sla.escalation.infrastructure import (
    EscalationConfigManager,
    EscalationScheduler,
    LoggingNotifier,
    InMemoryTicketStore,
    SQLAlchemyTicketStore,
    ConfigRuleProvider,
)

# Logging
from grievance_sla.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


class EscalationWorker:
    """
    Owns the service instances of one worker process.

    STARTUP:
    1. Setup structured logging
    2. Initialize the ticket store (database or in-memory)
    3. Load escalation configuration (fatal if malformed)
    4. Build the escalation service
    5. Start the config watcher (optional) and the tick scheduler

    SHUTDOWN:
    1. Stop the scheduler and the config watcher
    2. Wait for in-flight notifications
    3. Close database connections
    """

    def __init__(self, app_settings: Settings = settings):
        self.settings = app_settings
        self.config_manager: Optional[EscalationConfigManager] = None
        self.service: Optional[EscalationService] = None
        self.scheduler: Optional[EscalationScheduler] = None
        self._uses_database = False

    async def start(self) -> None:
        # === STARTUP ===
        setup_logging(self.settings.log_level, self.settings.environment)
        logger.info("Starting escalation worker", extra={
            "version": self.settings.app_version,
            "environment": self.settings.environment
        })

        store = await self._init_store()

        logger.info("Loading escalation configuration")
        self.config_manager = EscalationConfigManager(self.settings.tzinfo)
        self.config_manager.load(self.settings.escalation_config_path)

        self.service = EscalationService(
            store=store,
            rule_provider=ConfigRuleProvider(self.config_manager),
            notifier=LoggingNotifier(),
            calendar=self.config_manager.calendar,
            logger=get_logger("grievance_sla.escalation"),
            tick_concurrency=self.settings.tick_concurrency,
        )

        if self.settings.watch_escalation_config:
            loop = asyncio.get_running_loop()

            def on_reload(config: EscalationConfig) -> None:
                # Called on the watchdog thread
                calendar = config.calendar.to_calendar(self.settings.tzinfo)
                loop.call_soon_threadsafe(self.service.reconfigure, calendar)

            self.config_manager.add_reload_listener(on_reload)
            self.config_manager.start_watching()

        self.scheduler = EscalationScheduler(interval_seconds=self.settings.auto_escalation_interval)
        await self.scheduler.start(self.run_tick)

    async def _init_store(self) -> ITicketStore:
        if self.settings.use_in_memory_store:
            logger.info("Using in-memory ticket store")
            return InMemoryTicketStore()

        logger.info("Initializing database")
        init_database()
        self._uses_database = True

        # Tables are created in place; a missing database only degrades the ticks
        try:
            await create_tables()
        except Exception as e:
            logger.warning(
                "Database not available - ticks will fail until it is",
                extra={"error": str(e)}
            )

        return SQLAlchemyTicketStore(get_session_maker(), zone=self.settings.tzinfo)

    async def run_tick(self) -> TickReport:
        """Scheduler job: one automatic escalation pass."""
        return await self.service.run_auto_escalation_tick()

    async def stop(self) -> None:
        # === SHUTDOWN ===
        logger.info("Shutting down escalation worker")

        if self.scheduler:
            await self.scheduler.stop()

        if self.config_manager:
            self.config_manager.stop_watching()

        if self.service:
            await self.service.drain_notifications()

        if self._uses_database:
            await close_database()

        logger.info("Escalation worker stopped")


async def serve(app_settings: Settings = settings) -> None:
    """Run the worker until SIGINT or SIGTERM."""
    worker = EscalationWorker(app_settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await worker.start()
        await stop_event.wait()
    finally:
        await worker.stop()


def run() -> None:
    """Console entry point."""
    try:
        asyncio.run(serve())
    except ApplicationException as e:
        logger.critical(
            "Escalation worker failed to start",
            extra={"error_code": e.code, "error": e.message, **e.details}
        )
        raise SystemExit(1)


if __name__ == "__main__":
    run()
