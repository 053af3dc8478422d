"""
Escalation External Service Integrations
=========================================

External services for the escalation engine:
- YAML calendar/rules config with a watchdog file watcher
- Logging notifier (delivery transports live outside this service)
- APScheduler for the background automatic escalation tick
"""

import threading
from datetime import tzinfo
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from grievance_sla.core import CalendarConfigException
from grievance_sla.escalation.application import INotifier
from grievance_sla.escalation.domain import EscalationConfig, WorkingCalendar
from grievance_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

ReloadListener = Callable[[EscalationConfig], None]

AUTO_ESCALATION_JOB_ID = "auto_escalation_tick"


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for escalation config file changes."""

    def __init__(self, config_manager: "EscalationConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def _matches(self, event) -> bool:
        return not event.is_directory and Path(event.src_path).resolve() == self.config_path.resolve()

    def on_modified(self, event):
        """Handle file modification event."""
        if self._matches(event):
            logger.info("Escalation config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    def on_created(self, event):
        """Editors that save by replacing the file emit a create instead."""
        self.on_modified(event)


class EscalationConfigManager:
    """
    Thread-safe escalation configuration manager with hot-reload support.

    The initial load is strict: a malformed file raises
    CalendarConfigException. A failed reload logs the error and keeps
    the previous configuration.
    """

    def __init__(self, timezone: tzinfo):
        self._timezone = timezone
        self._config: Optional[EscalationConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._listeners: List[ReloadListener] = []

    def load(self, path: Path) -> EscalationConfig:
        """Initial configuration load."""
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config

        logger.info(
            "Escalation configuration loaded",
            extra={
                "path": str(self._path),
                "rules": len(config.escalation_rules),
                "holidays": len(config.calendar.holidays),
            }
        )
        return config

    def _load_from_file(self, path: Path) -> EscalationConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning(
                "Escalation config file not found, using defaults",
                extra={"path": str(path)}
            )
            return EscalationConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            config = EscalationConfig(**data)
            # Catch calendars that parse but cannot be built (e.g. no working day)
            config.calendar.to_calendar(self._timezone)
        except yaml.YAMLError as e:
            raise CalendarConfigException(f"Invalid YAML in {path}", {"error": str(e)})
        except (ValidationError, TypeError) as e:
            raise CalendarConfigException(f"Invalid escalation config in {path}", {"error": str(e)})

        return config

    def reload(self) -> bool:
        """Reload configuration from file and notify listeners."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except CalendarConfigException as e:
            logger.error(
                "Failed to reload escalation config, keeping previous",
                extra={"path": str(self._path), "error": e.message, **e.details}
            )
            return False

        with self._lock:
            self._config = new_config
            listeners = list(self._listeners)

        logger.info("Escalation configuration reloaded successfully")
        for listener in listeners:
            try:
                listener(new_config)
            except Exception:
                logger.exception("Escalation config reload listener failed")
        return True

    def add_reload_listener(self, listener: ReloadListener) -> None:
        """Register a callback run after every successful reload."""
        with self._lock:
            self._listeners.append(listener)

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if:
        - File doesn't exist (defaults are in use)
        - The platform cannot deliver file events
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static config",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def config(self) -> EscalationConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("Escalation configuration not loaded")
            return self._config

    @property
    def calendar(self) -> WorkingCalendar:
        """Working calendar built from the current configuration."""
        return self.config.calendar.to_calendar(self._timezone)


class LoggingNotifier(INotifier):
    """
    Notifier that emits one structured log line per notification.

    Delivery (email/SMS/push) is handled by whatever consumes these logs.
    """

    def __init__(self, logger_name: str = "grievance_sla.notifications"):
        self._logger = get_logger(logger_name)

    async def notify(
        self,
        recipients: List[str],
        ticket_id: str,
        escalation_level: int,
        reason: Optional[str]
    ) -> None:
        self._logger.info(
            "Escalation notification",
            extra={
                "ticket_id": ticket_id,
                "recipients": recipients,
                "escalation_level": escalation_level,
                "reason": reason,
            }
        )


class EscalationScheduler:
    """
    Wrapper for APScheduler running the automatic escalation tick.

    Manages the lifecycle of the scheduler and jobs. A tick that is still
    running when the next one is due is skipped, not overlapped.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=AUTO_ESCALATION_JOB_ID,
            name="Automatic Escalation Tick",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Escalation scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Escalation scheduler stopped")

    def get_job(self):
        """The scheduled tick job, or None when not running."""
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(AUTO_ESCALATION_JOB_ID)

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
