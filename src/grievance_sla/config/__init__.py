"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="grievance-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/grievances",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    use_in_memory_store: bool = Field(
        default=False,
        description="Keep tickets in process memory instead of the database"
    )

    # ========== Escalation Configuration ==========
    escalation_config_path: Path = Field(
        default=Path("escalation_config.yaml"),
        description="Path to the calendar and escalation rules YAML file"
    )
    watch_escalation_config: bool = Field(
        default=False,
        description="Reconfigure the engine when the YAML file changes"
    )
    auto_escalation_interval: int = Field(
        default=300,
        description="Seconds between automatic escalation ticks",
        ge=10
    )
    tick_concurrency: int = Field(
        default=10,
        description="Tickets evaluated in parallel during one tick",
        ge=1
    )
    organization_timezone: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone all working-hours arithmetic happens in"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("organization_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone name resolves."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.organization_timezone)


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Ticket priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class NotifyRole(str):
    """Roles that receive escalation notifications."""
    HR_ADMIN = "hr_admin"
    SUPER_ADMIN = "super_admin"


class SLAStatus(str):
    """Working-hours SLA states."""
    ON_TIME = "on_time"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    PENDING = "pending"


SYSTEM_ACTOR = "system"
MIN_ESCALATION_LEVEL = 0
MAX_ESCALATION_LEVEL = 2


# ========== Lists for validation ==========

VALID_PRIORITIES = [
    Priority.CRITICAL, Priority.HIGH,
    Priority.MEDIUM, Priority.LOW
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
OPEN_STATUSES = [TicketStatus.OPEN, TicketStatus.IN_PROGRESS]
FINAL_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]

# Severity ordering, low to critical
PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}
