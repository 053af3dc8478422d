"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code = "application_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    code = "domain_error"


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    code = "repository_error"


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    code = "validation_error"


class InvalidStateException(DomainException):
    """A transition is not allowed from the ticket's current escalation state."""

    code = "invalid_state"


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class VersionConflictException(RepositoryException):
    """Raised by a store when the persisted version moved since it was read."""

    code = "version_conflict"

    def __init__(
        self,
        ticket_id: str,
        expected_version: int,
        actual_version: Optional[int] = None
    ):
        self.ticket_id = ticket_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Ticket {ticket_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            {
                "ticket_id": ticket_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            }
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    code = "configuration_error"


class CalendarConfigException(ConfigurationException):
    """Malformed working calendar or escalation configuration."""

    code = "calendar_config_error"
