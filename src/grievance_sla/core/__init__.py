"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from grievance_sla.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    InvalidStateException,
    ResourceNotFoundException,
    VersionConflictException,
    ConfigurationException,
    CalendarConfigException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "InvalidStateException",
    "ResourceNotFoundException",
    "VersionConflictException",
    "ConfigurationException",
    "CalendarConfigException",
]
