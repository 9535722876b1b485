"""
Core infrastructure for the lifecycle engine.

This module provides:
- Config: Configuration management
- Errors: Exception hierarchy shared by every service
- Logging: structlog configuration
"""

from .config import ConfigManager, get_config
from .errors import (
    CompatibilityError,
    ComplianceBlockedError,
    NotFoundError,
    PendingLoadsError,
    StateMismatchError,
    TripflowError,
    ValidationError,
)

__all__ = [
    "ConfigManager",
    "get_config",
    "TripflowError",
    "ValidationError",
    "PendingLoadsError",
    "StateMismatchError",
    "CompatibilityError",
    "NotFoundError",
    "ComplianceBlockedError",
]
