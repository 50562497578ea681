"""
Core infrastructure for the lifecycle engine.

This module provides:
- Config: Configuration management
- Logging: structlog setup
- Errors: Non-domain exceptions
"""

from .config import ConfigManager, LifecycleSettings, get_config, reset_config
from .errors import (
    ConcurrentModificationError,
    EntityNotFoundError,
    LifecycleError,
    MalformedSnapshotError,
)
from .logging import configure_logging

__all__ = [
    "ConfigManager",
    "LifecycleSettings",
    "get_config",
    "reset_config",
    "configure_logging",
    "LifecycleError",
    "MalformedSnapshotError",
    "EntityNotFoundError",
    "ConcurrentModificationError",
]
