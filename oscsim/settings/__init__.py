"""Settings module for configuration management."""

from .config import (
    LogConfig,
    PathConfig,
    RuntimeConfig,
    Settings,
    settings,
)

__all__ = [
    "settings",
    "Settings",
    "LogConfig",
    "PathConfig",
    "RuntimeConfig",
]
