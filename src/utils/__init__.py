# src/utils/__init__.py
# Makes 'utils' a package. Exports utility functions/classes.

from .logger import logger
from .system_monitor import log_system_resources, start_resource_monitor, resource_snapshot

__all__ = [
    "logger",
    "log_system_resources",
    "start_resource_monitor",
    "resource_snapshot",
]
