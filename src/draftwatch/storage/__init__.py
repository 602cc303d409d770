"""Persistence adapters."""

from .sqlite import SqliteMonitorRepository

__all__ = ["SqliteMonitorRepository"]
