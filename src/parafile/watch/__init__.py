"""Filesystem watching with self-move suppression."""

from .events import (
    FileDetected,
    FileMovedByUser,
    WatcherError,
    WatcherEvent,
    WatcherStarted,
    WatcherStopped,
)
from .service import FileWatcher, is_ignored
from .tracking import ExpiringKeySet

__all__ = [
    "ExpiringKeySet",
    "FileDetected",
    "FileMovedByUser",
    "FileWatcher",
    "WatcherError",
    "WatcherEvent",
    "WatcherStarted",
    "WatcherStopped",
    "is_ignored",
]
