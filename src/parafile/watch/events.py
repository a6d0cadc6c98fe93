"""Typed events emitted by the file watcher."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from parafile.processing.models import FileEvent


@dataclass(slots=True)
class FileDetected:
    """A new, externally dropped file has settled and should be processed."""

    event: FileEvent

    @property
    def path(self) -> Path:
        return Path(self.event.path)


@dataclass(slots=True)
class FileMovedByUser:
    """A file ParaFile already handled was put back; informational only."""

    path: Path


@dataclass(slots=True)
class WatcherError:
    """A watcher failure that was not a harmless create/delete race."""

    error: BaseException

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(slots=True)
class WatcherStarted:
    """The watcher is monitoring ``root``."""

    root: Path


@dataclass(slots=True)
class WatcherStopped:
    """The watcher was torn down."""


WatcherEvent = Union[FileDetected, FileMovedByUser, WatcherError, WatcherStarted, WatcherStopped]


__all__ = [
    "FileDetected",
    "FileMovedByUser",
    "WatcherError",
    "WatcherStarted",
    "WatcherStopped",
    "WatcherEvent",
]
