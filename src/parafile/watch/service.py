"""Filesystem watcher that tells new files apart from ParaFile's own moves."""

from __future__ import annotations

import asyncio
import errno
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from parafile.config.models import WatchSettings
from parafile.processing.models import FileEvent

from .events import (
    FileDetected,
    FileMovedByUser,
    WatcherError,
    WatcherEvent,
    WatcherStarted,
    WatcherStopped,
)
from .tracking import ExpiringKeySet

LOGGER = logging.getLogger(__name__)

IGNORED_NAMES = frozenset({"node_modules", ".git", ".DS_Store", "Thumbs.db"})
HARMLESS_ERRNOS = frozenset({errno.EBADF, errno.ENOENT})


def is_ignored(path: Path, root: Optional[Path] = None) -> bool:
    """Return True for paths the watcher never reports.

    Dotfiles, ``node_modules``, ``.git``, OS metadata files, application
    bundles, and device directories (``/dev`` and ``/Volumes/*/dev``) are
    skipped. When ``root`` is given only the part of ``path`` below it is
    inspected, so a watched folder inside a dot-directory still works.
    """

    absolute = path.parts
    if path.is_absolute():
        if len(absolute) > 1 and absolute[1] == "dev":
            return True
        if len(absolute) > 3 and absolute[1] == "Volumes" and absolute[3] == "dev":
            return True

    parts: tuple[str, ...]
    if root is not None and path.is_relative_to(root):
        parts = path.relative_to(root).parts
    elif path.is_absolute():
        parts = absolute[1:]
    else:
        parts = absolute
    return any(
        part in IGNORED_NAMES or part.startswith(".") or part.endswith(".app") for part in parts
    )


class FileWatcher:
    """Watch a folder tree and emit typed events through an asyncio queue.

    watchdog delivers raw events on its observer thread; they are forwarded to
    the event loop and every decision, including updates to the tracking
    sets, happens on the loop. A raw event only becomes actionable after the
    file size has stayed unchanged for the stability window.
    """

    def __init__(
        self,
        settings: Optional[WatchSettings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        """Initialize the watcher.

        Args:
            settings: Extensions, stability window, and tracking TTLs.
            clock: Monotonic clock used for tracking-set expiry.
            observer_factory: Factory returning a watchdog observer.
        """
        self._settings = settings or WatchSettings()
        self._extensions = {ext.lower().lstrip(".") for ext in self._settings.extensions}
        self._observer_factory = observer_factory
        self._processed_files = ExpiringKeySet(self._settings.processed_ttl_seconds, clock=clock)
        self._parafile_moved_files = ExpiringKeySet(self._settings.moved_ttl_seconds, clock=clock)
        self._events: asyncio.Queue[WatcherEvent] = asyncio.Queue()
        self._pending: dict[Path, asyncio.Task[None]] = {}
        self._observer: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._root: Optional[Path] = None

    @property
    def events(self) -> asyncio.Queue[WatcherEvent]:
        """Queue receiving every emitted event."""
        return self._events

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def root(self) -> Optional[Path]:
        return self._root

    async def start(self, root: str | Path | None) -> bool:
        """Begin watching ``root`` recursively.

        Args:
            root: Folder to watch.

        Returns:
            bool: True when the watcher is running after the call.
        """
        if not root or not str(root).strip():
            self._emit(WatcherError(ValueError("No folder configured to watch.")))
            return False
        if self.is_running:
            return True

        path = Path(root).expanduser()
        if not path.is_dir():
            self._emit(WatcherError(FileNotFoundError(f"Watched folder does not exist: {path}")))
            return False

        self._loop = asyncio.get_running_loop()
        observer = self._observer_factory()
        try:
            observer.schedule(_WatcherEventHandler(self, self._loop), str(path), recursive=True)
            await asyncio.to_thread(observer.start)
        except OSError as exc:
            LOGGER.error("Unable to watch %s: %s", path, exc)
            self._emit(WatcherError(exc))
            return False

        self._observer = observer
        self._root = path
        LOGGER.info("Watching %s", path)
        self._emit(WatcherStarted(path))
        return True

    async def stop(self) -> None:
        """Stop watching and forget every tracked file. Safe to call repeatedly."""
        observer, self._observer = self._observer, None
        pending = list(self._pending.values())
        self._pending.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._processed_files.clear()
        self._parafile_moved_files.clear()
        if observer is None:
            return

        observer.stop()
        await asyncio.to_thread(observer.join, 5)
        LOGGER.info("Stopped watching %s", self._root)
        self._root = None
        self._emit(WatcherStopped())

    def mark_file_as_moved(self, original_path: Path, new_path: Path) -> None:
        """Suppress the filesystem events caused by a move ParaFile made itself."""
        original, new = Path(original_path), Path(new_path)
        self._parafile_moved_files.update(
            {str(original.absolute()), str(new.absolute()), original.name, new.name}
        )
        LOGGER.debug("Marked %s -> %s as moved by ParaFile", original, new)

    def is_watched_type(self, path: Path) -> bool:
        return path.suffix.lower().lstrip(".") in self._extensions

    def classify(self, path: Path, kind: str = "add") -> Optional[WatcherEvent]:
        """Decide what a settled event for ``path`` means.

        Returns:
            Optional[WatcherEvent]: ``None`` for ignored or self-caused events,
            :class:`FileMovedByUser` for a file that was already handled
            recently, otherwise :class:`FileDetected`.
        """
        path = Path(path)
        if is_ignored(path, self._root) or not self.is_watched_type(path):
            return None
        moved = self._parafile_moved_files
        if str(path.absolute()) in moved or path.name in moved:
            LOGGER.debug("Ignoring %s; moved by ParaFile", path)
            return None
        if path.name in self._processed_files:
            LOGGER.info("%s was moved back by the user; not reprocessing", path.name)
            return FileMovedByUser(path)
        self._processed_files.add(path.name)
        file_event = FileEvent(path=str(path), type=path.suffix.lower().lstrip("."), kind=kind)
        return FileDetected(file_event)

    # Internal helpers -------------------------------------------------

    def _on_raw_event(self, path: Path, kind: str) -> None:
        if self._observer is None or path in self._pending:
            return
        if is_ignored(path, self._root) or not self.is_watched_type(path):
            return
        task = asyncio.ensure_future(self._await_stability(path, kind))
        self._pending[path] = task

    async def _await_stability(self, path: Path, kind: str) -> None:
        loop = asyncio.get_running_loop()
        window = self._settings.stability_seconds
        poll = self._settings.poll_interval_seconds
        try:
            last_size: Optional[int] = None
            stable_since = loop.time()
            while True:
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    LOGGER.debug("%s disappeared before settling", path)
                    return
                now = loop.time()
                if size != last_size:
                    last_size, stable_since = size, now
                elif now - stable_since >= window:
                    break
                await asyncio.sleep(poll)

            event = self.classify(path, kind)
            if event is not None:
                self._emit(event)
        except OSError as exc:
            self._handle_error(exc)
        finally:
            if self._pending.get(path) is asyncio.current_task():
                del self._pending[path]

    def _handle_error(self, exc: BaseException) -> None:
        if isinstance(exc, OSError) and exc.errno in HARMLESS_ERRNOS:
            LOGGER.debug("Ignoring filesystem race: %s", exc)
            return
        LOGGER.error("File watcher error: %s", exc)
        self._emit(WatcherError(exc))

    def _emit(self, event: WatcherEvent) -> None:
        self._events.put_nowait(event)


class _WatcherEventHandler(FileSystemEventHandler):
    """Forward watchdog events from the observer thread onto the event loop."""

    def __init__(self, watcher: FileWatcher, loop: asyncio.AbstractEventLoop) -> None:
        self._watcher = watcher
        self._loop = loop

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, "add", event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, "change", event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward(event.dest_path, "add", event.is_directory)

    def _forward(self, raw_path: str | bytes, kind: str, is_directory: bool) -> None:
        if is_directory:
            return
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        try:
            self._loop.call_soon_threadsafe(self._watcher._on_raw_event, path, kind)
        except RuntimeError:
            LOGGER.debug("Event loop closed; dropping event for %s", path)


__all__ = ["FileWatcher", "is_ignored", "IGNORED_NAMES"]
