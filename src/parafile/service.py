"""Wire the watcher, processor, and processing log into a running service."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Set

from parafile.classification import CategorizationGateway, build_ai_gateway
from parafile.config.models import ParafileConfig
from parafile.extraction import TextExtractionGateway
from parafile.feedback import FeedbackStore
from parafile.organization import FileOrganizer
from parafile.processing import DocumentProcessor, FileEvent, ProcessingResult
from parafile.state import ProcessingLog, StateError
from parafile.watch import (
    FileDetected,
    FileMovedByUser,
    FileWatcher,
    WatcherError,
    WatcherEvent,
    WatcherStarted,
    WatcherStopped,
)

LOGGER = logging.getLogger(__name__)

ResultCallback = Callable[[ProcessingResult], None]
EventCallback = Callable[[WatcherEvent], None]


@dataclass(slots=True)
class Runtime:
    """Collaborators shared by the watch service and one-shot processing."""

    config: ParafileConfig
    watcher: FileWatcher
    processor: DocumentProcessor
    log: ProcessingLog
    feedback: FeedbackStore
    organizer: FileOrganizer


def build_runtime(
    config: ParafileConfig,
    *,
    log_path: Optional[Path] = None,
    feedback_path: Optional[Path] = None,
) -> Runtime:
    """Construct every collaborator from ``config``.

    The organizer reports its moves to the watcher so the resulting
    filesystem events are suppressed.
    """
    feedback = FeedbackStore(feedback_path)
    log = ProcessingLog(log_path, feedback=feedback, max_entries=config.history.max_entries)
    watcher = FileWatcher(config.watch)
    organizer = FileOrganizer(tracker=watcher)
    max_characters = config.extraction.max_prompt_characters
    ai = CategorizationGateway(build_ai_gateway(config.llm, max_characters=max_characters))
    extractor = TextExtractionGateway(
        config.extraction,
        api_key=config.llm.api_key or os.environ.get("OPENAI_API_KEY"),
    )
    processor = DocumentProcessor(
        config,
        extractor=extractor,
        ai=ai,
        organizer=organizer,
        log=log,
        feedback=feedback,
    )
    return Runtime(
        config=config,
        watcher=watcher,
        processor=processor,
        log=log,
        feedback=feedback,
        organizer=organizer,
    )


class WatchService:
    """Consume watcher events and run one processing task per detected file.

    Processing tasks are independent; a failing file never stops the loop.
    Each result is appended to the processing log and handed to
    ``on_result``.
    """

    def __init__(
        self,
        watcher: FileWatcher,
        processor: DocumentProcessor,
        *,
        log: Optional[ProcessingLog] = None,
        on_result: Optional[ResultCallback] = None,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self._watcher = watcher
        self._processor = processor
        self._log = log
        self._on_result = on_result
        self._on_event = on_event
        self._tasks: Set[asyncio.Task[ProcessingResult]] = set()
        self._stopping: Optional[asyncio.Event] = None

    @property
    def pending(self) -> int:
        """Number of processing tasks still running."""
        return len(self._tasks)

    async def run(self, root: str | Path | None) -> bool:
        """Watch ``root`` until :meth:`stop` is called.

        Returns:
            bool: False when the watcher could not start.
        """
        self._stopping = asyncio.Event()
        if not await self._watcher.start(root):
            await self._drain_events()
            return False

        stop_wait = asyncio.ensure_future(self._stopping.wait())
        try:
            while not self._stopping.is_set():
                next_event = asyncio.ensure_future(self._watcher.events.get())
                done, _ = await asyncio.wait(
                    {next_event, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_event in done:
                    self.dispatch(next_event.result())
                else:
                    next_event.cancel()
        finally:
            stop_wait.cancel()
            await self._watcher.stop()
            await self._drain_events()
            await self.wait_idle()
        return True

    def stop(self) -> None:
        """Ask :meth:`run` to return after the current event."""
        if self._stopping is not None:
            self._stopping.set()

    def dispatch(self, event: WatcherEvent) -> Optional[asyncio.Task[ProcessingResult]]:
        """React to one watcher event; detected files get a processing task."""
        if self._on_event is not None:
            self._on_event(event)

        if isinstance(event, FileDetected):
            task = asyncio.ensure_future(self.process(event.event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return task
        if isinstance(event, FileMovedByUser):
            LOGGER.info("Skipping %s; it was moved back by the user.", event.path.name)
        elif isinstance(event, WatcherError):
            LOGGER.error("Watcher error: %s", event.message)
        elif isinstance(event, WatcherStarted):
            LOGGER.info("Watching %s", event.root)
        elif isinstance(event, WatcherStopped):
            LOGGER.info("Watcher stopped")
        return None

    async def process(self, event: FileEvent | Path | str) -> ProcessingResult:
        """Process one file, record the outcome, and report it."""
        result = await self._processor.process_document(event)
        if self._log is not None:
            try:
                await asyncio.to_thread(self._log.add_log_entry, result)
            except (OSError, StateError) as exc:
                LOGGER.error("Unable to record %s in the processing log: %s", result.file_name, exc)
        if self._on_result is not None:
            self._on_result(result)
        return result

    async def wait_idle(self) -> None:
        """Wait for every scheduled processing task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _drain_events(self) -> None:
        queue = self._watcher.events
        while not queue.empty():
            self.dispatch(queue.get_nowait())


__all__ = ["Runtime", "WatchService", "build_runtime"]
