"""Tests for the watch service that ties events to processing."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

from conftest import FakeAI, FakeExtractor

from parafile.classification import CategorizationGateway
from parafile.config import ParafileConfig
from parafile.organization import FileOrganizer
from parafile.processing import DocumentProcessor, FileEvent, ProcessingResult
from parafile.service import WatchService, build_runtime
from parafile.state import ProcessingLog
from parafile.watch import (
    FileDetected,
    FileMovedByUser,
    FileWatcher,
    WatcherError,
    WatcherEvent,
    WatcherStarted,
)


class FakeObserver:
    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.handler = handler

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None

    def join(self, timeout: float | None = None) -> None:
        return None


def _service(
    config: ParafileConfig, tmp_path: Path, **callbacks: Any
) -> tuple[WatchService, FileWatcher, ProcessingLog]:
    watcher = FileWatcher(config.watch, observer_factory=FakeObserver)
    log = ProcessingLog(tmp_path / "state" / "log.json")
    processor = DocumentProcessor(
        config,
        extractor=FakeExtractor(),  # type: ignore[arg-type]
        ai=CategorizationGateway(FakeAI(category="General")),
        organizer=FileOrganizer(tracker=watcher),
    )
    return WatchService(watcher, processor, log=log, **callbacks), watcher, log


def _detected(path: Path) -> FileDetected:
    return FileDetected(FileEvent(path=str(path), type="pdf", kind="add"))


def _drop(config: ParafileConfig, name: str) -> Path:
    inbox = Path(config.watched_folder)
    inbox.mkdir(parents=True, exist_ok=True)
    path = inbox / name
    path.write_text("%PDF", encoding="utf-8")
    return path


def test_detected_file_is_processed_and_logged(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    source = _drop(config, "scan.pdf")
    results: list[ProcessingResult] = []
    service, _, log = _service(config, tmp_path, on_result=results.append)

    async def scenario() -> None:
        task = service.dispatch(_detected(source))
        assert task is not None
        await service.wait_idle()

    asyncio.run(scenario())

    assert len(results) == 1 and results[0].success
    assert results[0].category == "General"
    entries = log.load()
    assert [entry.original_name for entry in entries] == ["scan.pdf"]
    assert (Path(config.watched_folder) / "General" / "scan.pdf").exists()
    assert service.pending == 0


def test_failed_files_are_logged_and_do_not_stop_the_service(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    good = _drop(config, "good.pdf")
    results: list[ProcessingResult] = []
    service, _, log = _service(config, tmp_path, on_result=results.append)

    async def scenario() -> None:
        service.dispatch(_detected(Path(config.watched_folder) / "vanished.pdf"))
        service.dispatch(_detected(good))
        await service.wait_idle()

    asyncio.run(scenario())

    by_name = {result.file_name: result for result in results}
    assert not by_name["vanished.pdf"].success
    assert by_name["good.pdf"].success
    assert len(log.load()) == 2


def test_informational_events_are_not_processed(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    seen: list[WatcherEvent] = []
    service, _, _ = _service(make_config(), tmp_path, on_event=seen.append)

    assert service.dispatch(FileMovedByUser(tmp_path / "a.pdf")) is None
    assert service.dispatch(WatcherError(OSError("denied"))) is None
    assert service.dispatch(WatcherStarted(tmp_path)) is None
    assert len(seen) == 3


def test_run_reports_missing_root(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    seen: list[WatcherEvent] = []
    service, _, _ = _service(make_config(), tmp_path, on_event=seen.append)

    started = asyncio.run(service.run(tmp_path / "missing"))

    assert started is False
    assert [type(event) for event in seen] == [WatcherError]


def test_run_processes_until_stopped(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    source = _drop(config, "scan.pdf")

    async def scenario() -> tuple[bool, list[ProcessingResult]]:
        results: list[ProcessingResult] = []
        done = asyncio.Event()

        def _record(result: ProcessingResult) -> None:
            results.append(result)
            done.set()

        service, watcher, _ = _service(config, tmp_path, on_result=_record)
        runner = asyncio.ensure_future(service.run(config.watched_folder))
        await asyncio.sleep(0)
        watcher.events.put_nowait(_detected(source))
        await asyncio.wait_for(done.wait(), 5)
        service.stop()
        return await asyncio.wait_for(runner, 5), results

    started, results = asyncio.run(scenario())

    assert started is True
    assert [result.file_name for result in results] == ["scan.pdf"]


def test_build_runtime_links_organizer_to_watcher(
    tmp_path: Path, make_config: Callable[..., ParafileConfig], monkeypatch: Any
) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    config = make_config(history={"max_entries": 10})

    runtime = build_runtime(
        config, log_path=tmp_path / "log.json", feedback_path=tmp_path / "feedback.json"
    )

    assert runtime.log.path == tmp_path / "log.json"
    assert runtime.feedback.path == tmp_path / "feedback.json"
    assert runtime.processor.config is config
    runtime.organizer.process_file(_drop(config, "a.pdf"), "General", "a", config)
    assert runtime.watcher.classify(Path(config.watched_folder) / "General" / "a.pdf") is None


class InstantProcessor:
    async def process_document(self, event: FileEvent | Path | str) -> ProcessingResult:
        await asyncio.sleep(0)
        name = Path(str(event)).name
        return ProcessingResult(
            file_path=str(event), file_name=name, success=True, category="General", new_name=name
        )


def test_concurrent_results_are_all_logged(tmp_path: Path) -> None:
    watcher = FileWatcher(observer_factory=FakeObserver)
    log = ProcessingLog(tmp_path / "state" / "log.json")
    results: list[ProcessingResult] = []
    service = WatchService(
        watcher,
        InstantProcessor(),  # type: ignore[arg-type]
        log=log,
        on_result=results.append,
    )

    async def scenario() -> None:
        await asyncio.gather(*(service.process(tmp_path / f"f{index}.pdf") for index in range(40)))

    asyncio.run(scenario())

    assert len(results) == 40
    names = sorted(entry.original_name for entry in log.load())
    assert names == sorted(f"f{index}.pdf" for index in range(40))
    assert list(log.path.parent.glob("*.tmp")) == []
