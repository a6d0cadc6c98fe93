"""Tests for moving files into category folders."""

from pathlib import Path
from typing import Callable

import pytest

from parafile.config import ParafileConfig
from parafile.organization import FileOrganizer, unique_target


class RecordingTracker:
    def __init__(self) -> None:
        self.moves: list[tuple[Path, Path]] = []

    def mark_file_as_moved(self, original_path: Path, new_path: Path) -> None:
        self.moves.append((original_path, new_path))


def _drop(folder: Path, name: str, content: str = "data") -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    path.write_text(content, encoding="utf-8")
    return path


def test_moves_into_category_folder_and_notifies_tracker(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    source = _drop(Path(config.watched_folder), "scan.pdf")
    tracker = RecordingTracker()

    result = FileOrganizer(tracker).process_file(source, "Invoices", "2024_Acme", config)

    expected = Path(config.watched_folder) / "Invoices" / "2024_Acme.pdf"
    assert result.success and not result.skipped
    assert result.new_path == expected
    assert result.new_name == "2024_Acme.pdf"
    assert expected.exists() and not source.exists()
    assert tracker.moves == [(source, expected)]


def test_same_derived_name_gets_numeric_suffix(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    inbox = Path(config.watched_folder)
    first = _drop(inbox, "one.pdf", "first")
    second = _drop(inbox, "two.pdf", "second")
    organizer = FileOrganizer()

    one = organizer.process_file(first, "Invoices", "Invoice_Acme", config)
    two = organizer.process_file(second, "Invoices", "Invoice_Acme", config)

    assert one.success and two.success
    assert one.new_name == "Invoice_Acme.pdf"
    assert two.new_name == "Invoice_Acme_1.pdf"
    assert one.new_path is not None and one.new_path.read_text(encoding="utf-8") == "first"
    assert two.new_path is not None and two.new_path.read_text(encoding="utf-8") == "second"


def test_unique_target_treats_source_as_available(tmp_path: Path) -> None:
    source = _drop(tmp_path, "report.pdf")
    _drop(tmp_path, "other.pdf")

    assert unique_target(tmp_path, "report.pdf", source) == source
    assert unique_target(tmp_path, "other.pdf", source) == tmp_path / "other_1.pdf"


def test_organization_disabled_keeps_directory_and_skips_same_file(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config(enable_organization=False)
    source = _drop(tmp_path / "elsewhere", "report.pdf")
    tracker = RecordingTracker()

    result = FileOrganizer(tracker).process_file(source, "General", "report", config)

    assert result.success and result.skipped
    assert result.new_path == source
    assert source.exists()
    assert tracker.moves == []


def test_organization_disabled_renames_in_place(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config(enable_organization=False)
    source = _drop(tmp_path / "elsewhere", "scan.pdf")

    result = FileOrganizer().process_file(source, "Invoices", "Invoice/2024", config)

    assert result.success
    assert result.new_path == tmp_path / "elsewhere" / "Invoice_2024.pdf"


def test_skip_rename_keeps_filename(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config()
    source = _drop(Path(config.watched_folder), "Invoice_Acme.pdf")

    result = FileOrganizer().process_file(
        source, "Invoices", "ignored", config, skip_rename=True
    )

    assert result.new_name == "Invoice_Acme.pdf"
    assert result.new_path == Path(config.watched_folder) / "Invoices" / "Invoice_Acme.pdf"


def test_move_errors_are_reported_not_raised(
    tmp_path: Path,
    make_config: Callable[..., ParafileConfig],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    config = make_config()
    source = _drop(Path(config.watched_folder), "scan.pdf")

    def _fail(*_: object) -> None:
        raise PermissionError("read-only volume")

    monkeypatch.setattr("parafile.organization.organizer.shutil.move", _fail)
    tracker = RecordingTracker()

    result = FileOrganizer(tracker).process_file(source, "Invoices", "x", config)

    assert not result.success
    assert result.error is not None and "read-only" in result.error
    assert source.exists()
    assert tracker.moves == []


def test_cleanup_empty_folders_removes_deepest_first(tmp_path: Path) -> None:
    (tmp_path / "a" / "b" / "c").mkdir(parents=True)
    _drop(tmp_path / "keep", "file.pdf")

    removed = FileOrganizer().cleanup_empty_folders(tmp_path)

    assert removed == [tmp_path / "a" / "b" / "c", tmp_path / "a" / "b", tmp_path / "a"]
    assert (tmp_path / "keep").exists()
    assert not (tmp_path / "a").exists()
