"""Move processed files into their category folders under their new names."""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Optional, Protocol

from parafile.config.models import ParafileConfig

from .models import OrganizeResult

LOGGER = logging.getLogger(__name__)

_PATH_SEPARATORS = str.maketrans({"/": "_", "\\": "_"})


class MoveTracker(Protocol):
    """Receives notice of every move so the watcher can ignore the echo."""

    def mark_file_as_moved(self, original_path: Path, new_path: Path) -> None: ...


def same_file(first: Path, second: Path) -> bool:
    """Return True when both paths refer to the same file on disk."""
    try:
        return os.path.samefile(first, second)
    except OSError:
        return first.resolve() == second.resolve()


def unique_target(directory: Path, filename: str, source: Path) -> Path:
    """Return the first free path among ``name``, ``name_1``, ``name_2``, ...

    A candidate that is the source file itself counts as free.
    """
    candidate = directory / filename
    stem, suffix = Path(filename).stem, Path(filename).suffix
    counter = 0
    while candidate.exists() and not same_file(candidate, source):
        counter += 1
        candidate = directory / f"{stem}_{counter}{suffix}"
    return candidate


class FileOrganizer:
    """Resolve conflicts, move files, and report moves to a tracker."""

    def __init__(self, tracker: Optional[MoveTracker] = None) -> None:
        self._tracker = tracker

    def process_file(
        self,
        file_path: Path,
        category_name: str,
        desired_base_name: str,
        config: ParafileConfig,
        skip_rename: bool = False,
    ) -> OrganizeResult:
        """Move ``file_path`` to its organized location.

        With organization enabled the target directory is
        ``watched_folder/category_name``; otherwise the file stays in its
        directory and is only renamed. The probe for a free name and the move
        itself run back to back without yielding to the event loop, so
        concurrent pipelines in this process cannot claim the same name.
        Another process can still create the target in between.

        Args:
            file_path: File to organize.
            category_name: Resolved category name.
            desired_base_name: New name without extension.
            config: Active configuration.
            skip_rename: Keep the current filename.

        Returns:
            OrganizeResult: Outcome; failures are reported, never raised.
        """
        started = time.perf_counter()
        source = Path(file_path)

        try:
            if config.enable_organization and config.watched_folder:
                target_dir = Path(config.watched_folder).expanduser() / category_name
                target_dir.mkdir(parents=True, exist_ok=True)
            else:
                target_dir = source.parent

            if skip_rename:
                filename = source.name
            else:
                base = desired_base_name.translate(_PATH_SEPARATORS).strip() or source.stem
                filename = f"{base}{source.suffix}"

            target = target_dir / filename
            if target.exists() and same_file(target, source) and target.name == source.name:
                LOGGER.debug("%s is already organized; skipping move.", source)
                return OrganizeResult(
                    success=True,
                    skipped=True,
                    original_path=source,
                    new_path=source,
                    new_name=source.name,
                    category=category_name,
                    organization_time=time.perf_counter() - started,
                )

            target = unique_target(target_dir, filename, source)
            shutil.move(str(source), str(target))
        except OSError as exc:
            LOGGER.error("Error moving %s: %s", source, exc)
            return OrganizeResult(
                success=False,
                original_path=source,
                category=category_name,
                error=str(exc),
                organization_time=time.perf_counter() - started,
            )

        if self._tracker is not None:
            self._tracker.mark_file_as_moved(source, target)
        LOGGER.info("Moved %s -> %s", source, target)
        return OrganizeResult(
            success=True,
            original_path=source,
            new_path=target,
            new_name=target.name,
            category=category_name,
            organization_time=time.perf_counter() - started,
        )

    def cleanup_empty_folders(self, base_dir: Path) -> list[Path]:
        """Remove empty directories below ``base_dir``, deepest first.

        Returns:
            list[Path]: Directories that were removed.
        """
        removed: list[Path] = []
        base = Path(base_dir)
        if not base.is_dir():
            return removed
        for directory in sorted(
            (path for path in base.rglob("*") if path.is_dir()),
            key=lambda path: len(path.parts),
            reverse=True,
        ):
            try:
                if any(directory.iterdir()):
                    continue
                directory.rmdir()
            except OSError as exc:
                LOGGER.warning("Unable to remove %s: %s", directory, exc)
                continue
            removed.append(directory)
        return removed


__all__ = ["FileOrganizer", "MoveTracker", "same_file", "unique_target"]
