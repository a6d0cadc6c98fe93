"""Processing log persistence for ParaFile."""

from __future__ import annotations

import json
import logging
import os
import secrets
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from parafile.feedback import FeedbackStore, FeedbackSubmission
from parafile.processing.models import ProcessingResult

from .errors import MissingStateError, StateError
from .models import Correction, LogEntry, ProcessingLogDocument

LOGGER = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path("~/.parafile/processing-log.json")
DEFAULT_MAX_ENTRIES = 100


def new_entry_id() -> str:
    """Return a unique log entry identifier built from the time and random bits."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class ProcessingLog:
    """Append-only log of processed files, with user corrections."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        feedback: Optional[FeedbackStore] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        """Initialize the log.

        Args:
            path: Location of the JSON log file.
            feedback: Store that receives corrections as learning feedback.
            max_entries: Number of most recent entries kept on save.
        """
        self._path = (path or DEFAULT_LOG_PATH).expanduser()
        self._feedback = feedback
        self._max_entries = max_entries
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[LogEntry]:
        """Return every stored entry, oldest first.

        Raises:
            StateError: If the log file cannot be parsed.
        """
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return ProcessingLogDocument.model_validate(data).entries
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StateError(f"Invalid processing log data: {exc}") from exc

    def save(self, entries: List[LogEntry]) -> None:
        """Persist the most recent ``max_entries`` entries."""
        kept = entries[-self._max_entries :] if self._max_entries > 0 else []
        document = ProcessingLogDocument(entries=kept)
        payload = document.model_dump(mode="json", by_alias=True)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Readers never observe a partially written file.
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                handle.write(json.dumps(payload, indent=2))
            try:
                os.replace(handle.name, self._path)
            except OSError:
                Path(handle.name).unlink(missing_ok=True)
                raise

    def recent(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Return entries newest first, optionally limited."""
        entries = list(reversed(self.load()))
        return entries[:limit] if limit is not None else entries

    def get(self, entry_id: str) -> LogEntry:
        """Return the entry with ``entry_id``.

        Raises:
            MissingStateError: If no such entry exists.
        """
        for entry in self.load():
            if entry.id == entry_id:
                return entry
        raise MissingStateError(f"No log entry with id {entry_id}")

    def add_log_entry(self, result: ProcessingResult) -> LogEntry:
        """Append an entry describing ``result`` and return it."""
        entry = LogEntry(
            id=new_entry_id(),
            original_name=result.file_name,
            parafile_name=result.new_name or result.file_name,
            category=result.category,
            reasoning=result.reasoning or "",
            success=result.success,
            error=result.error,
        )
        with self._lock:
            entries = self.load()
            entries.append(entry)
            self.save(entries)
        return entry

    def is_file_already_processed(self, filename: str) -> bool:
        """Return True when ``filename`` is the output name of a successful entry."""
        try:
            entries = self.load()
        except StateError as exc:
            LOGGER.warning("Unable to read processing log: %s", exc)
            return False
        return any(entry.success and entry.parafile_name == filename for entry in entries)

    def add_correction(
        self, entry_id: str, correction: Correction | Mapping[str, Any]
    ) -> Optional[LogEntry]:
        """Apply a user correction to an entry and record it as feedback.

        The entry's displayed name and category are updated in place and the
        correction is appended to its audit trail. Every changed field must
        come with an explanation.

        Args:
            entry_id: Identifier of the entry to correct.
            correction: New name and/or category with the user's reasons.

        Returns:
            Optional[LogEntry]: Updated entry, or ``None`` if ``entry_id`` is unknown.

        Raises:
            StateError: If nothing changes or a change has no explanation.
        """
        change = Correction.model_validate(correction)
        with self._lock:
            return self._apply_correction(entry_id, change)

    def _apply_correction(self, entry_id: str, change: Correction) -> Optional[LogEntry]:
        entries = self.load()
        entry = next((item for item in entries if item.id == entry_id), None)
        if entry is None:
            return None

        name_changed = bool(change.new_name) and change.new_name != entry.parafile_name
        category_changed = bool(change.new_category) and change.new_category != entry.category
        if not name_changed and not category_changed:
            raise StateError("No changes to apply.")
        if name_changed and not (change.name_feedback or "").strip():
            raise StateError("Please explain why you changed the name.")
        if category_changed and not (change.category_feedback or "").strip():
            raise StateError("Please explain why you changed the category.")

        audit = change.model_copy(
            update={
                "new_name": change.new_name if name_changed else None,
                "name_feedback": change.name_feedback if name_changed else None,
                "new_category": change.new_category if category_changed else None,
                "category_feedback": change.category_feedback if category_changed else None,
                "previous_name": entry.parafile_name,
                "previous_category": entry.category,
            }
        )

        if self._feedback is not None:
            self._feedback.store_feedback(
                FeedbackSubmission(
                    category_feedback=audit.category_feedback,
                    name_feedback=audit.name_feedback,
                    original_category=entry.category,
                    new_category=audit.new_category or entry.category,
                    original_name=entry.original_name,
                    original_parafile_name=entry.parafile_name,
                    new_name=audit.new_name or entry.parafile_name,
                    reasoning=entry.reasoning,
                    timestamp=audit.timestamp,
                )
            )

        if name_changed:
            entry.parafile_name = audit.new_name or entry.parafile_name
        if category_changed:
            entry.category = audit.new_category or entry.category
        entry.corrected = True
        entry.corrections.append(audit)
        self.save(entries)
        return entry


__all__ = [
    "ProcessingLog",
    "DEFAULT_LOG_PATH",
    "DEFAULT_MAX_ENTRIES",
    "LogEntry",
    "Correction",
    "StateError",
    "MissingStateError",
    "new_entry_id",
]
