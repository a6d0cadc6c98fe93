"""JSON-backed persistence for user corrections and learned patterns."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections import Counter, defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from .models import (
    CategoryCorrection,
    CategoryCorrectionStats,
    CommonMistake,
    CorrectionSummary,
    FeedbackAnalysis,
    FeedbackDocument,
    FeedbackPattern,
    FeedbackSubmission,
    NameCorrection,
    RelevantFeedback,
    RelevantPattern,
    pattern_key,
    split_pattern_key,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_FEEDBACK_PATH = Path("~/.parafile/feedback.json")

PATTERN_MIN_COUNT = 2
COMMON_MISTAKE_MIN_COUNT = 3
MAX_PATTERNS = 5
MAX_PATTERN_SAMPLES = 3
MAX_CATEGORY_CORRECTIONS = 10
MAX_NAME_CORRECTIONS = 5
MAX_REASON_CHARACTERS = 200

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class FeedbackStore:
    """Persist corrections and derive prompt context from them."""

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: Location of the feedback JSON document.
        """
        self._path = (path or DEFAULT_FEEDBACK_PATH).expanduser()
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> FeedbackDocument:
        """Return the stored document; missing or corrupt files yield an empty one."""
        if not self._path.exists():
            return FeedbackDocument()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return FeedbackDocument.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            LOGGER.warning("Ignoring unreadable feedback file %s: %s", self._path, exc)
            return FeedbackDocument()

    def save(self, document: FeedbackDocument) -> None:
        """Write ``document`` to disk."""
        payload = document.model_dump(mode="json")
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
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

    def store_feedback(
        self, submission: FeedbackSubmission | Mapping[str, Any]
    ) -> FeedbackDocument:
        """Record a correction and update the matching category pattern.

        Args:
            submission: Correction details. Category feedback is only recorded
                when the category changed; name feedback only when the name
                changed.

        Returns:
            FeedbackDocument: The updated document.
        """
        entry = FeedbackSubmission.model_validate(submission)
        with self._lock:
            document = self._record(entry)
        LOGGER.debug("Stored feedback for %s", entry.original_name or entry.original_parafile_name)
        return document

    def _record(self, entry: FeedbackSubmission) -> FeedbackDocument:
        document = self.load()

        category_changed = (
            bool(entry.new_category) and entry.new_category != entry.original_category
        )
        if entry.category_feedback is not None and category_changed:
            document.category_corrections.append(
                CategoryCorrection(
                    original_category=entry.original_category,
                    new_category=entry.new_category,
                    original_name=entry.original_name,
                    feedback=entry.category_feedback,
                    reasoning=entry.reasoning,
                    timestamp=entry.timestamp,
                )
            )
            key = pattern_key(entry.original_category, entry.new_category)
            pattern = document.patterns.setdefault(key, FeedbackPattern())
            pattern.count += 1
            if entry.original_name:
                pattern.examples.append(entry.original_name)
            if entry.category_feedback:
                pattern.common_feedback.append(entry.category_feedback)
            pattern.last_seen = entry.timestamp

        name_changed = bool(entry.new_name) and entry.new_name != entry.original_parafile_name
        if entry.name_feedback is not None and name_changed:
            document.name_corrections.append(
                NameCorrection(
                    original_name=entry.original_name,
                    original_parafile_name=entry.original_parafile_name,
                    new_name=entry.new_name,
                    category=entry.new_category or entry.original_category,
                    feedback=entry.name_feedback,
                    timestamp=entry.timestamp,
                )
            )

        self.save(document)
        return document

    def get_relevant_feedback(
        self, document_text: str = "", current_category: Optional[str] = None
    ) -> RelevantFeedback:
        """Return a bounded feedback bundle for prompt context.

        Args:
            document_text: Text of the document being processed. Currently
                unused for selection; kept so callers pass full context.
            current_category: Category the document is believed to belong to.
                ``None`` selects every qualifying pattern.

        Returns:
            RelevantFeedback: Up to five patterns with ``count >= 2`` (most
            recent first), the ten latest category corrections and the five
            latest name corrections.
        """
        document = self.load()

        candidates: list[tuple[datetime, str, FeedbackPattern]] = []
        for key, pattern in document.patterns.items():
            if pattern.count < PATTERN_MIN_COUNT:
                continue
            source, _ = split_pattern_key(key)
            if current_category is not None and source != current_category:
                continue
            candidates.append((pattern.last_seen or _EPOCH, key, pattern))
        candidates.sort(key=lambda item: (item[0], item[2].count), reverse=True)

        patterns = []
        for _, key, pattern in candidates[:MAX_PATTERNS]:
            source, target = split_pattern_key(key)
            patterns.append(
                RelevantPattern(
                    from_category=source,
                    to_category=target,
                    count=pattern.count,
                    examples=[_clip(text) for text in pattern.examples[-MAX_PATTERN_SAMPLES:]],
                    common_feedback=[
                        _clip(text) for text in pattern.common_feedback[-MAX_PATTERN_SAMPLES:]
                    ],
                )
            )

        category_corrections = [
            CorrectionSummary(
                was=item.original_category,
                corrected_to=item.new_category,
                because=_clip(item.feedback),
            )
            for item in reversed(document.category_corrections[-MAX_CATEGORY_CORRECTIONS:])
        ]
        name_corrections = [
            CorrectionSummary(
                was=item.original_parafile_name,
                corrected_to=item.new_name,
                because=_clip(item.feedback),
            )
            for item in reversed(document.name_corrections[-MAX_NAME_CORRECTIONS:])
        ]

        return RelevantFeedback(
            patterns=patterns,
            category_corrections=category_corrections,
            name_corrections=name_corrections,
        )

    def analyze_feedback_patterns(self) -> FeedbackAnalysis:
        """Summarize the whole correction history.

        Returns:
            FeedbackAnalysis: Categories ordered by how often they were
            corrected (with a histogram of correction targets) and every
            pattern seen at least three times as a common mistake.
        """
        document = self.load()

        targets: dict[str, Counter[str]] = defaultdict(Counter)
        for item in document.category_corrections:
            targets[item.original_category][item.new_category] += 1

        most_corrected = sorted(
            (
                CategoryCorrectionStats(
                    category=category,
                    corrections=sum(histogram.values()),
                    targets=dict(histogram.most_common()),
                )
                for category, histogram in targets.items()
            ),
            key=lambda stats: stats.corrections,
            reverse=True,
        )

        mistakes = []
        for key, pattern in document.patterns.items():
            if pattern.count < COMMON_MISTAKE_MIN_COUNT:
                continue
            source, target = split_pattern_key(key)
            mistakes.append(
                CommonMistake(
                    from_category=source,
                    to_category=target,
                    count=pattern.count,
                    examples=pattern.examples[:MAX_PATTERN_SAMPLES],
                )
            )
        mistakes.sort(key=lambda mistake: mistake.count, reverse=True)

        return FeedbackAnalysis(
            total_category_corrections=len(document.category_corrections),
            total_name_corrections=len(document.name_corrections),
            most_corrected_categories=most_corrected,
            common_mistakes=mistakes,
        )


def _clip(text: str) -> str:
    if len(text) <= MAX_REASON_CHARACTERS:
        return text
    return text[: MAX_REASON_CHARACTERS - 3].rstrip() + "..."


__all__ = ["FeedbackStore", "DEFAULT_FEEDBACK_PATH"]
