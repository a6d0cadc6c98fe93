"""Data models for correction history and learned feedback patterns."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, Field

PATTERN_SEPARATOR = "_to_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so stored values stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def pattern_key(from_category: str, to_category: str) -> str:
    """Return the aggregate key for a ``from -> to`` category correction."""
    return f"{from_category}{PATTERN_SEPARATOR}{to_category}"


def split_pattern_key(key: str) -> tuple[str, str]:
    """Split a pattern key into its source and target category names.

    Category names may themselves contain ``_to_``; the first separator wins,
    matching how keys were written by :func:`pattern_key` for the common case.
    """
    source, _, target = key.partition(PATTERN_SEPARATOR)
    return source, target


class CategoryCorrection(BaseModel):
    """A user moving a document from one category to another."""

    original_category: str
    new_category: str
    original_name: str
    feedback: str = ""
    reasoning: str = ""
    timestamp: UtcDatetime = Field(default_factory=_utcnow)


class NameCorrection(BaseModel):
    """A user renaming a document ParaFile had already renamed."""

    original_name: str
    original_parafile_name: str
    new_name: str
    category: str = ""
    feedback: str = ""
    timestamp: UtcDatetime = Field(default_factory=_utcnow)


class FeedbackPattern(BaseModel):
    """Aggregate for repeated corrections between the same pair of categories."""

    count: int = 0
    examples: List[str] = Field(default_factory=list)
    common_feedback: List[str] = Field(default_factory=list)
    last_seen: Optional[UtcDatetime] = None


class FeedbackDocument(BaseModel):
    """Persisted feedback document."""

    category_corrections: List[CategoryCorrection] = Field(default_factory=list)
    name_corrections: List[NameCorrection] = Field(default_factory=list)
    patterns: Dict[str, FeedbackPattern] = Field(default_factory=dict)


class FeedbackSubmission(BaseModel):
    """Input accepted by :meth:`FeedbackStore.store_feedback`.

    A category correction is recorded when ``category_feedback`` is set and the
    category actually changed; a name correction is recorded when
    ``name_feedback`` is set and the name actually changed.
    """

    category_feedback: Optional[str] = None
    name_feedback: Optional[str] = None
    original_category: str = ""
    new_category: str = ""
    original_name: str = ""
    original_parafile_name: str = ""
    new_name: str = ""
    reasoning: str = ""
    timestamp: UtcDatetime = Field(default_factory=_utcnow)


class CorrectionSummary(BaseModel):
    """Prompt-sized summary of a single correction."""

    was: str
    corrected_to: str
    because: str = ""


class RelevantPattern(BaseModel):
    """A learned pattern selected for prompt context."""

    from_category: str
    to_category: str
    count: int
    examples: List[str] = Field(default_factory=list)
    common_feedback: List[str] = Field(default_factory=list)


class RelevantFeedback(BaseModel):
    """Bounded bundle of past corrections handed to AI prompts."""

    patterns: List[RelevantPattern] = Field(default_factory=list)
    category_corrections: List[CorrectionSummary] = Field(default_factory=list)
    name_corrections: List[CorrectionSummary] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.patterns or self.category_corrections or self.name_corrections)

    def to_prompt(self) -> str:
        """Render the bundle as plain text suitable for an AI prompt.

        Returns:
            str: Rendered context, or an empty string when there is nothing to share.
        """
        if self.is_empty():
            return ""

        lines: list[str] = []
        if self.patterns:
            lines.append("Learned correction patterns:")
            for pattern in self.patterns:
                line = (
                    f"- Documents categorized as '{pattern.from_category}' were corrected to "
                    f"'{pattern.to_category}' {pattern.count} times"
                )
                if pattern.common_feedback:
                    line += f" (reasons: {'; '.join(pattern.common_feedback)})"
                if pattern.examples:
                    line += f"; examples: {', '.join(pattern.examples)}"
                lines.append(line)
        if self.category_corrections:
            lines.append("Recent category corrections:")
            for item in self.category_corrections:
                lines.append(_render_summary(item))
        if self.name_corrections:
            lines.append("Recent filename corrections:")
            for item in self.name_corrections:
                lines.append(_render_summary(item))
        return "\n".join(lines)


def _render_summary(item: CorrectionSummary) -> str:
    line = f"- '{item.was}' was corrected to '{item.corrected_to}'"
    if item.because:
        line += f" because {item.because}"
    return line


class CategoryCorrectionStats(BaseModel):
    """How often a category was corrected, and to what."""

    category: str
    corrections: int
    targets: Dict[str, int] = Field(default_factory=dict)


class CommonMistake(BaseModel):
    """A correction pattern frequent enough to be called out."""

    from_category: str
    to_category: str
    count: int
    examples: List[str] = Field(default_factory=list)


class FeedbackAnalysis(BaseModel):
    """Diagnostic aggregate over the whole feedback document."""

    total_category_corrections: int = 0
    total_name_corrections: int = 0
    most_corrected_categories: List[CategoryCorrectionStats] = Field(default_factory=list)
    common_mistakes: List[CommonMistake] = Field(default_factory=list)


__all__ = [
    "CategoryCorrection",
    "NameCorrection",
    "FeedbackPattern",
    "FeedbackDocument",
    "FeedbackSubmission",
    "CorrectionSummary",
    "RelevantPattern",
    "RelevantFeedback",
    "CategoryCorrectionStats",
    "CommonMistake",
    "FeedbackAnalysis",
    "pattern_key",
    "split_pattern_key",
]
